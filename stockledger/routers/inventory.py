from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockledger.audit import log_event
from stockledger.config import LedgerSettings
from stockledger.deps import session_dep, settings_dep
from stockledger.models import User
from stockledger.schemas import (
    AvailableProductRead,
    LotCostUpdate,
    LotRead,
    LotStatusRead,
    StockInCreate,
    StockInResult,
)
from stockledger.security import require_admin_api, require_user_api
from stockledger.services.inventory_service import InventoryService

router = APIRouter(tags=["inventory"])


def inventory_service_dep(
    db: Session = Depends(session_dep),
    settings: LedgerSettings = Depends(settings_dep),
) -> InventoryService:
    return InventoryService(db, settings.default_min_stock_alert)


@router.post("/stock-in", response_model=StockInResult, status_code=201)
def stock_in(
    payload: StockInCreate,
    user: User = Depends(require_user_api),
    service: InventoryService = Depends(inventory_service_dep),
) -> StockInResult:
    result = service.stock_in(payload, user)
    log_event(
        service._db,
        user,
        action="stock_in",
        entity_type="lot",
        entity_id=str(result.lot.id),
        detail={"sku": payload.sku, "lot_number": payload.lot_number, "quantity": payload.quantity},
    )
    return result


@router.patch("/lots/{lot_id}/cost", response_model=LotRead)
def correct_lot_cost(
    lot_id: int,
    payload: LotCostUpdate,
    user: User = Depends(require_admin_api),
    service: InventoryService = Depends(inventory_service_dep),
) -> LotRead:
    lot = service.correct_lot_cost(lot_id, payload.cost_price)
    log_event(
        service._db,
        user,
        action="lot_cost_correct",
        entity_type="lot",
        entity_id=str(lot.id),
        detail={"cost_price": payload.cost_price},
    )
    return LotRead.model_validate(lot)


@router.get("/inventory/lots", response_model=list[LotStatusRead])
def list_lots(
    q: str = "",
    user: User = Depends(require_user_api),
    service: InventoryService = Depends(inventory_service_dep),
) -> list[LotStatusRead]:
    return service.lot_statuses(q)


@router.get("/inventory/available", response_model=list[AvailableProductRead])
def list_available(
    user: User = Depends(require_user_api),
    service: InventoryService = Depends(inventory_service_dep),
) -> list[AvailableProductRead]:
    return service.available_products()
