from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.audit import log_event
from stockledger.deps import session_dep
from stockledger.models import User
from stockledger.schemas import (
    SaleAmountsUpdate,
    SaleCreate,
    SaleCreateResult,
    SaleRead,
    SaleStatusUpdate,
)
from stockledger.security import require_admin_api, require_user_api
from stockledger.services.sales_service import SalesService

router = APIRouter(prefix="/sales", tags=["sales"])


def sales_service_dep(db: Session = Depends(session_dep)) -> SalesService:
    return SalesService(db)


@router.post("", response_model=SaleCreateResult, status_code=201)
def create_sale(
    payload: SaleCreate,
    user: User = Depends(require_user_api),
    service: SalesService = Depends(sales_service_dep),
) -> SaleCreateResult:
    result = service.create_sale(payload, user)
    log_event(
        service._db,
        user,
        action="sale_create",
        entity_type="sale",
        entity_id=str(result.sale.id),
        detail={
            "items": [item.model_dump() for item in payload.items],
            "deductions": [d.model_dump() for d in result.deductions],
        },
    )
    return result


@router.get("", response_model=list[SaleRead])
def list_sales(
    limit: int = Query(50, ge=1, le=500),
    user: User = Depends(require_user_api),
    service: SalesService = Depends(sales_service_dep),
) -> list[SaleRead]:
    return [SaleRead.model_validate(s) for s in service.list_sales(limit)]


@router.get("/{sale_id}", response_model=SaleRead)
def get_sale(
    sale_id: int,
    user: User = Depends(require_user_api),
    service: SalesService = Depends(sales_service_dep),
) -> SaleRead:
    return SaleRead.model_validate(service.get_sale(sale_id))


@router.post("/{sale_id}/status", response_model=SaleRead)
def update_status(
    sale_id: int,
    payload: SaleStatusUpdate,
    user: User = Depends(require_user_api),
    service: SalesService = Depends(sales_service_dep),
) -> SaleRead:
    sale = service.update_status(sale_id, payload, user)
    log_event(
        service._db,
        user,
        action="sale_status",
        entity_type="sale",
        entity_id=str(sale.id),
        detail=payload.model_dump(exclude_none=True),
    )
    return SaleRead.model_validate(sale)


@router.patch("/{sale_id}/amounts", response_model=SaleRead)
def correct_amounts(
    sale_id: int,
    payload: SaleAmountsUpdate,
    user: User = Depends(require_admin_api),
    service: SalesService = Depends(sales_service_dep),
) -> SaleRead:
    sale = service.correct_amounts(sale_id, payload, user)
    log_event(
        service._db,
        user,
        action="sale_amounts_correct",
        entity_type="sale",
        entity_id=str(sale.id),
        detail=payload.model_dump(exclude_none=True),
    )
    return SaleRead.model_validate(sale)
