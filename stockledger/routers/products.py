from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockledger.audit import log_event
from stockledger.config import LedgerSettings
from stockledger.deps import session_dep, settings_dep
from stockledger.models import User
from stockledger.schemas import ProductCreate, ProductRead
from stockledger.security import require_user_api
from stockledger.services.product_service import ProductService

router = APIRouter(tags=["products"])


def product_service_dep(
    db: Session = Depends(session_dep),
    settings: LedgerSettings = Depends(settings_dep),
) -> ProductService:
    return ProductService(db, settings.default_min_stock_alert)


@router.post("/products", response_model=ProductRead, status_code=201)
def create_product(
    payload: ProductCreate,
    user: User = Depends(require_user_api),
    service: ProductService = Depends(product_service_dep),
) -> ProductRead:
    created = service.create(payload)
    log_event(
        service._db,
        user,
        action="product_create",
        entity_type="product",
        entity_id=created.sku,
        detail={"name": created.name, "min_stock_alert": created.min_stock_alert},
    )
    return ProductRead.model_validate(created)


@router.get("/products", response_model=list[ProductRead])
def list_products(
    user: User = Depends(require_user_api),
    service: ProductService = Depends(product_service_dep),
) -> list[ProductRead]:
    return [ProductRead.model_validate(p) for p in service.list()]
