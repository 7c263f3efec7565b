from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockledger.models import Product
from stockledger.repositories.product_repository import ProductRepository
from stockledger.schemas import ProductCreate
from stockledger.services.http_errors import invalid

logger = logging.getLogger(__name__)


class ProductService:
    def __init__(self, db: Session, default_min_stock_alert: int = 5):
        self._db = db
        self._products = ProductRepository(db)
        self._default_min_stock_alert = default_min_stock_alert

    def create(self, payload: ProductCreate) -> Product:
        if payload.min_stock_alert is not None and payload.min_stock_alert < 0:
            raise invalid("min_stock_alert must be >= 0")
        if self._products.get_by_sku(payload.sku) is not None:
            raise invalid(f"SKU {payload.sku} already exists")

        name = (payload.name or "").strip() or payload.sku
        product = Product(
            sku=payload.sku,
            name=name,
            description=(payload.description or "").strip() or None,
            min_stock_alert=(
                payload.min_stock_alert
                if payload.min_stock_alert is not None
                else self._default_min_stock_alert
            ),
            created_at=datetime.now(timezone.utc),
        )
        self._products.add(product)
        try:
            self._db.commit()
        except IntegrityError as e:
            self._db.rollback()
            raise invalid(f"SKU {payload.sku} already exists") from e
        self._db.refresh(product)
        logger.info("Product %s created", product.sku)
        return product

    def list(self) -> list[Product]:
        return self._products.list()
