from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.models import Product


class ProductRepository:
    def __init__(self, db: Session):
        self._db = db

    def get_by_sku(self, sku: str) -> Optional[Product]:
        sku = sku.strip()
        return self._db.scalar(select(Product).where(Product.sku == sku))

    def get_many(self, product_ids: set[int]) -> dict[int, Product]:
        if not product_ids:
            return {}
        rows = self._db.scalars(select(Product).where(Product.id.in_(product_ids)))
        return {p.id: p for p in rows}

    def list(self) -> list[Product]:
        return list(self._db.scalars(select(Product).order_by(Product.sku)))

    def add(self, product: Product) -> None:
        self._db.add(product)
