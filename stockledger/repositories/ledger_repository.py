from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.entities import (
    ExpenseRecord,
    IncomeRecord,
    LedgerLine,
    LotRecord,
    ProductRecord,
    SaleRecord,
)
from stockledger.models import Expense, IncomeEntry, Product, ProductLot, Sale, Transaction

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=BaseModel)


def to_records(model: type[R], rows: Iterable[Any]) -> list[R]:
    """Convierte filas de la BD en entidades validadas; las inválidas se descartan."""
    out: list[R] = []
    for row in rows:
        data = row._asdict() if hasattr(row, "_asdict") else row
        try:
            out.append(model.model_validate(data, from_attributes=not isinstance(data, dict)))
        except ValidationError as e:
            logger.warning("Skipping invalid %s row: %s", model.__name__, e.errors(include_url=False))
    return out


class LedgerRepository:
    def __init__(self, db: Session):
        self._db = db

    def add(self, obj: Any) -> None:
        self._db.add(obj)

    def get_lot(self, lot_id: int) -> Optional[ProductLot]:
        return self._db.get(ProductLot, lot_id)

    def get_sale(self, sale_id: int) -> Optional[Sale]:
        return self._db.get(Sale, sale_id)

    def get_expense(self, expense_id: int) -> Optional[Expense]:
        return self._db.get(Expense, expense_id)

    def lots(self, product_ids: Optional[Iterable[int]] = None) -> list[tuple[LotRecord, ProductRecord]]:
        stmt = (
            select(ProductLot, Product)
            .join(Product, Product.id == ProductLot.product_id)
            .order_by(ProductLot.received_date, ProductLot.id)
        )
        if product_ids is not None:
            stmt = stmt.where(ProductLot.product_id.in_(list(product_ids)))

        out: list[tuple[LotRecord, ProductRecord]] = []
        for lot, product in self._db.execute(stmt).all():
            lot_records = to_records(LotRecord, [lot])
            product_records = to_records(ProductRecord, [product])
            if lot_records and product_records:
                out.append((lot_records[0], product_records[0]))
        return out

    def ledger_lines(
        self,
        product_ids: Optional[Iterable[int]] = None,
        lot_ids: Optional[Iterable[int]] = None,
        types: Optional[Iterable[str]] = None,
    ) -> list[LedgerLine]:
        stmt = (
            select(
                Transaction.id,
                Transaction.product_id,
                Transaction.lot_id,
                Transaction.type,
                Transaction.quantity_changed,
                Transaction.sale_id,
                Transaction.created_at,
                Transaction.unit_cost,
                Product.sku,
                ProductLot.lot_number,
                ProductLot.cost_price.label("lot_cost_price"),
                Sale.parcel_status.label("sale_status"),
            )
            .select_from(Transaction)
            .outerjoin(Product, Product.id == Transaction.product_id)
            .outerjoin(ProductLot, ProductLot.id == Transaction.lot_id)
            .outerjoin(Sale, Sale.id == Transaction.sale_id)
            .order_by(Transaction.created_at, Transaction.id)
        )
        if product_ids is not None:
            stmt = stmt.where(Transaction.product_id.in_(list(product_ids)))
        if lot_ids is not None:
            stmt = stmt.where(Transaction.lot_id.in_(list(lot_ids)))
        if types is not None:
            stmt = stmt.where(Transaction.type.in_(list(types)))
        return to_records(LedgerLine, self._db.execute(stmt).all())

    def sales(self) -> list[SaleRecord]:
        return to_records(SaleRecord, self._db.scalars(select(Sale).order_by(Sale.created_at, Sale.id)))

    def recent_sales(self, limit: int = 50) -> list[Sale]:
        return list(
            self._db.scalars(select(Sale).order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit))
        )

    def expenses(self, category: Optional[str] = None) -> list[ExpenseRecord]:
        stmt = select(Expense).order_by(Expense.created_at, Expense.id)
        if category:
            stmt = stmt.where(Expense.category == category)
        return to_records(ExpenseRecord, self._db.scalars(stmt))

    def income(self, category: Optional[str] = None) -> list[IncomeRecord]:
        stmt = select(IncomeEntry).order_by(IncomeEntry.income_date, IncomeEntry.id)
        if category:
            stmt = stmt.where(IncomeEntry.category == category)
        return to_records(IncomeRecord, self._db.scalars(stmt))

    def expense_rows(self, category: Optional[str] = None) -> list[Expense]:
        stmt = select(Expense).order_by(Expense.expense_date.desc(), Expense.id.desc())
        if category:
            stmt = stmt.where(Expense.category == category)
        return list(self._db.scalars(stmt))

    def income_rows(self, category: Optional[str] = None) -> list[IncomeEntry]:
        stmt = select(IncomeEntry).order_by(IncomeEntry.income_date.desc(), IncomeEntry.id.desc())
        if category:
            stmt = stmt.where(IncomeEntry.category == category)
        return list(self._db.scalars(stmt))
