from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator
from typing_extensions import Literal

TransactionType = Literal["in", "sale", "adjustment", "expiry"]
ParcelStatus = Literal["processing", "sent", "delivered", "returned"]
ExpenseCategory = Literal["ads", "packaging", "other"]
IncomeCategory = Literal["income", "investment"]
Role = Literal["admin", "staff"]



class _Record(BaseModel):
    model_config = {"from_attributes": True, "frozen": True}


class ProductRecord(_Record):
    id: int
    sku: str
    name: str
    min_stock_alert: int = 5


class LotRecord(_Record):
    id: int
    product_id: int
    lot_number: str
    cost_price: float = 0
    received_date: date
    expiry_date: Optional[date] = None

    @field_validator("cost_price", mode="before")
    @classmethod
    def _none_cost_is_pending(cls, v):
        return 0 if v is None else v

    @property
    def cost_pending(self) -> bool:
        return self.cost_price <= 0


class LedgerLine(_Record):
    """Transacción del ledger unida con su lote, producto y venta."""

    id: int
    product_id: int
    lot_id: Optional[int] = None
    type: TransactionType
    quantity_changed: int
    sale_id: Optional[int] = None
    created_at: datetime
    unit_cost: Optional[float] = None
    sku: Optional[str] = None
    lot_number: Optional[str] = None
    lot_cost_price: Optional[float] = None
    sale_status: Optional[ParcelStatus] = None


class SaleRecord(_Record):
    id: int
    order_date: date
    created_at: datetime
    parcel_status: ParcelStatus = "processing"
    sold_amount: Optional[float] = None
    return_cost: Optional[float] = None
    ad_id: Optional[int] = None
    cod_amount: float = 0


class ExpenseRecord(_Record):
    id: int
    category: ExpenseCategory
    amount: float
    description: str = ""
    expense_date: Optional[date] = None
    created_at: datetime

    @field_validator("description", mode="before")
    @classmethod
    def _none_description(cls, v):
        return v or ""


class IncomeRecord(_Record):
    id: int
    category: IncomeCategory
    amount: float
    income_date: date
