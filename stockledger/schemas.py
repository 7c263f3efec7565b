from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from typing_extensions import Literal

from stockledger.entities import ExpenseCategory, IncomeCategory, ParcelStatus


class LoginRequest(BaseModel):
    username: str
    password: str


class UserRead(BaseModel):
    id: int
    username: str
    full_name: Optional[str]
    role: str

    model_config = {"from_attributes": True}


class ProductCreate(BaseModel):
    sku: str
    name: Optional[str] = None
    description: Optional[str] = None
    min_stock_alert: Optional[int] = None

    @field_validator("sku")
    @classmethod
    def sku_must_not_be_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("sku must not be empty")
        return v.strip()


class ProductRead(BaseModel):
    id: int
    sku: str
    name: str
    description: Optional[str]
    min_stock_alert: int

    model_config = {"from_attributes": True}


class StockInCreate(BaseModel):
    sku: str
    lot_number: str
    quantity: int
    cost_price: Optional[float] = None
    received_date: Optional[date] = None
    expiry_date: Optional[date] = None

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("quantity must be greater than 0")
        return v

    @field_validator("cost_price")
    @classmethod
    def cost_must_not_be_negative(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("cost_price must be >= 0")
        return v


class LotRead(BaseModel):
    id: int
    product_id: int
    lot_number: str
    cost_price: float
    received_date: date
    expiry_date: Optional[date]
    quantity_remaining: int

    model_config = {"from_attributes": True}


class StockInResult(BaseModel):
    lot: LotRead
    transaction_id: int
    cost_pending: bool


class LotCostUpdate(BaseModel):
    cost_price: float

    @field_validator("cost_price")
    @classmethod
    def cost_must_not_be_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("cost_price must be >= 0")
        return v


class LotStatusRead(BaseModel):
    lot_id: int
    product_id: int
    sku: str
    name: str
    lot_number: str
    received_date: date
    cost_price: float
    cost_pending: bool
    stock_in: int
    sold: int
    returned: int
    written_off: int
    remaining: int
    status: str


class AvailableProductRead(BaseModel):
    product_id: int
    sku: str
    name: str
    total_stock: int


class SaleItemCreate(BaseModel):
    product_id: int
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("quantity must be greater than 0")
        return v


class SaleCreate(BaseModel):
    order_date: Optional[date] = None
    destination_branch: Optional[str] = None
    customer_name: Optional[str] = None
    customer_address: Optional[str] = None
    phone1: str
    phone2: Optional[str] = None
    cod_amount: float = 0
    ad_id: Optional[int] = None
    items: list[SaleItemCreate] = Field(min_length=1)

    @field_validator("phone1")
    @classmethod
    def phone_must_have_ten_digits(cls, v: str) -> str:
        v = v.strip()
        if len(v) != 10 or not v.isdigit():
            raise ValueError("phone1 must be exactly 10 digits")
        return v

    @field_validator("cod_amount")
    @classmethod
    def cod_must_not_be_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("cod_amount must be >= 0")
        return v


class SaleItemRead(BaseModel):
    id: int
    product_id: int
    quantity: int

    model_config = {"from_attributes": True}


class SaleRead(BaseModel):
    id: int
    order_date: date
    parcel_status: ParcelStatus
    sold_amount: Optional[float]
    return_cost: Optional[float]
    ad_id: Optional[int]
    cod_amount: float
    destination_branch: Optional[str]
    customer_name: Optional[str]
    customer_address: Optional[str]
    phone1: str
    phone2: Optional[str]
    created_at: datetime
    items: list[SaleItemRead] = []

    model_config = {"from_attributes": True}


class DeductionRead(BaseModel):
    lot_id: int
    product_id: int
    quantity: int
    unit_cost: float


class SaleCreateResult(BaseModel):
    sale: SaleRead
    deductions: list[DeductionRead]


class SaleStatusUpdate(BaseModel):
    parcel_status: ParcelStatus
    sold_amount: Optional[float] = None
    return_cost: Optional[float] = None


class SaleAmountsUpdate(BaseModel):
    sold_amount: Optional[float] = None
    return_cost: Optional[float] = None


class ExpenseCreate(BaseModel):
    category: ExpenseCategory
    amount: float
    description: str = ""
    expense_date: Optional[date] = None
    packaging_quantity: Optional[int] = None

    @field_validator("amount")
    @classmethod
    def amount_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("amount must be greater than 0")
        return v


class ExpenseRead(BaseModel):
    id: int
    category: ExpenseCategory
    amount: float
    description: str
    expense_date: date
    created_at: datetime

    model_config = {"from_attributes": True}


class IncomeCreate(BaseModel):
    category: IncomeCategory
    amount: float
    description: Optional[str] = None
    income_date: Optional[date] = None

    @field_validator("amount")
    @classmethod
    def amount_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("amount must be greater than 0")
        return v


class IncomeRead(BaseModel):
    id: int
    category: IncomeCategory
    amount: float
    description: Optional[str]
    income_date: date

    model_config = {"from_attributes": True}


class SaleProfitRowRead(BaseModel):
    sale_id: int
    transaction_id: int
    lot_id: int
    lot_number: str
    sku: str
    parcel_status: Optional[ParcelStatus]
    quantity: int
    unit_cost: float
    cost_total: float
    sold_amount: float
    return_cost: float
    ads_spent: float
    packaging_spent: float
    profit_loss: float
    cost_pending: bool
    ads_pending: bool
    packaging_pending: bool

    model_config = {"from_attributes": True}


class LotProfitRowRead(BaseModel):
    lot_id: int
    lot_number: str
    sku: str
    qty_sold: int
    cost_total: float
    revenue_allocated: float
    return_allocated: float
    ads_spent: float
    packaging_spent: float
    profit: float
    cost_pending: bool

    model_config = {"from_attributes": True}


class ProfitMonthRead(BaseModel):
    month: str
    profit: float


class CashFlowMonthRead(BaseModel):
    month: str
    revenue: float
    investment: float
    expenses: float

    model_config = {"from_attributes": True}


class ProfitReportRead(BaseModel):
    sale_rows: list[SaleProfitRowRead]
    lot_rows: list[LotProfitRowRead]
    profit_trend: list[ProfitMonthRead]
    cash_flow: list[CashFlowMonthRead]


class FinanceSummaryRead(BaseModel):
    total_revenue: float
    total_cogs: float
    gross_profit: float
    total_expenses: float
    total_return: float
    total_investment: float
    total_stock_value: float
    cash_in_hand: float
    margin: float
    pending_cost_data: int
    pending_reason: Optional[str] = None
    currency: str
    profit_trend: list[ProfitMonthRead]
    cash_flow: list[CashFlowMonthRead]

    model_config = {"from_attributes": True}


class HealthRead(BaseModel):
    status: Literal["ok"] = "ok"
