from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from stockledger.core.allocation import SaleAllocation, allocate_costs
from stockledger.core.stock import LotStatus
from stockledger.entities import ExpenseRecord, IncomeRecord, LedgerLine, SaleRecord
from stockledger.utils import as_utc, month_key, shift_month


@dataclass(frozen=True)
class SaleProfitRow:
    sale_id: int
    transaction_id: int
    lot_id: int
    lot_number: str
    sku: str
    parcel_status: Optional[str]
    quantity: int
    unit_cost: float
    cost_total: float
    sold_amount: float
    return_cost: float
    ads_spent: float
    packaging_spent: float
    profit_loss: float
    first_row: bool
    cost_pending: bool
    ads_pending: bool
    packaging_pending: bool
    month: Optional[str]


@dataclass
class LotProfitRow:
    lot_id: int
    lot_number: str
    sku: str
    qty_sold: int = 0
    cost_total: float = 0.0
    revenue_allocated: float = 0.0
    return_allocated: float = 0.0
    ads_spent: float = 0.0
    packaging_spent: float = 0.0
    profit: float = 0.0
    cost_pending: bool = False


@dataclass
class CashFlowMonth:
    month: str
    revenue: float = 0.0
    investment: float = 0.0
    expenses: float = 0.0


@dataclass
class MonthlyRollups:
    profit_trend: dict[str, float] = field(default_factory=dict)
    cash_flow: dict[str, CashFlowMonth] = field(default_factory=dict)


@dataclass
class ProfitReport:
    sale_rows: list[SaleProfitRow]
    lot_rows: list[LotProfitRow]
    monthly: MonthlyRollups
    allocations: dict[int, SaleAllocation]


@dataclass(frozen=True)
class FinanceSummary:
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


def row_profit(
    status: Optional[str],
    quantity: int,
    unit_cost: float,
    sold_amount: float,
    return_cost: float,
    ads_spent: float,
    packaging_spent: float,
) -> float:
    if status == "returned":
        return -(return_cost + ads_spent + packaging_spent)
    return sold_amount - (quantity * unit_cost + ads_spent + packaging_spent)


def effective_unit_cost(line: LedgerLine) -> float:
    # El coste capturado al vender manda; un lote "pendiente" usa su coste corregido.
    if line.unit_cost is not None and line.unit_cost > 0:
        return float(line.unit_cost)
    return float(line.lot_cost_price or 0)


def _sale_month(sale: Optional[SaleRecord], line: LedgerLine) -> Optional[str]:
    if sale is not None:
        return month_key(sale.created_at or sale.order_date)
    return month_key(line.created_at)


def _delivered_revenue(sale: SaleRecord) -> float:
    if sale.parcel_status == "delivered" and sale.sold_amount:
        return float(sale.sold_amount)
    return 0.0


def _return_cost(sale: SaleRecord) -> float:
    if sale.parcel_status == "returned" and sale.return_cost:
        return float(sale.return_cost)
    return 0.0


def sale_lines(transactions: Iterable[LedgerLine]) -> list[LedgerLine]:
    """Líneas venta x lote, en orden determinista (created_at, id)."""
    lines = [
        t for t in transactions
        if t.type == "sale" and t.sale_id is not None and t.lot_id is not None
    ]
    lines.sort(key=lambda t: (as_utc(t.created_at), t.id))
    return lines


def build_sale_rows(
    lines: list[LedgerLine],
    sales_by_id: Mapping[int, SaleRecord],
    allocations: Mapping[int, SaleAllocation],
) -> list[SaleProfitRow]:
    rows: list[SaleProfitRow] = []
    seen: set[int] = set()
    for line in lines:
        sale = sales_by_id.get(line.sale_id)
        status = sale.parcel_status if sale is not None else line.sale_status
        first_row = line.sale_id not in seen
        seen.add(line.sale_id)

        quantity = abs(line.quantity_changed)
        unit_cost = effective_unit_cost(line)
        sold_amount = _delivered_revenue(sale) if first_row and sale is not None else 0.0
        return_cost = _return_cost(sale) if first_row and sale is not None else 0.0
        alloc = allocations.get(line.sale_id)
        ads_spent = alloc.ads_spent if first_row and alloc is not None else 0.0
        packaging_spent = alloc.packaging_spent if first_row and alloc is not None else 0.0

        rows.append(
            SaleProfitRow(
                sale_id=line.sale_id,
                transaction_id=line.id,
                lot_id=line.lot_id,
                lot_number=line.lot_number or "N/A",
                sku=line.sku or "SKU",
                parcel_status=status,
                quantity=quantity,
                unit_cost=unit_cost,
                cost_total=quantity * unit_cost,
                sold_amount=sold_amount,
                return_cost=return_cost,
                ads_spent=ads_spent,
                packaging_spent=packaging_spent,
                profit_loss=row_profit(
                    status, quantity, unit_cost, sold_amount, return_cost, ads_spent, packaging_spent
                ),
                first_row=first_row,
                cost_pending=unit_cost <= 0,
                ads_pending=first_row and alloc is not None and alloc.ads_pending,
                packaging_pending=first_row and alloc is not None and alloc.packaging_pending,
                month=_sale_month(sale, line),
            )
        )
    return rows


def build_lot_rows(
    lines: list[LedgerLine],
    sales_by_id: Mapping[int, SaleRecord],
    allocations: Mapping[int, SaleAllocation],
) -> list[LotProfitRow]:
    """Agrega por lote repartiendo ingresos y costes por la cantidad de cada lote en la venta."""
    totals_by_sale: dict[int, int] = {}
    for line in lines:
        totals_by_sale[line.sale_id] = totals_by_sale.get(line.sale_id, 0) + abs(line.quantity_changed)

    by_lot: dict[int, LotProfitRow] = {}
    for line in lines:
        total_qty = totals_by_sale.get(line.sale_id, 0)
        if total_qty <= 0:
            continue
        qty = abs(line.quantity_changed)
        share = qty / total_qty

        sale = sales_by_id.get(line.sale_id)
        status = sale.parcel_status if sale is not None else line.sale_status
        delivered = status == "delivered"
        delivered_qty = qty if delivered else 0
        revenue = share * _delivered_revenue(sale) if sale is not None else 0.0
        returned = share * _return_cost(sale) if sale is not None else 0.0
        alloc = allocations.get(line.sale_id)
        ads = share * alloc.ads_spent if alloc is not None else 0.0
        packaging = share * alloc.packaging_spent if alloc is not None else 0.0
        unit_cost = effective_unit_cost(line)
        cost_total = delivered_qty * unit_cost

        row = by_lot.get(line.lot_id)
        if row is None:
            row = LotProfitRow(
                lot_id=line.lot_id,
                lot_number=line.lot_number or "N/A",
                sku=line.sku or "SKU",
            )
            by_lot[line.lot_id] = row
        row.qty_sold += delivered_qty
        row.cost_total += cost_total
        row.revenue_allocated += revenue
        row.return_allocated += returned
        row.ads_spent += ads
        row.packaging_spent += packaging
        row.profit += revenue - (cost_total + ads + packaging + returned)
        if unit_cost <= 0 or (alloc is not None and (alloc.ads_pending or alloc.packaging_pending)):
            row.cost_pending = True

    # Mayor beneficio primero.
    return sorted(by_lot.values(), key=lambda r: (-r.profit, r.lot_id))


def build_monthly(
    sale_rows: Iterable[SaleProfitRow],
    sales: Iterable[SaleRecord],
    expenses: Iterable[ExpenseRecord],
    income: Iterable[IncomeRecord],
) -> MonthlyRollups:
    rollups = MonthlyRollups()

    # Tendencia de beneficio: mes de creación de la venta.
    for row in sale_rows:
        if row.month is None:
            continue
        rollups.profit_trend[row.month] = rollups.profit_trend.get(row.month, 0.0) + row.profit_loss

    # Flujo de caja: fechas de negocio declaradas (pedido, ingreso, gasto).
    def bucket(key: Optional[str]) -> Optional[CashFlowMonth]:
        if key is None:
            return None
        if key not in rollups.cash_flow:
            rollups.cash_flow[key] = CashFlowMonth(month=key)
        return rollups.cash_flow[key]

    for sale in sales:
        revenue = _delivered_revenue(sale)
        if revenue:
            bucket(month_key(sale.order_date)).revenue += revenue

    for entry in income:
        target = bucket(month_key(entry.income_date))
        if entry.category == "investment":
            target.investment += float(entry.amount or 0)
        else:
            target.revenue += float(entry.amount or 0)

    for expense in expenses:
        target = bucket(month_key(expense.expense_date or expense.created_at))
        target.expenses += float(expense.amount or 0)

    return rollups


def aggregate_profit(
    transactions: Iterable[LedgerLine],
    sales: Iterable[SaleRecord],
    expenses: Iterable[ExpenseRecord],
    income: Iterable[IncomeRecord] = (),
) -> ProfitReport:
    """Recalcula las vistas de beneficio por venta, por lote y mensuales.

    Es una función pura: con el mismo ledger devuelve exactamente las mismas filas.
    """
    sale_list = list(sales)
    expense_list = list(expenses)
    sales_by_id = {s.id: s for s in sale_list}
    allocations = allocate_costs(sale_list, expense_list)

    lines = sale_lines(transactions)
    sale_rows = build_sale_rows(lines, sales_by_id, allocations)
    lot_rows = build_lot_rows(lines, sales_by_id, allocations)
    monthly = build_monthly(sale_rows, sale_list, expense_list, income)
    return ProfitReport(sale_rows=sale_rows, lot_rows=lot_rows, monthly=monthly, allocations=allocations)


def month_window(months: int, now: datetime) -> list[str]:
    start = shift_month(as_utc(now), -(max(months, 1) - 1))
    return [month_key(shift_month(start, i)) for i in range(max(months, 1))]


def profit_trend_series(trend: Mapping[str, float], months: int, now: datetime) -> list[dict]:
    return [{"month": key, "profit": float(trend.get(key, 0.0))} for key in month_window(months, now)]


def cash_flow_series(cash_flow: Mapping[str, CashFlowMonth], months: int, now: datetime) -> list[CashFlowMonth]:
    return [cash_flow.get(key) or CashFlowMonth(month=key) for key in month_window(months, now)]


def summarize_finances(
    report: ProfitReport,
    transactions: Iterable[LedgerLine],
    sales: Iterable[SaleRecord],
    expenses: Iterable[ExpenseRecord],
    income: Iterable[IncomeRecord],
    lot_values: Iterable[tuple[LotStatus, float]],
) -> FinanceSummary:
    expense_list = list(expenses)
    income_list = list(income)

    sales_revenue = sum(_delivered_revenue(s) for s in sales)
    other_income = sum(float(i.amount or 0) for i in income_list if i.category == "income")
    total_revenue = sales_revenue + other_income
    total_investment = sum(float(i.amount or 0) for i in income_list if i.category == "investment")

    # Valor de compra del stock recibido.
    total_cogs = sum(
        abs(t.quantity_changed) * float(t.lot_cost_price or 0)
        for t in transactions
        if t.type == "in"
    )
    total_expenses = sum(float(e.amount or 0) for e in expense_list)
    other_expenses = sum(float(e.amount or 0) for e in expense_list if e.category == "other")
    total_return = sum(row.return_cost for row in report.sale_rows)
    gross_profit = sum(row.profit_loss for row in report.sale_rows) - other_expenses
    total_stock_value = sum(max(0, status.remaining) * float(cost or 0) for status, cost in lot_values)

    net = total_revenue - total_cogs - total_expenses
    pending_sales = {row.sale_id for row in report.sale_rows if row.cost_pending}
    pending_sales.update(
        sale_id
        for sale_id, alloc in report.allocations.items()
        if alloc.ads_pending or alloc.packaging_pending
    )

    return FinanceSummary(
        total_revenue=total_revenue,
        total_cogs=total_cogs,
        gross_profit=gross_profit,
        total_expenses=total_expenses,
        total_return=total_return,
        total_investment=total_investment,
        total_stock_value=total_stock_value,
        cash_in_hand=(total_revenue + total_investment) - (total_cogs + total_expenses + total_return),
        margin=(net / total_revenue * 100.0) if total_revenue > 0 else 0.0,
        pending_cost_data=len(pending_sales),
    )
