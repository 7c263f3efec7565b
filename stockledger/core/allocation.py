from __future__ import annotations

import logging
import re
from bisect import bisect_right
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from stockledger.entities import ExpenseRecord, SaleRecord
from stockledger.utils import as_utc

logger = logging.getLogger(__name__)

_PACKAGING_QTY_RE = re.compile(r"qty\s*:\s*(\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class SaleAllocation:
    sale_id: int
    ads_spent: float = 0.0
    packaging_spent: float = 0.0
    ads_pending: bool = False
    packaging_pending: bool = False


def packaging_quantity(description: Optional[str]) -> int:
    if not description:
        return 0
    match = _PACKAGING_QTY_RE.search(description)
    return int(match.group(1)) if match else 0


def packaging_unit_cost(expense: ExpenseRecord) -> float:
    qty = packaging_quantity(expense.description)
    amount = float(expense.amount or 0)
    if qty > 0:
        return amount / qty
    return amount


class PackagingSeries:
    """Serie temporal ordenada del coste unitario de embalaje (función escalón)."""

    def __init__(self, expenses: Iterable[ExpenseRecord]):
        entries = sorted(
            (
                (as_utc(e.created_at), e.id, packaging_unit_cost(e))
                for e in expenses
                if e.category == "packaging"
            ),
            key=lambda entry: (entry[0], entry[1]),
        )
        self._timestamps = [ts for ts, _id, _cost in entries]
        self._unit_costs = [cost for _ts, _id, cost in entries]

    def __len__(self) -> int:
        return len(self._timestamps)

    def unit_cost_at(self, moment: datetime) -> Optional[float]:
        index = bisect_right(self._timestamps, as_utc(moment))
        if index == 0:
            return None
        return self._unit_costs[index - 1]


def ad_budgets(expenses: Iterable[ExpenseRecord]) -> dict[int, float]:
    return {e.id: float(e.amount or 0) for e in expenses if e.category == "ads"}


def allocate_costs(
    sales: Iterable[SaleRecord],
    expenses: Iterable[ExpenseRecord],
) -> dict[int, SaleAllocation]:
    """Reparte presupuestos de anuncios y el coste de embalaje por venta.

    Los datos ausentes nunca son un error: se asigna 0 y se marca como pendiente.
    """
    sale_list = list(sales)
    expense_list = list(expenses)

    budgets = ad_budgets(expense_list)
    packaging = PackagingSeries(expense_list)

    sales_per_ad: dict[int, set[int]] = {}
    for sale in sale_list:
        if sale.ad_id is not None:
            sales_per_ad.setdefault(sale.ad_id, set()).add(sale.id)

    allocations: dict[int, SaleAllocation] = {}
    for sale in sale_list:
        ads_spent = 0.0
        ads_pending = False
        if sale.ad_id is not None:
            budget = budgets.get(sale.ad_id)
            if budget is None:
                ads_pending = True
            else:
                ads_spent = budget / len(sales_per_ad[sale.ad_id])

        unit_cost = packaging.unit_cost_at(sale.created_at)
        allocations[sale.id] = SaleAllocation(
            sale_id=sale.id,
            ads_spent=ads_spent,
            packaging_spent=unit_cost if unit_cost is not None else 0.0,
            ads_pending=ads_pending,
            packaging_pending=unit_cost is None,
        )

    pending = sum(1 for a in allocations.values() if a.ads_pending or a.packaging_pending)
    if pending:
        logger.debug("Cost allocation: %d of %d sales have pending cost data", pending, len(allocations))
    return allocations
