from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from stockledger.entities import LedgerLine, LotRecord

STATUS_HEALTHY = "Healthy"
STATUS_LOW = "Low Stock"
STATUS_OUT = "Out of Stock"

# Estados de venta que mantienen las unidades fuera del stock disponible.
COMMITTED_SALE_STATUSES = frozenset({"processing", "sent", "delivered"})


@dataclass(frozen=True)
class LotStatus:
    lot_id: int
    stock_in: int
    sold: int
    returned: int
    written_off: int
    remaining: int
    status: str


def stock_status(remaining: int, min_stock_alert: int) -> str:
    if remaining <= 0:
        return STATUS_OUT
    if remaining <= min_stock_alert:
        return STATUS_LOW
    return STATUS_HEALTHY


def compute_lot_status(
    lot: LotRecord,
    transactions: Iterable[LedgerLine],
    min_stock_alert: int,
) -> LotStatus:
    """Deriva el stock de un lote a partir de sus transacciones.

    Las unidades devueltas se reportan pero no vuelven a `remaining`.
    """
    stock_in = 0
    sold = 0
    returned = 0
    written_off = 0

    for tx in transactions:
        if tx.lot_id != lot.id:
            continue
        qty = tx.quantity_changed
        if tx.type == "in":
            stock_in += qty
        elif tx.type == "sale":
            if tx.sale_status is None or tx.sale_status in COMMITTED_SALE_STATUSES:
                sold += abs(qty)
            else:
                returned += abs(qty)
        elif tx.type == "adjustment" and qty > 0:
            stock_in += qty
        elif qty < 0:
            written_off += abs(qty)

    remaining = stock_in - sold - written_off
    return LotStatus(
        lot_id=lot.id,
        stock_in=stock_in,
        sold=sold,
        returned=returned,
        written_off=written_off,
        remaining=remaining,
        status=stock_status(remaining, min_stock_alert),
    )


def product_stock(statuses: Iterable[tuple[int, LotStatus]]) -> dict[int, int]:
    """Stock disponible por producto, a partir de pares (product_id, LotStatus)."""
    totals: dict[int, int] = {}
    for product_id, status in statuses:
        totals[product_id] = totals.get(product_id, 0) + status.remaining
    return {pid: max(0, total) for pid, total in totals.items()}
