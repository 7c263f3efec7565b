from __future__ import annotations

from typing import Any, Optional


REASON_STOCK = "stock"
REASON_COST_DATA = "cost_data"
REASON_PERMISSION = "permission"
REASON_STATE = "state"


class LedgerError(Exception):
    """Error de dominio del ledger. `reason` distingue la causa para el usuario."""

    reason = REASON_STATE

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason

    def as_detail(self) -> dict[str, Any]:
        return {"reason": self.reason, "message": self.message}


class InsufficientStockError(LedgerError):
    reason = REASON_STOCK

    def __init__(self, product_id: int, requested: int, available: int, sku: Optional[str] = None):
        label = sku or f"product {product_id}"
        super().__init__(f"Insufficient stock for {label}. Requested: {requested}, available: {available}")
        self.product_id = product_id
        self.requested = requested
        self.available = available
        self.sku = sku

    def as_detail(self) -> dict[str, Any]:
        detail = super().as_detail()
        detail.update(
            {
                "product_id": self.product_id,
                "sku": self.sku,
                "requested": self.requested,
                "available": self.available,
            }
        )
        return detail


class StockConflictError(LedgerError):
    """Otra venta consumió el stock de un lote entre la planificación y el commit."""

    reason = REASON_STOCK

    def __init__(self, lot_ids: list[int]):
        super().__init__(
            "Stock changed while the order was being saved (lots: {}). Nothing was committed.".format(
                ", ".join(str(i) for i in lot_ids)
            )
        )
        self.lot_ids = lot_ids


class InvalidStateTransitionError(LedgerError):
    reason = REASON_STATE
