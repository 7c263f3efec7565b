from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from stockledger.entities import SaleRecord
from stockledger.errors import REASON_PERMISSION, InvalidStateTransitionError

# processing -> sent -> delivered; processing/sent -> returned
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "processing": frozenset({"sent", "returned"}),
    "sent": frozenset({"delivered", "returned"}),
    "delivered": frozenset(),
    "returned": frozenset(),
}

TERMINAL_AMOUNT_FIELD = {"delivered": "sold_amount", "returned": "return_cost"}


@dataclass(frozen=True)
class TransitionResult:
    changes: dict
    changed: bool


def _amount_is_set(value: Optional[float]) -> bool:
    return value is not None and float(value) > 0


def apply_transition(
    sale: SaleRecord,
    target: str,
    amount: Optional[float] = None,
    role: str = "staff",
) -> TransitionResult:
    """Valida un cambio de parcel_status y devuelve los campos a persistir.

    Entrar de nuevo en el mismo estado no hace nada. Un importe terminal ya
    fijado no puede reescribirse con el rol `staff`.
    """
    current = sale.parcel_status
    if target not in ALLOWED_TRANSITIONS:
        raise InvalidStateTransitionError(f"Unknown parcel status: {target}")

    amount_field = TERMINAL_AMOUNT_FIELD.get(target)
    if target == current:
        if amount is None:
            return TransitionResult(changes={}, changed=False)
        if amount_field is None:
            raise InvalidStateTransitionError(f"No amount is recorded for a sale in {target}")
        return set_terminal_amount(sale, amount, role)

    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStateTransitionError(f"Cannot move a sale from {current} to {target}")

    changes: dict = {"parcel_status": target}
    if amount_field is not None:
        if amount is None or float(amount) <= 0:
            raise InvalidStateTransitionError(f"{amount_field} > 0 is required to mark a sale as {target}")
        if _amount_is_set(getattr(sale, amount_field)) and role != "admin":
            raise InvalidStateTransitionError(
                f"{amount_field} is already recorded for this sale",
                reason=REASON_PERMISSION,
            )
        changes[amount_field] = float(amount)
    elif amount is not None:
        raise InvalidStateTransitionError(f"No amount is recorded when a sale moves to {target}")

    return TransitionResult(changes=changes, changed=True)


def set_terminal_amount(sale: SaleRecord, amount: float, role: str) -> TransitionResult:
    """Fija sold_amount/return_cost de una venta ya en estado terminal."""
    amount_field = TERMINAL_AMOUNT_FIELD.get(sale.parcel_status)
    if amount_field is None:
        raise InvalidStateTransitionError(f"A sale in {sale.parcel_status} has no amount to record")
    if float(amount) <= 0:
        raise InvalidStateTransitionError(f"{amount_field} must be > 0")

    current_value = getattr(sale, amount_field)
    if _amount_is_set(current_value):
        if role != "admin":
            raise InvalidStateTransitionError(
                f"{amount_field} is already recorded for this sale",
                reason=REASON_PERMISSION,
            )
        if float(current_value) == float(amount):
            return TransitionResult(changes={}, changed=False)
    return TransitionResult(changes={amount_field: float(amount)}, changed=True)
