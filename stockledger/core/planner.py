from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Optional

from stockledger.errors import InsufficientStockError


@dataclass(frozen=True)
class AvailableLot:
    lot_id: int
    product_id: int
    received_date: date
    remaining: int
    cost_price: float = 0


@dataclass(frozen=True)
class DeductionStep:
    lot_id: int
    product_id: int
    deduct_qty: int
    unit_cost: float
    available_before: int


@dataclass(frozen=True)
class DeductionPlan:
    product_id: int
    quantity: int
    steps: tuple[DeductionStep, ...]

    @property
    def total(self) -> int:
        return sum(step.deduct_qty for step in self.steps)


@dataclass(frozen=True)
class OrderItem:
    product_id: int
    quantity: int
    sku: Optional[str] = None


def fifo_order(lots: Iterable[AvailableLot]) -> list[AvailableLot]:
    return sorted(
        (lot for lot in lots if lot.remaining > 0),
        key=lambda lot: (lot.received_date, lot.lot_id),
    )


def plan_deduction(
    product_id: int,
    quantity: int,
    lots: Iterable[AvailableLot],
    sku: Optional[str] = None,
) -> DeductionPlan:
    """Selecciona lotes FIFO para cubrir `quantity`. No modifica nada.

    Lanza InsufficientStockError antes de construir ningún paso si el stock
    disponible no alcanza.
    """
    if quantity <= 0:
        raise ValueError("quantity must be > 0")

    candidates = fifo_order(lot for lot in lots if lot.product_id == product_id)
    available = sum(lot.remaining for lot in candidates)
    if available < quantity:
        raise InsufficientStockError(product_id, quantity, available, sku=sku)

    steps: list[DeductionStep] = []
    still_needed = quantity
    for lot in candidates:
        if still_needed <= 0:
            break
        take = min(lot.remaining, still_needed)
        steps.append(
            DeductionStep(
                lot_id=lot.lot_id,
                product_id=product_id,
                deduct_qty=take,
                unit_cost=float(lot.cost_price or 0),
                available_before=lot.remaining,
            )
        )
        still_needed -= take

    return DeductionPlan(product_id=product_id, quantity=quantity, steps=tuple(steps))


def plan_order(
    items: Sequence[OrderItem],
    lots: Mapping[int, Iterable[AvailableLot]],
) -> list[DeductionPlan]:
    """Planifica todos los artículos de un pedido o ninguno.

    Cada artículo se planifica contra la disponibilidad que dejaron los
    anteriores, así dos líneas del mismo producto no reclaman las mismas unidades.
    """
    if not items:
        raise ValueError("order must contain at least one item")

    working: dict[int, dict[int, AvailableLot]] = {}
    plans: list[DeductionPlan] = []
    for item in items:
        pool = working.get(item.product_id)
        if pool is None:
            pool = {lot.lot_id: lot for lot in lots.get(item.product_id, ())}
            working[item.product_id] = pool

        plan = plan_deduction(item.product_id, item.quantity, pool.values(), sku=item.sku)
        for step in plan.steps:
            lot = pool[step.lot_id]
            pool[step.lot_id] = AvailableLot(
                lot_id=lot.lot_id,
                product_id=lot.product_id,
                received_date=lot.received_date,
                remaining=lot.remaining - step.deduct_qty,
                cost_price=lot.cost_price,
            )
        plans.append(plan)
    return plans
