from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from stockledger.core.lifecycle import TransitionResult, apply_transition, set_terminal_amount
from stockledger.core.planner import DeductionPlan, OrderItem, plan_order
from stockledger.entities import SaleRecord
from stockledger.errors import InsufficientStockError, InvalidStateTransitionError, StockConflictError
from stockledger.models import Sale, SaleItem, Transaction, User
from stockledger.repositories.ledger_repository import LedgerRepository
from stockledger.repositories.product_repository import ProductRepository
from stockledger.schemas import (
    DeductionRead,
    SaleAmountsUpdate,
    SaleCreate,
    SaleCreateResult,
    SaleRead,
    SaleStatusUpdate,
)
from stockledger.services.http_errors import http_error, invalid, not_found
from stockledger.services.inventory_service import InventoryService

logger = logging.getLogger(__name__)


class SalesService:
    def __init__(self, db: Session):
        self._db = db
        self._products = ProductRepository(db)
        self._ledger = LedgerRepository(db)
        self._inventory = InventoryService(db)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def get_sale(self, sale_id: int) -> Sale:
        sale = self._ledger.get_sale(sale_id)
        if sale is None:
            raise not_found("Sale")
        return sale

    def list_sales(self, limit: int = 50) -> list[Sale]:
        return self._ledger.recent_sales(limit=limit)

    def _plan(self, payload: SaleCreate) -> list[DeductionPlan]:
        product_ids = {item.product_id for item in payload.items}
        products = self._products.get_many(product_ids)
        missing = product_ids - set(products)
        if missing:
            raise not_found(f"Product {min(missing)}")

        items = [
            OrderItem(product_id=item.product_id, quantity=item.quantity, sku=products[item.product_id].sku)
            for item in payload.items
        ]
        lots = self._inventory.available_lots(product_ids)
        try:
            return plan_order(items, lots)
        except InsufficientStockError as e:
            logger.info("Order rejected: %s", e.message)
            raise http_error(e) from e

    def _check_ad(self, ad_id: Optional[int]) -> None:
        if ad_id is None:
            return
        expense = self._ledger.get_expense(ad_id)
        if expense is None or expense.category != "ads":
            raise invalid(f"ad_id {ad_id} is not an ads expense")

    def create_sale(self, payload: SaleCreate, user: Optional[User] = None) -> SaleCreateResult:
        """Crea un pedido y sus deducciones FIFO de forma atómica.

        Todos los artículos se planifican antes de escribir nada. Tras el flush
        se revalida el stock de los lotes tocados; si alguno quedó en negativo
        (otra venta lo consumió) se deshace el pedido completo.
        """
        self._check_ad(payload.ad_id)
        plans = self._plan(payload)
        now = self._now()

        try:
            sale = Sale(
                order_date=payload.order_date or date.today(),
                parcel_status="processing",
                ad_id=payload.ad_id,
                cod_amount=payload.cod_amount,
                destination_branch=(payload.destination_branch or "").strip() or None,
                customer_name=(payload.customer_name or "").strip() or None,
                customer_address=(payload.customer_address or "").strip() or None,
                phone1=payload.phone1,
                phone2=(payload.phone2 or "").strip() or None,
                recorded_by=user.id if user is not None else None,
                created_at=now,
            )
            self._ledger.add(sale)
            self._db.flush()

            for item in payload.items:
                self._ledger.add(SaleItem(sale_id=sale.id, product_id=item.product_id, quantity=item.quantity))

            touched: set[int] = set()
            for plan in plans:
                for step in plan.steps:
                    self._ledger.add(
                        Transaction(
                            product_id=step.product_id,
                            lot_id=step.lot_id,
                            type="sale",
                            quantity_changed=-step.deduct_qty,
                            sale_id=sale.id,
                            unit_cost=step.unit_cost,
                            performed_by=user.id if user is not None else None,
                            created_at=now,
                        )
                    )
                    touched.add(step.lot_id)
            self._db.flush()

            remaining = self._inventory.remaining_for_lots(touched)
            conflicts = sorted(lot_id for lot_id, qty in remaining.items() if qty < 0)
            if conflicts:
                raise StockConflictError(conflicts)

            for lot_id, qty in remaining.items():
                lot = self._ledger.get_lot(lot_id)
                lot.quantity_remaining = qty
            self._db.commit()
        except StockConflictError as e:
            self._db.rollback()
            logger.warning("Order rolled back: %s", e.message)
            raise http_error(e) from e
        except Exception:
            self._db.rollback()
            raise

        self._db.refresh(sale)
        deductions = [
            DeductionRead(
                lot_id=step.lot_id,
                product_id=step.product_id,
                quantity=step.deduct_qty,
                unit_cost=step.unit_cost,
            )
            for plan in plans
            for step in plan.steps
        ]
        logger.info(
            "Sale %s created: %s",
            sale.id,
            ", ".join(f"lot {d.lot_id} x{d.quantity}" for d in deductions),
        )
        return SaleCreateResult(sale=SaleRead.model_validate(sale), deductions=deductions)

    def _apply(self, sale: Sale, result: TransitionResult) -> Sale:
        if not result.changed:
            return sale
        for field_name, value in result.changes.items():
            setattr(sale, field_name, value)
        self._db.commit()
        self._db.refresh(sale)
        return sale

    def update_status(self, sale_id: int, payload: SaleStatusUpdate, user: Optional[User] = None) -> Sale:
        sale = self.get_sale(sale_id)
        record = SaleRecord.model_validate(sale)
        role = (user.role if user is not None else "staff") or "staff"

        if payload.parcel_status == "delivered":
            amount = payload.sold_amount
            stray = payload.return_cost
        elif payload.parcel_status == "returned":
            amount = payload.return_cost
            stray = payload.sold_amount
        else:
            amount = payload.sold_amount if payload.sold_amount is not None else payload.return_cost
            stray = None
        if stray is not None:
            raise invalid(f"Only the amount for {payload.parcel_status} can be recorded")

        try:
            result = apply_transition(record, payload.parcel_status, amount=amount, role=role)
        except InvalidStateTransitionError as e:
            logger.info("Sale %s: transition rejected: %s", sale.id, e.message)
            raise http_error(e) from e

        previous = sale.parcel_status
        sale = self._apply(sale, result)
        if result.changed:
            logger.info("Sale %s: %s -> %s %s", sale.id, previous, sale.parcel_status, result.changes)
        return sale

    def correct_amounts(self, sale_id: int, payload: SaleAmountsUpdate, user: Optional[User] = None) -> Sale:
        """Corrección de importes terminales (solo admin)."""
        sale = self.get_sale(sale_id)
        record = SaleRecord.model_validate(sale)
        role = (user.role if user is not None else "staff") or "staff"

        if payload.sold_amount is not None and payload.return_cost is not None:
            raise invalid("Provide either sold_amount or return_cost")
        amount = payload.sold_amount if payload.sold_amount is not None else payload.return_cost
        if amount is None:
            raise invalid("An amount is required")
        expected = "delivered" if payload.sold_amount is not None else "returned"
        if record.parcel_status != expected:
            raise http_error(
                InvalidStateTransitionError(f"Sale {sale.id} is {record.parcel_status}, not {expected}")
            )

        try:
            result = set_terminal_amount(record, amount, role)
        except InvalidStateTransitionError as e:
            raise http_error(e) from e

        sale = self._apply(sale, result)
        if result.changed:
            logger.info("Sale %s amounts corrected: %s", sale.id, result.changes)
        return sale
