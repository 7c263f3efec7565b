from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockledger.core.planner import AvailableLot
from stockledger.core.stock import LotStatus, compute_lot_status, product_stock
from stockledger.entities import LedgerLine, LotRecord, ProductRecord
from stockledger.models import Product, ProductLot, Transaction, User
from stockledger.repositories.ledger_repository import LedgerRepository
from stockledger.repositories.product_repository import ProductRepository
from stockledger.schemas import (
    AvailableProductRead,
    LotRead,
    LotStatusRead,
    StockInCreate,
    StockInResult,
)
from stockledger.security import is_admin
from stockledger.services.http_errors import invalid, not_found

logger = logging.getLogger(__name__)


class InventoryService:
    def __init__(self, db: Session, default_min_stock_alert: int = 5):
        self._db = db
        self._products = ProductRepository(db)
        self._ledger = LedgerRepository(db)
        self._default_min_stock_alert = default_min_stock_alert

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _get_or_create_product(self, sku: str) -> Product:
        product = self._products.get_by_sku(sku)
        if product is not None:
            return product
        product = Product(
            sku=sku.strip(),
            name=sku.strip(),
            min_stock_alert=self._default_min_stock_alert,
            created_at=self._now(),
        )
        self._products.add(product)
        self._db.flush()
        logger.info("Created product %s on stock-in", product.sku)
        return product

    def stock_in(self, payload: StockInCreate, user: Optional[User] = None) -> StockInResult:
        if not payload.sku.strip():
            raise invalid("sku is required")
        if not payload.lot_number.strip():
            raise invalid("lot_number is required")

        # Solo un admin fija el coste; el resto crea el lote con coste pendiente.
        cost_price = float(payload.cost_price or 0) if is_admin(user) else 0.0

        try:
            product = self._get_or_create_product(payload.sku)
            lot = ProductLot(
                product_id=product.id,
                lot_number=payload.lot_number.strip(),
                cost_price=cost_price,
                received_date=payload.received_date or date.today(),
                expiry_date=payload.expiry_date,
                quantity_remaining=payload.quantity,
                created_by=user.id if user is not None else None,
                created_at=self._now(),
            )
            self._ledger.add(lot)
            self._db.flush()

            tx = Transaction(
                product_id=product.id,
                lot_id=lot.id,
                type="in",
                quantity_changed=payload.quantity,
                performed_by=user.id if user is not None else None,
                created_at=self._now(),
            )
            self._ledger.add(tx)
            self._db.commit()
        except IntegrityError as e:
            self._db.rollback()
            raise invalid("could not save stock entry") from e

        self._db.refresh(lot)
        logger.info(
            "Stock-in: %s lot %s qty=%d cost=%.4f", product.sku, lot.lot_number, payload.quantity, cost_price
        )
        return StockInResult(
            lot=LotRead.model_validate(lot),
            transaction_id=tx.id,
            cost_pending=cost_price <= 0,
        )

    def correct_lot_cost(self, lot_id: int, cost_price: float) -> ProductLot:
        if cost_price < 0:
            raise invalid("cost_price must be >= 0")
        lot = self._ledger.get_lot(lot_id)
        if lot is None:
            raise not_found("Lot")
        previous = float(lot.cost_price or 0)
        lot.cost_price = cost_price
        self._db.commit()
        self._db.refresh(lot)
        logger.info("Lot %s cost corrected: %.4f -> %.4f", lot.id, previous, cost_price)
        return lot

    def _statuses(
        self, product_ids: Optional[Iterable[int]] = None
    ) -> list[tuple[LotRecord, ProductRecord, LotStatus]]:
        ids = list(product_ids) if product_ids is not None else None
        lots = self._ledger.lots(product_ids=ids)
        lines_by_lot: dict[int, list[LedgerLine]] = {}
        for line in self._ledger.ledger_lines(product_ids=ids):
            if line.lot_id is not None:
                lines_by_lot.setdefault(line.lot_id, []).append(line)

        return [
            (lot, product, compute_lot_status(lot, lines_by_lot.get(lot.id, []), product.min_stock_alert))
            for lot, product in lots
        ]

    def lot_statuses(self, query: str = "") -> list[LotStatusRead]:
        q = query.strip().lower()
        out: list[LotStatusRead] = []
        for lot, product, status in self._statuses():
            if q and q not in product.sku.lower() and q not in lot.lot_number.lower():
                continue
            out.append(
                LotStatusRead(
                    lot_id=lot.id,
                    product_id=product.id,
                    sku=product.sku,
                    name=product.name,
                    lot_number=lot.lot_number,
                    received_date=lot.received_date,
                    cost_price=lot.cost_price,
                    cost_pending=lot.cost_pending,
                    stock_in=status.stock_in,
                    sold=status.sold,
                    returned=status.returned,
                    written_off=status.written_off,
                    remaining=status.remaining,
                    status=status.status,
                )
            )
        return out

    def lot_values(self) -> list[tuple[LotStatus, float]]:
        return [(status, lot.cost_price) for lot, _product, status in self._statuses()]

    def available_products(self) -> list[AvailableProductRead]:
        statuses = self._statuses()
        products = {product.id: product for _lot, product, _status in statuses}
        totals = product_stock((lot.product_id, status) for lot, _product, status in statuses)
        return [
            AvailableProductRead(
                product_id=pid,
                sku=products[pid].sku,
                name=products[pid].name,
                total_stock=total,
            )
            for pid, total in sorted(totals.items(), key=lambda kv: products[kv[0]].sku)
            if total > 0
        ]

    def available_lots(self, product_ids: Iterable[int]) -> dict[int, list[AvailableLot]]:
        out: dict[int, list[AvailableLot]] = {}
        for lot, _product, status in self._statuses(product_ids):
            out.setdefault(lot.product_id, []).append(
                AvailableLot(
                    lot_id=lot.id,
                    product_id=lot.product_id,
                    received_date=lot.received_date,
                    remaining=max(0, status.remaining),
                    cost_price=lot.cost_price,
                )
            )
        return out

    def remaining_for_lots(self, lot_ids: Iterable[int]) -> dict[int, int]:
        wanted = set(lot_ids)
        if not wanted:
            return {}
        lines_by_lot: dict[int, list[LedgerLine]] = {lot_id: [] for lot_id in wanted}
        for line in self._ledger.ledger_lines(lot_ids=wanted):
            lines_by_lot[line.lot_id].append(line)

        out: dict[int, int] = {}
        for lot_id, lines in lines_by_lot.items():
            lot = self._ledger.get_lot(lot_id)
            if lot is None:
                continue
            record = LotRecord.model_validate(lot)
            out[lot_id] = compute_lot_status(record, lines, 0).remaining
        return out
