from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from stockledger.config import LedgerSettings
from stockledger.core.profit import (
    ProfitReport,
    aggregate_profit,
    cash_flow_series,
    profit_trend_series,
    summarize_finances,
)
from stockledger.errors import REASON_COST_DATA
from stockledger.models import Expense, IncomeEntry, User
from stockledger.repositories.ledger_repository import LedgerRepository
from stockledger.schemas import (
    CashFlowMonthRead,
    ExpenseCreate,
    FinanceSummaryRead,
    IncomeCreate,
    LotProfitRowRead,
    ProfitMonthRead,
    ProfitReportRead,
    SaleProfitRowRead,
)
from stockledger.services.http_errors import invalid
from stockledger.services.inventory_service import InventoryService

logger = logging.getLogger(__name__)


class FinanceService:
    def __init__(self, db: Session, settings: Optional[LedgerSettings] = None):
        self._db = db
        self._ledger = LedgerRepository(db)
        self._settings = settings or LedgerSettings()
        self._inventory = InventoryService(db, self._settings.default_min_stock_alert)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def create_expense(self, payload: ExpenseCreate, user: Optional[User] = None) -> Expense:
        description = payload.description.strip()
        if payload.category == "packaging":
            # El coste unitario de embalaje se deriva de "Qty: N" en la descripción.
            if payload.packaging_quantity is None or payload.packaging_quantity < 1:
                raise invalid("packaging_quantity must be >= 1 for packaging expenses")
            description = f"Qty: {payload.packaging_quantity} | {description}".rstrip(" |")
        elif payload.packaging_quantity is not None:
            raise invalid("packaging_quantity only applies to packaging expenses")

        expense = Expense(
            category=payload.category,
            amount=payload.amount,
            description=description,
            expense_date=payload.expense_date or date.today(),
            created_by=user.id if user is not None else None,
            created_at=self._now(),
        )
        self._ledger.add(expense)
        self._db.commit()
        self._db.refresh(expense)
        logger.info("Expense %s recorded: %s %.2f", expense.id, expense.category, expense.amount)
        return expense

    def list_expenses(self, category: Optional[str] = None) -> list[Expense]:
        return self._ledger.expense_rows(category=category)

    def create_income(self, payload: IncomeCreate, user: Optional[User] = None) -> IncomeEntry:
        entry = IncomeEntry(
            category=payload.category,
            amount=payload.amount,
            description=(payload.description or "").strip() or None,
            income_date=payload.income_date or date.today(),
            created_by=user.id if user is not None else None,
            created_at=self._now(),
        )
        self._ledger.add(entry)
        self._db.commit()
        self._db.refresh(entry)
        logger.info("Income %s recorded: %s %.2f", entry.id, entry.category, entry.amount)
        return entry

    def list_income(self, category: Optional[str] = None) -> list[IncomeEntry]:
        return self._ledger.income_rows(category=category)

    def _load(self):
        return (
            self._ledger.ledger_lines(),
            self._ledger.sales(),
            self._ledger.expenses(),
            self._ledger.income(),
        )

    def _series(self, report: ProfitReport, now: datetime) -> tuple[list[ProfitMonthRead], list[CashFlowMonthRead]]:
        reports = self._settings.reports
        trend = [
            ProfitMonthRead(**point)
            for point in profit_trend_series(report.monthly.profit_trend, reports.profit_trend_months, now)
        ]
        cash_flow = [
            CashFlowMonthRead.model_validate(month)
            for month in cash_flow_series(report.monthly.cash_flow, reports.cash_flow_months, now)
        ]
        return trend, cash_flow

    def profit_report(self, now: Optional[datetime] = None) -> ProfitReportRead:
        now = now or self._now()
        transactions, sales, expenses, income = self._load()
        report = aggregate_profit(transactions, sales, expenses, income)
        trend, cash_flow = self._series(report, now)
        return ProfitReportRead(
            sale_rows=[SaleProfitRowRead.model_validate(row) for row in report.sale_rows],
            lot_rows=[LotProfitRowRead.model_validate(row) for row in report.lot_rows],
            profit_trend=trend,
            cash_flow=cash_flow,
        )

    def finance_summary(self, now: Optional[datetime] = None) -> FinanceSummaryRead:
        now = now or self._now()
        transactions, sales, expenses, income = self._load()
        report = aggregate_profit(transactions, sales, expenses, income)
        summary = summarize_finances(
            report, transactions, sales, expenses, income, self._inventory.lot_values()
        )
        if summary.pending_cost_data:
            logger.info("%d sales still have pending cost data", summary.pending_cost_data)
        trend, cash_flow = self._series(report, now)
        return FinanceSummaryRead(
            **asdict(summary),
            pending_reason=REASON_COST_DATA if summary.pending_cost_data else None,
            currency=self._settings.currency.code,
            profit_trend=trend,
            cash_flow=cash_flow,
        )
