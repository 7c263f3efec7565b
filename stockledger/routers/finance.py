from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockledger.audit import log_event
from stockledger.config import LedgerSettings
from stockledger.deps import session_dep, settings_dep
from stockledger.entities import ExpenseCategory, IncomeCategory
from stockledger.models import User
from stockledger.schemas import (
    ExpenseCreate,
    ExpenseRead,
    FinanceSummaryRead,
    IncomeCreate,
    IncomeRead,
    ProfitReportRead,
)
from stockledger.security import require_user_api
from stockledger.services.finance_service import FinanceService

router = APIRouter(tags=["finance"])


def finance_service_dep(
    db: Session = Depends(session_dep),
    settings: LedgerSettings = Depends(settings_dep),
) -> FinanceService:
    return FinanceService(db, settings)


@router.post("/expenses", response_model=ExpenseRead, status_code=201)
def create_expense(
    payload: ExpenseCreate,
    user: User = Depends(require_user_api),
    service: FinanceService = Depends(finance_service_dep),
) -> ExpenseRead:
    expense = service.create_expense(payload, user)
    log_event(
        service._db,
        user,
        action="expense_create",
        entity_type="expense",
        entity_id=str(expense.id),
        detail={"category": expense.category, "amount": expense.amount},
    )
    return ExpenseRead.model_validate(expense)


@router.get("/expenses", response_model=list[ExpenseRead])
def list_expenses(
    category: Optional[ExpenseCategory] = None,
    user: User = Depends(require_user_api),
    service: FinanceService = Depends(finance_service_dep),
) -> list[ExpenseRead]:
    return [ExpenseRead.model_validate(e) for e in service.list_expenses(category)]


@router.post("/income", response_model=IncomeRead, status_code=201)
def create_income(
    payload: IncomeCreate,
    user: User = Depends(require_user_api),
    service: FinanceService = Depends(finance_service_dep),
) -> IncomeRead:
    entry = service.create_income(payload, user)
    log_event(
        service._db,
        user,
        action="income_create",
        entity_type="income",
        entity_id=str(entry.id),
        detail={"category": entry.category, "amount": entry.amount},
    )
    return IncomeRead.model_validate(entry)


@router.get("/income", response_model=list[IncomeRead])
def list_income(
    category: Optional[IncomeCategory] = None,
    user: User = Depends(require_user_api),
    service: FinanceService = Depends(finance_service_dep),
) -> list[IncomeRead]:
    return [IncomeRead.model_validate(i) for i in service.list_income(category)]


@router.get("/reports/profit", response_model=ProfitReportRead)
def profit_report(
    user: User = Depends(require_user_api),
    service: FinanceService = Depends(finance_service_dep),
) -> ProfitReportRead:
    return service.profit_report()


@router.get("/reports/summary", response_model=FinanceSummaryRead)
def finance_summary(
    user: User = Depends(require_user_api),
    service: FinanceService = Depends(finance_service_dep),
) -> FinanceSummaryRead:
    return service.finance_summary()
