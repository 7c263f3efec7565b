from __future__ import annotations

from collections.abc import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from stockledger.config import LedgerSettings
from stockledger.db import LedgerContext


def ledger_dep(request: Request) -> LedgerContext:
    return request.app.state.ledger


def settings_dep(request: Request) -> LedgerSettings:
    return request.app.state.settings


def session_dep(request: Request) -> Generator[Session, None, None]:
    db = ledger_dep(request).session()
    try:
        yield db
    finally:
        db.close()
