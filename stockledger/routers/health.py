from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from stockledger.deps import session_dep
from stockledger.schemas import HealthRead

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthRead)
def health(db: Session = Depends(session_dep)) -> HealthRead:
    db.execute(text("SELECT 1"))
    return HealthRead()
