from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from stockledger.auth import get_user_by_username
from stockledger.deps import session_dep
from stockledger.errors import REASON_PERMISSION
from stockledger.models import User


def get_current_user_from_session(db: Session, request: Request) -> Optional[User]:
    session = getattr(request, "session", None) or {}
    username = session.get("username")
    if not username:
        return None
    user = get_user_by_username(db, str(username))
    if user is None or not user.is_active:
        return None
    return user


def is_admin(user: Optional[User]) -> bool:
    return user is not None and (user.role or "").lower() == "admin"


def require_user_api(
    request: Request,
    db: Session = Depends(session_dep),
) -> User:
    user = get_current_user_from_session(db, request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"reason": REASON_PERMISSION, "message": "Not authenticated"},
        )
    return user


def require_admin_api(
    request: Request,
    db: Session = Depends(session_dep),
) -> User:
    user = require_user_api(request=request, db=db)
    if not is_admin(user):
        raise HTTPException(
            status_code=403,
            detail={"reason": REASON_PERMISSION, "message": "Admin required"},
        )
    return user
