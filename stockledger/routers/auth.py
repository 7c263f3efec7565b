from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from stockledger.audit import log_event
from stockledger.auth import authenticate
from stockledger.deps import session_dep
from stockledger.errors import REASON_PERMISSION
from stockledger.schemas import LoginRequest, UserRead
from stockledger.security import get_current_user_from_session

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=UserRead)
def login(payload: LoginRequest, request: Request, db: Session = Depends(session_dep)) -> UserRead:
    user = authenticate(db, username=payload.username, password=payload.password)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"reason": REASON_PERMISSION, "message": "Invalid username or password"},
        )
    request.session["username"] = user.username
    log_event(db, user, action="login", entity_type="auth", entity_id=user.username, detail={})
    return UserRead.model_validate(user)


@router.post("/logout", status_code=204)
def logout(request: Request, db: Session = Depends(session_dep)) -> None:
    user = get_current_user_from_session(db, request)
    if user is not None:
        log_event(db, user, action="logout", entity_type="auth", entity_id=user.username, detail={})
    request.session.clear()
