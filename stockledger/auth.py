from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import os
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.entities import Role
from stockledger.models import User

logger = logging.getLogger(__name__)

_ALGORITHM = "pbkdf2_sha256"
_PBKDF2_ITERATIONS = 200_000


def _derive(password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)


def hash_password(password: str) -> str:
    salt = os.urandom(16)
    dk = _derive(password, salt, _PBKDF2_ITERATIONS)
    return "$".join(
        (
            _ALGORITHM,
            str(_PBKDF2_ITERATIONS),
            base64.b64encode(salt).decode("ascii"),
            base64.b64encode(dk).decode("ascii"),
        )
    )


def verify_password(password: str, password_hash: str) -> bool:
    try:
        algo, iters_s, salt_b64, hash_b64 = (password_hash or "").split("$", 3)
        iters = int(iters_s)
        salt = base64.b64decode(salt_b64.encode("ascii"), validate=True)
        expected = base64.b64decode(hash_b64.encode("ascii"), validate=True)
    except (ValueError, binascii.Error):
        return False
    if algo != _ALGORITHM:
        return False
    return hmac.compare_digest(_derive(password, salt, iters), expected)


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    u = (username or "").strip()
    if not u:
        return None
    return db.scalar(select(User).where(User.username == u))


def authenticate(db: Session, username: str, password: str) -> Optional[User]:
    user = get_user_by_username(db, username)
    if user is None or not user.is_active:
        return None
    if not verify_password(password or "", user.password_hash):
        return None
    return user


def ensure_user(db: Session, username: str, password: str, role: Role) -> Optional[User]:
    """Crea el usuario si no existe; si existe solo actualiza su rol y lo activa."""
    username = (username or "").strip()
    if not username:
        return None
    user = get_user_by_username(db, username)
    if user is None:
        user = User(username=username, password_hash=hash_password(password or ""), role=role, is_active=True)
        db.add(user)
        logger.info("Seeded %s user %s", role, username)
    else:
        user.role = role
        user.is_active = True
    db.commit()
    db.refresh(user)
    return user
