from __future__ import annotations

import os
import secrets
from datetime import date, datetime, timezone
from typing import Optional, Union


def get_session_secret() -> str:
    """Obtiene el secret key para sesiones. Genera uno seguro si no está definido."""
    secret = os.getenv("SESSION_SECRET", "").strip()
    if not secret:
        secret = secrets.token_hex(32)
    return secret


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def shift_month(value: datetime, months: int) -> datetime:
    index = value.year * 12 + (value.month - 1) + months
    return value.replace(year=index // 12, month=index % 12 + 1, day=1)


def month_key(value: Optional[Union[date, datetime]]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        value = as_utc(value)
    return f"{value.year:04d}-{value.month:02d}"
