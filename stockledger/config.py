from __future__ import annotations

import configparser
import logging
import os
from pathlib import Path
from typing import Dict, Optional, Tuple

from pydantic import BaseModel

from stockledger.utils import get_session_secret

logger = logging.getLogger(__name__)


class CurrencyConfig(BaseModel):
    code: str = "INR"
    symbol: str = "₹"


class RefreshConfig(BaseModel):
    poll_seconds: float = 15.0
    debounce_seconds: float = 0.25


class ReportsConfig(BaseModel):
    profit_trend_months: int = 12
    cash_flow_months: int = 6


class LedgerSettings(BaseModel):
    database_url: str = "sqlite+pysqlite:///./stockledger.db"
    session_secret: str = ""
    log_level: str = "INFO"
    default_min_stock_alert: int = 5
    currency: CurrencyConfig = CurrencyConfig()
    refresh: RefreshConfig = RefreshConfig()
    reports: ReportsConfig = ReportsConfig()


_cached_settings: Dict[str, Tuple[LedgerSettings, float]] = {}


def _read_file(path: Path) -> configparser.ConfigParser:
    parser = configparser.ConfigParser()
    if path.exists():
        parser.read(path, encoding="utf-8")
    return parser


def load_settings(path: Optional[str] = None) -> LedgerSettings:
    """Carga la configuración desde el fichero INI y las variables de entorno.

    Las variables de entorno tienen prioridad sobre el fichero. El resultado se
    cachea por ruta y se recarga cuando cambia la fecha de modificación.
    """
    cfg_path = Path(path or os.getenv("STOCKLEDGER_CONFIG_PATH", "stockledger.conf"))
    path_str = str(cfg_path)
    try:
        mtime = float(cfg_path.stat().st_mtime)
    except OSError:
        mtime = 0.0

    cached = _cached_settings.get(path_str)
    if cached is not None and cached[1] == mtime:
        return cached[0]

    parser = _read_file(cfg_path)

    def get(section: str, key: str, env: str, default: str) -> str:
        env_value = (os.getenv(env) or "").strip()
        if env_value:
            return env_value
        return (parser.get(section, key, fallback=default) or default).strip()

    def get_int(section: str, key: str, env: str, default: int) -> int:
        raw = get(section, key, env, str(default))
        try:
            return int(raw)
        except ValueError:
            logger.warning("Invalid integer for %s.%s: %r, using %s", section, key, raw, default)
            return default

    def get_float(section: str, key: str, env: str, default: float) -> float:
        raw = get(section, key, env, str(default))
        try:
            return float(raw)
        except ValueError:
            logger.warning("Invalid number for %s.%s: %r, using %s", section, key, raw, default)
            return default

    settings = LedgerSettings(
        database_url=get("database", "url", "DATABASE_URL", LedgerSettings().database_url),
        session_secret=get("security", "session_secret", "SESSION_SECRET", "") or get_session_secret(),
        log_level=get("logging", "level", "LOG_LEVEL", "INFO").upper(),
        default_min_stock_alert=max(get_int("inventory", "default_min_stock_alert", "DEFAULT_MIN_STOCK_ALERT", 5), 0),
        currency=CurrencyConfig(
            code=get("currency", "code", "CURRENCY_CODE", "INR"),
            symbol=get("currency", "symbol", "CURRENCY_SYMBOL", "₹"),
        ),
        refresh=RefreshConfig(
            poll_seconds=max(get_float("refresh", "poll_seconds", "REFRESH_POLL_SECONDS", 15.0), 0.0),
            debounce_seconds=max(get_float("refresh", "debounce_seconds", "REFRESH_DEBOUNCE_SECONDS", 0.25), 0.0),
        ),
        reports=ReportsConfig(
            profit_trend_months=max(get_int("reports", "profit_trend_months", "PROFIT_TREND_MONTHS", 12), 1),
            cash_flow_months=max(get_int("reports", "cash_flow_months", "CASH_FLOW_MONTHS", 6), 1),
        ),
    )

    _cached_settings[path_str] = (settings, mtime)
    return settings
