from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from stockledger.auth import ensure_user
from stockledger.config import LedgerSettings, load_settings
from stockledger.db import LedgerContext
from stockledger.routers.auth import router as auth_router
from stockledger.routers.finance import router as finance_router
from stockledger.routers.health import router as health_router
from stockledger.routers.inventory import router as inventory_router
from stockledger.routers.products import router as products_router
from stockledger.routers.sales import router as sales_router
from stockledger.utils import get_session_secret

logger = logging.getLogger(__name__)


def _seed_users(ledger: LedgerContext) -> None:
    """Asegura los usuarios admin y staff definidos por entorno."""
    users = [
        (os.getenv("ADMIN_USERNAME", "admin"), os.getenv("ADMIN_PASSWORD", "admin"), "admin"),
        (os.getenv("STAFF_USERNAME", "staff"), os.getenv("STAFF_PASSWORD", "staff"), "staff"),
    ]
    with ledger.session_scope() as db:
        for username, password, role in users:
            ensure_user(db, username, password, role)


def create_app(settings: Optional[LedgerSettings] = None, ledger: Optional[LedgerContext] = None) -> FastAPI:
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logging.basicConfig(
            level=settings.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        owned = ledger is None
        context = ledger or LedgerContext(settings.database_url)
        context.open()
        app.state.ledger = context
        _seed_users(context)
        logger.info("Stock ledger ready (currency %s)", settings.currency.code)
        try:
            yield
        finally:
            if owned:
                context.close()

    app = FastAPI(title="Stock Ledger", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret or get_session_secret(),
        session_cookie="stockledger_session",
        max_age=60 * 60 * 24 * 7,
        same_site="lax",
        https_only=False,
    )

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(products_router)
    app.include_router(inventory_router)
    app.include_router(sales_router)
    app.include_router(finance_router)
    return app


app = create_app()
