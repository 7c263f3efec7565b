from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class LedgerContext:
    """Engine y fábrica de sesiones propiedad del llamador.

    Se abre explícitamente con `open()` y se libera con `close()`; nada vive a
    nivel de módulo.
    """

    def __init__(self, database_url: str, **engine_kwargs: Any):
        self.database_url = database_url
        self._engine_kwargs = engine_kwargs
        self._engine: Optional[Engine] = None
        self._sessionmaker: Optional[sessionmaker[Session]] = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._sessionmaker is None:
            raise RuntimeError("LedgerContext is not open")
        return self._sessionmaker

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("LedgerContext is not open")
        return self._engine

    def open(self, create_schema: bool = True) -> "LedgerContext":
        if self._engine is not None:
            return self

        kwargs = dict(self._engine_kwargs)
        if self.database_url.startswith("sqlite"):
            connect_args = dict(kwargs.pop("connect_args", {}) or {})
            connect_args.setdefault("check_same_thread", False)
            kwargs["connect_args"] = connect_args
        kwargs.setdefault("pool_pre_ping", True)

        self._engine = create_engine(self.database_url, **kwargs)
        self._sessionmaker = sessionmaker(bind=self._engine, autoflush=False, autocommit=False)
        if create_schema:
            # Registra los modelos en Base.metadata antes de crear las tablas.
            from stockledger import models  # noqa: F401

            Base.metadata.create_all(bind=self._engine)
        logger.info("Ledger database opened: %s", self._engine.url.render_as_string(hide_password=True))
        return self

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        logger.info("Ledger database closed")
        self._engine = None
        self._sessionmaker = None

    def session(self) -> Session:
        if self._sessionmaker is None:
            raise RuntimeError("LedgerContext is not open")
        return self._sessionmaker()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        db = self.session()
        try:
            yield db
        finally:
            db.close()

    def __enter__(self) -> "LedgerContext":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
