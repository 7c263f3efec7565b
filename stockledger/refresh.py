from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any, Optional

from sqlalchemy import event

logger = logging.getLogger(__name__)

WATCHED_TABLES: frozenset[str] = frozenset(
    {"transactions", "sales", "sale_items", "product_lots", "expenses", "income_entries"}
)


class RefreshSubscription:
    """Aviso de "recalcular" cuando cambian las tablas del ledger.

    Escucha los eventos de sesión de SQLAlchemy (push) y además lanza un sondeo
    periódico (fallback). Nunca ejecuta dos refrescos a la vez: si llega una
    petición durante un refresco, se encola una sola vez.
    """

    def __init__(
        self,
        target: Any,
        on_refresh: Callable[[], None],
        poll_seconds: float = 15.0,
        debounce_seconds: float = 0.25,
        tables: Iterable[str] = WATCHED_TABLES,
    ):
        self._target = target
        self._on_refresh = on_refresh
        self._poll_seconds = poll_seconds
        self._debounce_seconds = debounce_seconds
        self._tables = frozenset(tables)
        self._info_key = f"stockledger.refresh.{id(self)}"

        self._lock = threading.Lock()
        self._active = False
        self._running = False
        self._pending = False
        self._generation = 0
        self._poll_timer: Optional[threading.Timer] = None
        self._debounce_timer: Optional[threading.Timer] = None

    @property
    def active(self) -> bool:
        return self._active

    def subscribe(self) -> "RefreshSubscription":
        with self._lock:
            if self._active:
                return self
            self._active = True
            generation = self._generation
        event.listen(self._target, "after_flush", self._after_flush)
        event.listen(self._target, "after_commit", self._after_commit)
        event.listen(self._target, "after_rollback", self._after_rollback)
        self._schedule_poll(generation)
        logger.info("Refresh subscription started (poll every %ss)", self._poll_seconds)
        return self

    def unsubscribe(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
            self._generation += 1
            timers = (self._poll_timer, self._debounce_timer)
            self._poll_timer = None
            self._debounce_timer = None
        for timer in timers:
            if timer is not None:
                timer.cancel()
        event.remove(self._target, "after_flush", self._after_flush)
        event.remove(self._target, "after_commit", self._after_commit)
        event.remove(self._target, "after_rollback", self._after_rollback)
        logger.info("Refresh subscription stopped")

    def __enter__(self) -> "RefreshSubscription":
        return self.subscribe()

    def __exit__(self, *exc_info: Any) -> None:
        self.unsubscribe()

    def _after_flush(self, session, flush_context) -> None:
        touched = session.info.setdefault(self._info_key, set())
        for obj in (*session.new, *session.dirty, *session.deleted):
            table = getattr(obj, "__tablename__", None)
            if table in self._tables:
                touched.add(table)

    def _after_commit(self, session) -> None:
        touched = session.info.pop(self._info_key, None)
        if touched:
            logger.debug("Ledger tables changed: %s", ", ".join(sorted(touched)))
            self.request_refresh()

    def _after_rollback(self, session) -> None:
        session.info.pop(self._info_key, None)

    def request_refresh(self) -> None:
        """Programa un refresco agrupando las peticiones que llegan seguidas."""
        with self._lock:
            if not self._active:
                return
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
            timer = threading.Timer(self._debounce_seconds, self.refresh_now)
            timer.daemon = True
            self._debounce_timer = timer
        timer.start()

    def refresh_now(self) -> None:
        with self._lock:
            if self._running:
                self._pending = True
                return
            self._running = True
            self._pending = False

        while True:
            try:
                self._on_refresh()
            except Exception:
                logger.exception("Refresh failed")
            with self._lock:
                if not self._pending:
                    self._running = False
                    return
                self._pending = False

    def _schedule_poll(self, generation: int) -> None:
        if self._poll_seconds <= 0:
            return
        with self._lock:
            # Un sondeo de una suscripción anterior no se reprograma.
            if not self._active or generation != self._generation:
                return
            timer = threading.Timer(self._poll_seconds, self._poll, args=(generation,))
            timer.daemon = True
            self._poll_timer = timer
        timer.start()

    def _poll(self, generation: int) -> None:
        with self._lock:
            if not self._active or generation != self._generation:
                return
        self.refresh_now()
        self._schedule_poll(generation)
