import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from stockledger.auth import ensure_user
from stockledger.config import LedgerSettings
from stockledger.db import LedgerContext


@pytest.fixture()
def ledger():
    ctx = LedgerContext("sqlite+pysqlite://", poolclass=StaticPool)
    ctx.open()
    yield ctx
    ctx.close()


@pytest.fixture()
def db(ledger):
    with ledger.session_scope() as session:
        yield session


@pytest.fixture()
def admin(db):
    return ensure_user(db, "boss", "boss-pass", "admin")


@pytest.fixture()
def staff(db):
    return ensure_user(db, "clerk", "clerk-pass", "staff")


@pytest.fixture()
def settings():
    return LedgerSettings(session_secret="test-secret")


@pytest.fixture()
def client(ledger, settings, monkeypatch):
    monkeypatch.setenv("ADMIN_USERNAME", "boss")
    monkeypatch.setenv("ADMIN_PASSWORD", "boss-pass")
    monkeypatch.setenv("STAFF_USERNAME", "clerk")
    monkeypatch.setenv("STAFF_PASSWORD", "clerk-pass")

    from stockledger.main import create_app

    app = create_app(settings=settings, ledger=ledger)
    with TestClient(app) as c:
        yield c
