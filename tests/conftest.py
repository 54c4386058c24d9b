"""
Pytest fixtures for the ledger API tests.

Every test gets a fresh in-memory SQLite schema; the API client talks to the
same database through an overridden get_db dependency.
"""

import os
import threading
from dataclasses import replace

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OVERDUE_SWEEP_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import retail_ledger.models  # noqa: F401
from retail_ledger.core.errors import LedgerError
from retail_ledger.db import concurrency
from retail_ledger.db.database import Base, get_db
from retail_ledger.main import app
from retail_ledger.services import ledger


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture()
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def pool(db):
    """Product 100 in shop 10 with 50 units on the shelf."""
    return ledger.upsert_pool(db, product_id=100, shop_id=10, quantity_on_hand=50, adjusted_by=2)


@pytest.fixture()
def file_session_factory(tmp_path):
    """Sessions on a file-backed SQLite database that several threads can share."""
    file_engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(file_engine)
    yield sessionmaker(bind=file_engine, autoflush=False, autocommit=False)
    file_engine.dispose()


@pytest.fixture()
def race(file_session_factory, monkeypatch):
    """Run named operations at the same moment, each in its own thread and session.

    Returns a mapping of operation name to ``"ok"`` or the ``LedgerError`` code it raised.
    """
    monkeypatch.setattr(
        concurrency,
        "settings",
        replace(concurrency.settings, conflict_retry_attempts=10, conflict_retry_backoff_seconds=0.01),
    )

    def _race(**operations):
        barrier = threading.Barrier(len(operations))
        outcomes: dict[str, str] = {}
        outcomes_lock = threading.Lock()

        def worker(name, operation):
            session = file_session_factory()
            try:
                barrier.wait()
                operation(session)
                outcome = "ok"
            except LedgerError as exc:
                outcome = exc.code
            finally:
                session.close()
            with outcomes_lock:
                outcomes[name] = outcome

        threads = [threading.Thread(target=worker, args=item) for item in operations.items()]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)
        return outcomes

    return _race
