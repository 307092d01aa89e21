# backend/tests/conftest.py
"""
Pytest configuration for the studio booking engine.

Settings are forced into test mode BEFORE any application import: no Redis
(the class lock fails open), no notifier endpoint (log-only delivery) and no
Stripe key (local discount handles).
"""

import os

# CRITICAL: Set testing mode BEFORE any app imports!
os.environ["ENVIRONMENT"] = "test"
os.environ["REDIS_URL"] = ""
os.environ["NOTIFIER_URL"] = ""
os.environ.pop("STRIPE_SECRET_KEY", None)

from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from studio_booking.api.dependencies import get_db, get_payment_gateway_dep
from studio_booking.database import Base

# Import models so Base.metadata is populated for create_all.
import studio_booking.models  # noqa: F401
from studio_booking.services.payment_gateway import LocalPaymentGateway


def enable_sqlite_savepoints(engine: Engine) -> None:
    """
    Let pysqlite honour SAVEPOINT inside an outer transaction.

    The driver's own transaction handling is switched off and SQLAlchemy
    emits BEGIN itself.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture(scope="session")
def _unit_engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def unit_db(_unit_engine: Engine) -> Iterator[Session]:
    """
    Provide a session bound to the shared in-memory engine.

    Service commits and rollbacks land on savepoints; everything a test wrote
    is discarded with the outer transaction.
    """
    connection = _unit_engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        expire_on_commit=False,
    )
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def client(unit_db: Session) -> Iterator[TestClient]:
    """API client whose requests share the test's session."""
    from studio_booking.main import app

    def _override_get_db() -> Iterator[Session]:
        yield unit_db

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_payment_gateway_dep] = LocalPaymentGateway
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
