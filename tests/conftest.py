"""Pytest configuration and shared fixtures.

Database tests run against an in-memory SQLite database unless
TEST_DATABASE_URL points at another server (e.g. PostgreSQL). Each test runs
inside an outer transaction that is rolled back afterwards, so commits made
by the code under test only release a SAVEPOINT.
"""

import os
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from governance.db.base import Base
from governance.db.capabilities import reset_capabilities
from governance.db.session import build_engine
import governance.db.models  # noqa: F401

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite://")


def _test_engine(url: str = TEST_DATABASE_URL):
    if url.startswith("sqlite"):
        return build_engine(url, poolclass=StaticPool)
    return build_engine(url)


@pytest.fixture(scope="session")
def db_engine():
    engine = _test_engine()
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def db_session(db_engine):
    """Session bound to a connection whose transaction is rolled back after the test."""
    reset_capabilities()
    connection = db_engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()
    reset_capabilities()


@pytest.fixture()
def partial_session():
    """Factory for sessions on a fresh SQLite store holding only some tables."""
    opened = []

    def _make(*table_names: str) -> Session:
        engine = _test_engine("sqlite://")
        Base.metadata.create_all(engine, tables=[Base.metadata.tables[n] for n in table_names])
        session = Session(bind=engine)
        opened.append((engine, session))
        return session

    yield _make

    for engine, session in opened:
        session.close()
        engine.dispose()
    reset_capabilities()


@pytest.fixture()
def client(db_session):
    """API client sharing the test's database session."""
    from governance.api.deps import get_db
    from governance.api.main import app

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
