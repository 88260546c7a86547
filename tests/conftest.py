"""
Shared fixtures: in-memory SQLite database, FastAPI test client and record factory.

DATABASE_URL is set before any servicehub module is imported so the engine is
bound to an in-memory SQLite database (StaticPool, one shared connection).
Factories commit what they create, because the API sessions share that
connection.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("LOG_JSON", "false")

import pytest
from fastapi.testclient import TestClient

from servicehub.api.app import app
from servicehub.lib.config_flags import reset_all_configs
from servicehub.lib.db import Base, SessionLocal, engine, get_db
from servicehub.lib.metrics import reset_metrics
from tests.helpers import Factory


@pytest.fixture(autouse=True)
def _fresh_state():
    """Fresh schema, metrics and policy config for every test."""
    Base.metadata.create_all(bind=engine)
    reset_metrics()
    reset_all_configs()
    yield
    Base.metadata.drop_all(bind=engine)
    reset_all_configs()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    """Test client for FastAPI app."""
    def _get_db():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def factory(db):
    return Factory(db)
