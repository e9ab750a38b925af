"""
Pytest configuration and fixtures for the property import tests.

Tests run against in-memory collaborators or an in-memory SQLite database;
the application never bootstraps the configured Postgres database.
"""

import os

# Skip database bootstrap unless the user explicitly exports SKIP_DB_INIT=0.
os.environ.setdefault("SKIP_DB_INIT", "1")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from property_import.api.dependencies import get_orchestrator
from property_import.core.config import Settings
from property_import.db.models import create_tables
from property_import.db.store import SqlAlchemyEntityStore
from property_import.domain.imports.orchestrator import ImportOrchestrator
from tests.utils.fakes import FakeStore, RecordingAudit


@pytest.fixture
def make_settings():
    """Settings factory; every test gets values independent of the local .env."""
    def _make(**overrides) -> Settings:
        values = {
            "database_url": "sqlite://",
            "import_timeout_ms": 30_000,
            "import_batch_size": 100,
            "import_cache_size": 1000,
            "import_enable_parallel_processing": False,
            "import_cleanup_delay_seconds": 60,
        }
        values.update(overrides)
        return Settings(**values)
    return _make


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def audit():
    return RecordingAudit()


@pytest.fixture
def make_orchestrator(make_settings, audit):
    created = []

    def _make(store, **overrides) -> ImportOrchestrator:
        orchestrator = ImportOrchestrator(store, settings=make_settings(**overrides), audit=audit)
        created.append(orchestrator)
        return orchestrator

    yield _make

    for orchestrator in created:
        orchestrator.registry.shutdown()


@pytest.fixture
def sqlite_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def sqlite_store(sqlite_session_factory):
    return SqlAlchemyEntityStore(sqlite_session_factory)


@pytest.fixture
def api_client(make_orchestrator, fake_store):
    """TestClient wired to an orchestrator backed by the in-memory store."""
    from property_import.main import app

    orchestrator = make_orchestrator(fake_store)
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    with TestClient(app) as client:
        client.orchestrator = orchestrator
        client.store = fake_store
        yield client
    app.dependency_overrides.clear()
