"""
tests/conftest.py -- Shared test fixtures for FleetAdmin integration tests.

This module provides:
  - make_test_database(): isolated named shared-memory SQLite database
  - _patch_lifespan(): wires test resources into app.state, bypassing real startup
  - database: a Database seeded with one Adm and one Editor account
  - api_client: (client, admin_token, editor_token) for API integration tests
  - reset_rate_limits (autouse): clears slowapi counters between tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BACKGROUND_JOBS_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.tokens import create_access_token, hash_password
from cache.store import CacheService, MemoryCacheBackend
from core.config import get_settings
from core.health import build_health_service
from fleet.models import Administrator, Role
from fleet.repository import Database

ADMIN_EMAIL = "adm@teste.com"
ADMIN_PASSWORD = "Admin123"
EDITOR_EMAIL = "editor@teste.com"
EDITOR_PASSWORD = "Editor123"

# bcrypt is deliberately slow; hash the fixture passwords once per session.
_ADMIN_HASH = hash_password(ADMIN_PASSWORD)
_EDITOR_HASH = hash_password(EDITOR_PASSWORD)


def make_test_database(name: str | None = None) -> Database:
    """Create an isolated named shared-memory SQLite database.

    Each call gets a unique name so tests never see each other's rows.
    """
    name = name or uuid.uuid4().hex
    return Database(f"sqlite:///file:test_fleet_{name}?mode=memory&cache=shared&uri=true")


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _patch_lifespan(database: Database, cache: CacheService):
    """Return an async context manager that replaces the real lifespan.

    No background jobs are started: tests drive the job bodies directly.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = get_settings()
        app.state.database = database
        app.state.cache = cache
        app.state.health = build_health_service(database)
        app.state.jobs = []
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_rate_limits() -> Generator[None, None, None]:
    """Start every test with empty rate limit windows."""
    limiter.reset()
    yield


@pytest.fixture
def database() -> Generator[Database, None, None]:
    """Yield a Database holding one Adm and one Editor account."""
    db = make_test_database()
    with db.unit_of_work() as uow:
        uow.administrators.add(Administrator(email=ADMIN_EMAIL, password_hash=_ADMIN_HASH, role=Role.ADMIN.value))
        uow.administrators.add(Administrator(email=EDITOR_EMAIL, password_hash=_EDITOR_HASH, role=Role.EDITOR.value))
        uow.save_changes()
    yield db
    db.close()


@pytest.fixture
def cache() -> CacheService:
    return CacheService(MemoryCacheBackend())


@pytest.fixture
def api_client(database: Database, cache: CacheService) -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, editor_token) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory database.
    """
    admin_token = create_access_token(ADMIN_EMAIL, Role.ADMIN.value, expire_seconds=3600)
    editor_token = create_access_token(EDITOR_EMAIL, Role.EDITOR.value, expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(database, cache)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, admin_token, editor_token
