"""
tests/conftest.py -- Shared test fixtures for Gatehouse tests.

This module provides:
  - _make_sql_stores(): isolated in-memory SQL credential + session stores
  - _patch_lifespan(): wires test stores and an issuer into app.state
  - api_client: session-mode TestClient for integration tests
  - sql_store / mongo_store / credential_store: unit-test repositories

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient because route handlers run in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format shares one in-memory instance across all
connections in the process.

Environment must be set before any api/auth/core import: DEBUG lets
get_settings() auto-generate secrets, and the rate limits are raised so the
suite never trips them (tests/test_rate_limit.py builds its own limiter).
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("DB_TYPE", "mysql")
os.environ.setdefault("AUTH_MODE", "session")
os.environ.setdefault("RATE_LIMIT", "10000/minute")
os.environ.setdefault("LOGIN_RATE_LIMIT", "10000/minute")

import mongomock
import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.issuers import IdentityIssuer, SessionIssuer
from auth.mongo_store import MongoCredentialStore, MongoSessionStore
from auth.sql_store import SqlCredentialStore, SqlSessionStore, make_engine

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_sql_stores(db_suffix: str) -> tuple[SqlCredentialStore, SqlSessionStore]:
    """Create an isolated named shared-memory SQLite credential + session store pair."""
    url = f"sqlite:///file:test_gatehouse_{db_suffix}?mode=memory&cache=shared&uri=true"
    engine = make_engine(url)
    return SqlCredentialStore(url, engine=engine), SqlSessionStore(url, engine=engine)


def _patch_lifespan(credential_store, session_store, issuer: IdentityIssuer):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown has a real
    asyncio.Task to cancel.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.credential_store = credential_store
        app.state.session_store = session_store
        app.state.issuer = issuer
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Integration fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, SqlCredentialStore, SqlSessionStore], None, None]:
    """Yield (client, credential_store, session_store) running in session mode.

    Each test module gets its own database (named after the module) so
    registrations in one module never collide with another's.
    """
    credential_store, session_store = _make_sql_stores(request.module.__name__.replace(".", "_"))
    app.router.lifespan_context = _patch_lifespan(credential_store, session_store, SessionIssuer())
    limiter.reset()

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, credential_store, session_store

    session_store.close()
    credential_store.close()


# ---------------------------------------------------------------------------
# Unit fixtures -- fresh repositories per test
# ---------------------------------------------------------------------------


@pytest.fixture
def sql_store() -> Generator[SqlCredentialStore, None, None]:
    store = SqlCredentialStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def mongo_database():
    return mongomock.MongoClient()["gatehouse_test"]


@pytest.fixture
def mongo_store(mongo_database) -> MongoCredentialStore:
    return MongoCredentialStore(mongo_database)


@pytest.fixture(params=["sql", "mongo"])
def credential_store(request):
    """Run a test once against each backend."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def sql_session_store() -> Generator[SqlSessionStore, None, None]:
    store = SqlSessionStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def mongo_session_store(mongo_database) -> MongoSessionStore:
    return MongoSessionStore(mongo_database)


@pytest.fixture(params=["sql", "mongo"])
def session_store(request):
    return request.getfixturevalue(f"{request.param}_session_store")
