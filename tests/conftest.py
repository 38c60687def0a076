"""
tests/conftest.py -- Shared test fixtures for gymops.

This module provides:
  - signing_key / store / service: isolated domain objects for unit tests
  - _make_test_store(): named shared-memory SQLite store
  - _patch_lifespan(): wires a test IdentityService into app.state
  - api_client: TestClient over the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

bcrypt runs at its minimum cost (4 rounds) in fixtures. The production cost
factor is covered separately in test_passwords.py.
"""

from __future__ import annotations

import base64
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# Set before any core import so Settings() never demands a production key.
os.environ.setdefault("ENVIRONMENT", "development")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.service import IdentityService
from auth.store import UserStore
from core.config import Settings

TEST_ROUNDS = 4


def _make_test_store(db_suffix: str) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so tests don't share state.
    """
    return UserStore(f"sqlite:///file:test_users_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(identity: IdentityService, settings: Settings):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.identity = identity
        yield

    return test_lifespan


@pytest.fixture
def signing_key() -> bytes:
    return b"k" * 32


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = _make_test_store(uuid.uuid4().hex)
    yield s
    s.close()


@pytest.fixture
def service(store: UserStore, signing_key: bytes) -> IdentityService:
    return IdentityService(store, signing_key, password_rounds=TEST_ROUNDS)


@pytest.fixture
def api_client(signing_key: bytes) -> Generator[tuple[TestClient, IdentityService], None, None]:
    """Yield (client, identity) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers and exception handlers against an isolated store.
    Server exceptions are not re-raised, so 500 responses can be asserted on.
    """
    store = _make_test_store(f"api_{uuid.uuid4().hex}")
    identity = IdentityService(store, signing_key, password_rounds=TEST_ROUNDS)
    settings = Settings(
        environment="development",
        auth_token_key=base64.b64encode(signing_key).decode("ascii"),
        bcrypt_rounds=TEST_ROUNDS,
    )

    app.router.lifespan_context = _patch_lifespan(identity, settings)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, identity

    store.close()
