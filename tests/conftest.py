"""
tests/conftest.py -- Shared test fixtures for credvault.

This module provides:
  - kv_store: isolated shared-memory SQLite SQLStore per test
  - service: AuthService over kv_store with a cheap bcrypt cost
  - api_client: TestClient against the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

The environment must be set before any api/ or core/ import so
get_settings() auto-generates SECRET_KEY in dev mode instead of raising
ValueError, and so bcrypt runs at its minimum cost.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any api/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("STORE_URL", "sqlite:///file:credvault_default?mode=memory&cache=shared&uri=true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.passwords import BcryptHasher
from auth.service import AuthService
from auth.tokens import JWTSigner
from core.config import get_settings
from kv.store import SQLStore

TEST_SECRET = "test-secret-key-that-is-at-least-32-chars"


def _memory_db_url(prefix: str) -> str:
    """Unique named shared-memory SQLite URL so tests never see each other's users."""
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def kv_store() -> Generator[SQLStore, None, None]:
    store = SQLStore(_memory_db_url("test_kv"))
    yield store
    store.close()


@pytest.fixture
def service(kv_store: SQLStore) -> AuthService:
    return AuthService(
        kv_store,
        BcryptHasher(rounds=4),
        JWTSigner(),
        secret_key=TEST_SECRET,
        token_ttl=3600,
    )


def _patch_lifespan(store: SQLStore):
    """Return an async context manager that replaces the real lifespan.

    Wires a pre-created test store into app.state so TestClient routes see
    an isolated database rather than the configured STORE_URL.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.store = store
        app.state.auth_service = AuthService.from_settings(store, get_settings())
        yield

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient for the real app backed by a fresh in-memory store.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers, middleware, and exception handlers.
    """
    store = SQLStore(_memory_db_url("test_api"))
    app.router.lifespan_context = _patch_lifespan(store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    store.close()
