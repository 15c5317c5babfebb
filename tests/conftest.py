"""
tests/conftest.py -- Shared test fixtures for budgetkeeper tests.

This module provides:
  - account_store / cache / sessions / tokens: isolated building blocks
  - auth_service / account_service: the services wired over those blocks
  - api_client: TestClient over the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. Each
fixture gets its own name so tests never see each other's rows.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import:
get_settings() auto-generates SECRET_KEY in dev mode instead of raising,
and 4 bcrypt rounds keep the suite fast.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: Set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app, build_services
from auth.accounts import AccountService
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import AccountStore
from auth.tokens import TokenIssuer
from cache.store import SQLiteCache
from helpers import ACCESS_TTL, REFRESH_TTL, TEST_SECRET, memory_db_url

# ---------------------------------------------------------------------------
# Core building blocks
# ---------------------------------------------------------------------------


@pytest.fixture
def account_store() -> Generator[AccountStore, None, None]:
    store = AccountStore(db_url=memory_db_url("test_accounts"))
    yield store
    store.close()


@pytest.fixture
def cache() -> Generator[SQLiteCache, None, None]:
    c = SQLiteCache(":memory:")
    yield c
    c.close()


@pytest.fixture
def sessions(cache: SQLiteCache) -> SessionStore:
    return SessionStore(cache, min_ttl_seconds=REFRESH_TTL)


@pytest.fixture
def tokens() -> TokenIssuer:
    return TokenIssuer(secret_key=TEST_SECRET, access_ttl_seconds=ACCESS_TTL, refresh_ttl_seconds=REFRESH_TTL)


@pytest.fixture
def auth_service(account_store: AccountStore, sessions: SessionStore, tokens: TokenIssuer) -> AuthService:
    return AuthService(account_store, sessions, tokens, session_ttl_seconds=REFRESH_TTL)


@pytest.fixture
def sent_verifications() -> list[tuple[str, str]]:
    return []


@pytest.fixture
def account_service(auth_service: AuthService, sent_verifications: list) -> AccountService:
    def capture(email: str, token: str) -> None:
        sent_verifications.append((email, token))

    return AccountService(auth_service, send_verification=capture)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AccountStore, cache: SQLiteCache):
    """Return an async context manager that replaces the real lifespan.

    Wires the real services over test stores. The OAuth registry is a
    MagicMock so no test reaches a provider. The purge_task is a
    long-sleeping coroutine: a real asyncio.Task is required because
    shutdown calls .cancel() on it.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        build_services(app, store, cache)
        app.state.oauth = MagicMock()
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient over the real app with fresh in-memory stores.

    Function-scoped: the client's cookie jar carries session cookies between
    requests, so every test starts logged out.
    """
    store = AccountStore(db_url=memory_db_url("test_api"))
    kv = SQLiteCache(":memory:")
    app.router.lifespan_context = _patch_lifespan(store, kv)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client

    kv.close()
    store.close()


@pytest.fixture
def registered(api_client: TestClient) -> dict:
    """Register alice@example.com through the API and return the account body."""
    resp = api_client.post(
        "/api/v1/users",
        json={"email": "alice@example.com", "password": "s3cret!pw", "name": "Alice"},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()
