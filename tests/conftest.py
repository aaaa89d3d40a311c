"""
tests/conftest.py -- Shared test fixtures for Gatekeep tests.

This module provides:
  - store: a fresh in-memory UserStore per test (async unit tests)
  - FakeMailer / mailer / service: AuthService wired to a recording mailer
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: module-scoped TestClient for HTTP integration tests
  - register_user(): helper that registers through the real endpoint

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) so the database outlives any single pooled connection for the
lifetime of the client. Unit tests use plain :memory:, which gives each test
an empty database.

SECRET_KEY and DEBUG must be set before any auth/core import: get_settings()
is cached on first call and the token module reads it at import time.
Rate limiting is switched off globally; the rate limit tests turn it back on
explicitly.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import AsyncIterator, Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: Set env before any auth/core import.
TEST_SECRET_KEY = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105
os.environ.setdefault("SECRET_KEY", TEST_SECRET_KEY)
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.errors import EmailDeliveryError
from auth.service import AuthService
from auth.store import UserStore

STRONG_PASSWORD = "Aa1!aaaa"


# ---------------------------------------------------------------------------
# Mailer double
# ---------------------------------------------------------------------------


class FakeMailer:
    """Records every send instead of talking to SMTP.

    Set fail=True to make every send raise EmailDeliveryError, the same
    error the real Mailer raises on a transport failure.
    """

    configured = True

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.welcome: list[tuple[str, str]] = []
        self.resets: list[tuple[str, str]] = []

    async def send_welcome_email(self, email: str, name: str) -> None:
        if self.fail:
            raise EmailDeliveryError("smtp down")
        self.welcome.append((email, name))

    async def send_password_reset_email(self, email: str, token: str) -> None:
        if self.fail:
            raise EmailDeliveryError("smtp down")
        self.resets.append((email, token))


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def store() -> AsyncIterator[UserStore]:
    s = UserStore("sqlite+aiosqlite:///:memory:")
    await s.init()
    yield s
    await s.close()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest_asyncio.fixture
async def service(store: UserStore, mailer: FakeMailer) -> AsyncIterator[AuthService]:
    svc = AuthService(store, mailer)
    yield svc
    await svc.drain()


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(user_store: UserStore, mailer: FakeMailer):
    """Return an async context manager that replaces the real lifespan.

    Wires a test store and the recording mailer into app.state so TestClient
    routes hit real handlers against an isolated database. The OAuth registry
    is a MagicMock so no test ever reaches Google.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        await user_store.init()
        app.state.user_store = user_store
        app.state.auth_service = AuthService(user_store, mailer)
        app.state.oauth = MagicMock()
        yield
        await app.state.auth_service.drain()
        await user_store.close()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, FakeMailer], None, None]:
    """Yield (client, mailer) for API integration tests.

    One client per test module: the database is shared by the tests in the
    module, so tests use unique email addresses (see unique_email()).
    """
    db_url = f"sqlite+aiosqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url=db_url)
    mailer = FakeMailer()
    app.router.lifespan_context = _patch_lifespan(user_store, mailer)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, mailer


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}@example.com"


def register_user(client: TestClient, email: str, password: str = STRONG_PASSWORD, name: str = "Test User") -> dict:
    """Register through the real endpoint and return the JSON body."""
    resp = client.post("/api/v1/auth/register", json={"name": name, "email": email, "password": password})
    assert resp.status_code == 201, f"Expected 201, got {resp.status_code}: {resp.text}"
    return resp.json()
