"""
tests/conftest.py -- Shared test fixtures for the auth service test suite.

This module provides:
  - FakeClock / clock: a controllable clock for both wall-clock (datetime) and
    monotonic (float) consumers, so expiry and rate-limit windows are tested
    without sleeping
  - store: an isolated named shared-memory SQLite UserStore per test
  - service: an AuthService wired to that store and clock, with bcrypt at its
    minimum cost and a notifier that records reset tokens instead of logging
  - client: TestClient over the real FastAPI app with the lifespan replaced

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.

The DEBUG, BCRYPT_ROUNDS and GLOBAL_RATE_LIMIT env vars must be set before any
api/ or core/ import so get_settings() picks them up on first call.
"""

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: set before any api/core import -- get_settings() is cached.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("GLOBAL_RATE_LIMIT", "100000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.passwords import PasswordHasher
from auth.ratelimit import RateLimiter
from auth.resets import ResetTokenManager
from auth.service import AuthService
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.tokens import TokenHasher

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"
STRONG_PASSWORD = "Secure123!"


class FakeClock:
    """Frozen time that only moves when a test calls advance()."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)) -> None:
        self._origin = start
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return (self.now - self._origin).total_seconds()

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    """Captures (user, token) pairs handed out by forgot_password()."""

    def __init__(self) -> None:
        self.sent: list[tuple] = []

    def __call__(self, user, token: str) -> None:
        self.sent.append((user, token))

    @property
    def last_token(self) -> str:
        return self.sent[-1][1]


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    """Fresh shared-memory SQLite store; the uuid keeps tests isolated."""
    s = UserStore(f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    yield s
    s.close()


@pytest.fixture
def token_hasher() -> TokenHasher:
    return TokenHasher(TEST_SECRET)


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(store, token_hasher, hasher, clock, notifier) -> AuthService:
    return AuthService(
        store=store,
        hasher=hasher,
        sessions=SessionManager(store, token_hasher, clock=clock),
        resets=ResetTokenManager(store, token_hasher, clock=clock),
        limiter=RateLimiter(clock=clock.monotonic),
        notifier=notifier,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# HTTP fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(store: UserStore, service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and service into app.state so routes hit isolated
    state. The purge_task is a long-sleeping coroutine so shutdown can
    cancel a real asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = store
        app.state.auth_service = service
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def client(store, service) -> Generator[TestClient, None, None]:
    """TestClient over the real app. One per test so rate-limit windows start empty."""
    app.router.lifespan_context = _patch_lifespan(store, service)
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
