"""
tests/conftest.py -- Shared test fixtures for the Grievance Portal auth tests.

This module provides:
  - FakeClock / FakeMailer: deterministic stand-ins for time and SMTP
  - store / flows: unit-level fixtures around an in-memory SQLite UserStore
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: api_client uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import so
get_settings() auto-generates SECRET_KEY in dev mode and hashing stays fast.
"""

from __future__ import annotations

import asyncio
import os
import re
from collections.abc import Generator
from contextlib import asynccontextmanager
from types import SimpleNamespace

# CRITICAL: Set before any auth/core import so get_settings() picks them up.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app, build_flows
from auth.errors import DeliveryError
from auth.flows import CredentialFlows
from auth.otp import OTPRegistry
from auth.reset_tokens import ResetTokenService
from auth.store import UserStore
from core.config import get_settings

_OTP_RE = re.compile(r"<strong>(\d{6})</strong>")
_RESET_RE = re.compile(r"/reset-password/([0-9a-f]{40})")


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced clock returning UNIX seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMailer:
    """Records messages instead of sending them. Set fail=True to simulate an SMTP outage."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    def send(self, to: str, subject: str, html_body: str) -> None:
        if self.fail:
            raise DeliveryError("SMTP server unreachable")
        self.sent.append((to, subject, html_body))

    def last_otp(self, to: str) -> str:
        for recipient, _subject, body in reversed(self.sent):
            if recipient == to and (match := _OTP_RE.search(body)):
                return match.group(1)
        raise AssertionError(f"no OTP email sent to {to}")

    def last_reset_token(self, to: str) -> str:
        for recipient, _subject, body in reversed(self.sent):
            if recipient == to and (match := _RESET_RE.search(body)):
                return match.group(1)
        raise AssertionError(f"no reset email sent to {to}")


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def flows(store: UserStore, clock: FakeClock, mailer: FakeMailer) -> CredentialFlows:
    settings = get_settings()
    return CredentialFlows(
        store,
        OTPRegistry(ttl_seconds=settings.otp_ttl_seconds, clock=clock),
        ResetTokenService(store, ttl_seconds=settings.reset_token_ttl_seconds, clock=clock),
        mailer,
        settings,
    )


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(state: SimpleNamespace):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store, registry and fake mailer into app.state so routes
    never touch the on-disk database or a real SMTP server. The purge_task
    is a long-sleeping coroutine so shutdown can cancel a real asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = state.store
        app.state.otp_registry = state.otp_registry
        app.state.mailer = state.mailer
        app.state.flows = build_flows(state.store, state.otp_registry, state.mailer)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, SimpleNamespace], None, None]:
    """Yield (client, state) for API integration tests.

    state exposes store, otp_registry and mailer so tests can read the codes
    and reset links that would have been emailed. Each test module gets its
    own shared-memory database, named after the module.

    base_url uses "localhost" because TrustedHostMiddleware rejects the
    TestClient default host "testserver".
    """
    db_name = request.module.__name__.rsplit(".", 1)[-1]
    state = SimpleNamespace(
        store=UserStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true"),
        otp_registry=OTPRegistry(),
        mailer=FakeMailer(),
    )
    app.router.lifespan_context = _patch_lifespan(state)

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, state

    state.store.close()
