"""
tests/conftest.py -- Shared test fixtures for MediLog.

This module provides:
  - settings: debug Settings with "testserver" allowed and rate limits off
  - auth_context / profile_store: fresh in-memory stores per test
  - client: TestClient over an app built by create_app() with those stores
  - register_account: helper that registers through the API and returns
    (account_json, tokens_json)

Every test gets its own app and its own databases; nothing is shared between
tests except the process-wide slowapi counters, which are reset after each
test. Rate limiting is off in these settings; tests that need it build an
app with their own Settings.

The DEBUG env var must be set before any core/auth import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Generator

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import create_app
from auth.service import AuthContext
from core.config import Settings
from profiles.store import ProfileStore

DEFAULT_PASSWORD = "secret123"


@pytest.fixture
def settings() -> Settings:
    return Settings(debug=True, allowed_hosts=["testserver"], rate_limit_enabled=False)


@pytest.fixture
def auth_context(settings: Settings) -> Generator[AuthContext, None, None]:
    ctx = AuthContext.from_settings(settings)
    yield ctx
    ctx.close()


@pytest.fixture
def profile_store() -> Generator[ProfileStore, None, None]:
    store = ProfileStore()
    yield store
    store.close()


@pytest.fixture
def app(settings: Settings, auth_context: AuthContext, profile_store: ProfileStore):
    application = create_app(settings, context=auth_context, profiles=profile_store)
    yield application
    limiter.reset()


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


@pytest.fixture
def register_account(client: TestClient) -> Callable[..., tuple[dict, dict]]:
    """Return a helper that registers an account via the API."""

    def _register(email: str = "alice@example.com", name: str = "Alice", password: str = DEFAULT_PASSWORD):
        resp = client.post("/api/v1/auth/register", json={"email": email, "password": password, "name": name})
        assert resp.status_code == 201, resp.text
        data = resp.json()
        return data["account"], data["tokens"]

    return _register
