"""
tests/conftest.py -- Shared fixtures for the RBAC API test suite.

This module provides:
  - make_settings(): Settings pointing at an isolated in-memory database
  - settings / settings_factory: the same, as fixtures
  - stores: UserStore + RBACStore over one in-memory engine (unit tests)
  - cache: CacheStore(":memory:") driven by a FakeClock
  - api_client: TestClient over create_app() with a seeded admin account

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
for the app fixtures because TestClient runs the pipelines in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

The DEBUG env var must be set before any core import so a Settings() built
implicitly (asgi.py, get_settings()) can generate dev secrets.
"""

from __future__ import annotations

import os
from collections.abc import Generator

# Set DEBUG before any core/auth import so an implicit Settings() does not
# refuse to start for lack of JWT secrets.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from auth.models import Identity
from auth.store import UserStore
from cache.store import CacheStore
from core.config import Settings
from core.database import create_db_engine
from rbac.seed import seed_defaults
from rbac.store import RBACStore

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "AdminPass123"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_settings(db_name: str, **overrides) -> Settings:
    """Settings for one isolated app instance.

    Rate limits are generous by default so functional tests never trip them;
    tests for the limiter pass tighter policies through overrides.
    """
    values = {
        "debug": True,
        "database_url": f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true",
        "cache_path": ":memory:",
        "jwt_secret": "test-access-secret-0123456789abcdef",
        "jwt_refresh_secret": "test-refresh-secret-0123456789abcdef",
        "rate_limit": "1000/minute",
        "strict_rate_limit": "1000/minute",
        "auth_rate_limit": "1000/minute",
        "log_level": "WARNING",
    }
    values.update(overrides)
    return Settings(**values)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings("test_unit")


@pytest.fixture
def settings_factory():
    """Build Settings with overrides, e.g. settings_factory("db", auth_rate_limit="2/minute")."""
    return make_settings


@pytest.fixture
def stores() -> Generator[tuple[UserStore, RBACStore], None, None]:
    """UserStore and RBACStore sharing one private in-memory engine."""
    engine = create_db_engine("sqlite:///:memory:")
    yield UserStore(engine), RBACStore(engine)
    engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> Generator[CacheStore, None, None]:
    store = CacheStore(":memory:", clock=clock)
    yield store
    store.close()


# ---------------------------------------------------------------------------
# App fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, token, admin_id) for API integration tests.

    The real lifespan opens the stores; the default permissions, the admin
    role and an admin account are seeded before the first request. The token
    is an access token for that admin account.
    """
    app = create_app(make_settings(f"test_{request.module.__name__.rsplit('.', 1)[-1]}"))

    with TestClient(app) as client:
        summary = seed_defaults(
            app.state.users, app.state.rbac, admin_email=ADMIN_EMAIL, admin_password=ADMIN_PASSWORD
        )
        admin_id = summary["admin_id"]
        token = app.state.tokens.generate_access_token(Identity(user_id=admin_id, email=ADMIN_EMAIL))
        yield client, token, admin_id
