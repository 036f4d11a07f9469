"""
tests/conftest.py -- Shared test fixtures for SpeciesGuard integration tests.

This module provides:
  - _make_test_store(): an isolated in-memory credential store per test module
  - _patch_lifespan(): wires the test store, audit log, token issuer, and
    identity provider into app.state, bypassing the real startup
  - api_client: (client, admin_token, admin_id) -- one TestClient per module
  - client: the same TestClient with its cookie jar emptied around each test

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Environment variables must be set before any api/core import so
get_settings() auto-generates SECRET_KEY (DEBUG) and rate limits are high
enough that a test module never trips them.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before importing api/ or core/.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("REGISTER_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.audit import AuditLog
from auth.models import Role, User
from auth.passwords import hash_password
from auth.provider import JWTIdentityProvider
from auth.store import UserStore
from auth.tokens import TokenIssuer
from core.config import get_settings

ADMIN_EMAIL = "admin@speciesguard.test"
ADMIN_PASSWORD = "AdminPass123"


def _make_test_store(db_suffix: str) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (the module name is used).
    """
    return UserStore(f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(user_store: UserStore, issuer: TokenIssuer):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.audit_log = AuditLog(user_store.engine)
        app.state.token_issuer = issuer
        app.state.identity_provider = JWTIdentityProvider(user_store, issuer)
        yield

    return test_lifespan


def make_user(store: UserStore, email: str, password: str, role: Role = Role.user, **fields) -> User:
    """Insert a user directly through the store and return the saved record."""
    uid = store.create_user(User(email=email, password_hash=hash_password(password), role=role.value, **fields))
    return store.get_by_id(uid)


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan, so tests
    hit real route handlers and dependencies against an isolated store.
    raise_server_exceptions=False lets tests assert on the 500 envelope.
    """
    store = _make_test_store(request.module.__name__.replace(".", "_"))
    settings = get_settings()
    issuer = TokenIssuer(
        settings.secret_key,
        access_ttl=settings.access_token_expire_seconds,
        refresh_ttl=settings.refresh_token_expire_seconds,
    )
    admin = make_user(store, ADMIN_EMAIL, ADMIN_PASSWORD, Role.admin)
    admin_token = issuer.issue_pair(admin).access_token

    limiter.reset()
    app.router.lifespan_context = _patch_lifespan(store, issuer)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, admin_token, admin.id

    store.close()


@pytest.fixture
def client(api_client) -> Generator[TestClient, None, None]:
    """The module's TestClient with no cookies carried in from earlier tests."""
    c, _token, _uid = api_client
    c.cookies.clear()
    yield c
    c.cookies.clear()


@pytest.fixture
def store(api_client) -> UserStore:
    c, _token, _uid = api_client
    return c.app.state.user_store


@pytest.fixture
def issuer(api_client) -> TokenIssuer:
    c, _token, _uid = api_client
    return c.app.state.token_issuer
