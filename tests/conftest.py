"""
tests/conftest.py -- Shared test fixtures for RoleGate unit and integration tests.

This module provides:
  - store / engine / services: an isolated RBACStore per test and the
    components built on it
  - make_user / make_role / make_permission: factories for graph fixtures
  - _patch_lifespan(): wires a test service bundle into app.state, bypassing
    real startup
  - api_client: TestClient plus an admin bearer token for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. A uuid in
the name keeps every store isolated.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import:
get_settings() auto-generates SECRET_KEY in dev mode rather than raising, and
the minimum bcrypt cost keeps hashing fast.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: Set env before any auth/core import so get_settings() sees it.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from api.wiring import Services, build_services
from auth.tokens import hash_password
from rbac.engine import AuthorizationEngine
from rbac.models import Permission, Role, User
from rbac.requests import LoginRequest
from rbac.seed import seed_defaults
from rbac.store import RBACStore

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass123"
DEFAULT_PASSWORD = "password123"


def memory_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def unique(prefix: str) -> str:
    """A short name that will not collide within one database."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


# ---------------------------------------------------------------------------
# Store-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[RBACStore, None, None]:
    s = RBACStore(memory_url("rbac"))
    yield s
    s.close()


@pytest.fixture
def engine(store: RBACStore) -> AuthorizationEngine:
    return AuthorizationEngine(store)


@pytest.fixture
def services(store: RBACStore) -> Services:
    return build_services(store=store)


@pytest.fixture
def make_user(store: RBACStore) -> Callable[..., str]:
    """Factory: insert a user and return its id. Password is DEFAULT_PASSWORD."""

    def _make(email: str | None = None, name: str = "Test User", is_active: bool = True) -> str:
        return store.create_user(
            User(
                name=name,
                email=email or f"{unique('user')}@example.com",
                password_hash=hash_password(DEFAULT_PASSWORD),
                is_active=is_active,
            )
        )

    return _make


@pytest.fixture
def make_role(store: RBACStore) -> Callable[..., str]:
    def _make(name: str | None = None, description: str | None = None, is_active: bool = True) -> str:
        return store.create_role(Role(name=name or unique("role"), description=description, is_active=is_active))

    return _make


@pytest.fixture
def make_permission(store: RBACStore) -> Callable[..., str]:
    def _make(
        name: str | None = None,
        resource: str | None = None,
        action: str = "read",
        is_active: bool = True,
    ) -> str:
        return store.create_permission(
            Permission(
                name=name or unique("perm"),
                resource=resource or unique("res"),
                action=action,
                is_active=is_active,
            )
        )

    return _make


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(services: Services):
    """Return an async context manager that replaces the real lifespan.

    Wires a pre-built test service bundle into app.state so TestClient routes
    see an isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.services = services
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, token, admin_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory store.
    The default roles/permissions and an admin user are seeded before the
    client starts; the token comes from a real login.
    """
    test_store = RBACStore(memory_url("api"))
    bundle = build_services(store=test_store)
    seed_defaults(test_store, bundle.engine, admin_email=ADMIN_EMAIL, admin_password=ADMIN_PASSWORD)
    result = bundle.auth.login(LoginRequest(email=ADMIN_EMAIL, password=ADMIN_PASSWORD))

    app.router.lifespan_context = _patch_lifespan(bundle)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, result.access_token, result.user.id

    test_store.close()
