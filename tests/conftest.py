"""
tests/conftest.py -- Shared test fixtures for RoleGate unit and integration tests.

This module provides:
  - store / auth_service / user_service / role_service: a fresh file-backed
    SQLite database per test, with the Admin and User roles seeded
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - api_client: TestClient with an administrator and their JWT

Design: SQLite files under tmp_path (not :memory:) are required because
TestClient runs route handlers in a thread pool and the concurrency tests use
their own threads. A plain :memory: DB is per-connection and would present a
blank schema to each worker thread.

The environment must be set before any auth/core import so get_settings()
sees the test signing key, cheap bcrypt rounds, and a rate limit high enough
that a whole module of logins never trips it.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from pathlib import Path

# CRITICAL: Set env before any auth/core import so get_settings() is built from it.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("JWT_SIGNING_KEY", "test-signing-key-0123456789abcdef0123456789")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_services
from auth.roles import RoleService
from auth.service import AuthService
from auth.store import UserRoleStore
from auth.users import UserService
from core.config import get_settings

TEST_SIGNING_KEY = os.environ["JWT_SIGNING_KEY"]
ADMIN_USERNAME = "testadmin"
ADMIN_PASSWORD = "testpass123"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_store(directory: Path) -> UserRoleStore:
    """Create an isolated file-backed store in the given directory."""
    return UserRoleStore(f"sqlite:///{directory / 'rolegate_test.db'}")


def _patch_lifespan(store: UserRoleStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-created test store and its services into app.state so
    TestClient routes see the isolated test DB rather than DATABASE_URL.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, store)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Function-scoped fixtures -- one database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def store(tmp_path: Path) -> Generator[UserRoleStore, None, None]:
    s = _make_test_store(tmp_path)
    yield s
    s.close()


@pytest.fixture
def auth_service(store: UserRoleStore) -> AuthService:
    return AuthService.from_settings(store, get_settings())


@pytest.fixture
def user_service(store: UserRoleStore) -> UserService:
    return UserService(store)


@pytest.fixture
def role_service(store: UserRoleStore) -> RoleService:
    return RoleService(store)


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(tmp_path_factory: pytest.TempPathFactory) -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated database. The
    administrator is created through the bootstrap path before the client
    starts, and the token it returns is used in Authorization headers.

    base_url uses localhost so requests pass TrustedHostMiddleware.
    """
    s = _make_test_store(tmp_path_factory.mktemp("api"))
    result = AuthService.from_settings(s, get_settings()).bootstrap_admin(
        ADMIN_USERNAME, "testadmin@example.com", ADMIN_PASSWORD
    )
    assert result.ok, result.failure

    app.router.lifespan_context = _patch_lifespan(s)

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, result.value.token, result.value.user_id

    s.close()
