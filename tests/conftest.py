"""
tests/conftest.py -- Shared test fixtures for PetKeeper integration tests.

This module provides:
  - _make_db(): creates an isolated in-memory Database per test module
  - _patch_lifespan(): wires a test Database into app.state, bypassing real startup
  - api_client: TestClient plus one registered account and its token
  - register_user() / auth_header(): helpers for building multi-account scenarios

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG and RATE_LIMIT_ENABLED must be set before any api/auth/core import:
get_settings() auto-generates SECRET_KEY only in dev mode, and the shared
Limiter reads its enabled flag once when api.limiter is imported.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient

from api.main import app, init_state
from core.database import Database

DEFAULT_PASSWORD = "Passw0rd1"


# ---------------------------------------------------------------------------
# Database helpers
# ---------------------------------------------------------------------------


def _make_db(db_suffix: str) -> Database:
    """Create an isolated named shared-memory SQLite Database.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (usually the test module's name).
    """
    return Database(f"sqlite:///file:petkeeper_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(db: Database):
    """Return an async context manager that replaces the real lifespan.

    Wires every store and service onto the given test Database so TestClient
    routes see an isolated DB rather than the configured one.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_state(app, db)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def register_user(client: TestClient, username: str, password: str = DEFAULT_PASSWORD) -> tuple[str, str]:
    """Register an account through the API. Returns (token, account_id)."""
    resp = client.post(
        "/api/v1/auth/register",
        json={"email": f"{username}@example.com", "username": username, "password": password},
    )
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    return data["access_token"], data["user"]["id"]


def login_user(client: TestClient, username: str, password: str = DEFAULT_PASSWORD) -> str:
    """Log in through the API and return a fresh token (captures the current sub-user link)."""
    resp = client.post("/api/v1/auth/login", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]["access_token"]


def create_pet(client: TestClient, token: str, name: str = "Rex") -> int:
    resp = client.post("/api/v1/pets", json={"name": name, "species": "dog"}, headers=auth_header(token))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["id"]


def add_sub_user(client: TestClient, parent_token: str, username: str, role: str) -> tuple[str, str]:
    """Register a new sub-user under the parent and log it in. Returns (token, account_id)."""
    resp = client.post(
        "/api/v1/auth/sub-users",
        json={
            "email": f"{username}@example.com",
            "username": username,
            "password": DEFAULT_PASSWORD,
            "role": role,
        },
        headers=auth_header(parent_token),
    )
    assert resp.status_code == 201, resp.text
    return login_user(client, username), resp.json()["data"]["id"]


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, token, account_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory Database.
    One account ("owner") is registered up front.
    """
    db = _make_db(request.module.__name__.rsplit(".", 1)[-1])
    app.router.lifespan_context = _patch_lifespan(db)

    with TestClient(app, raise_server_exceptions=True) as client:
        token, account_id = register_user(client, "owner")
        yield client, token, account_id

    db.close()


@pytest.fixture
def db(tmp_path) -> Generator[Database, None, None]:
    """A fresh file-backed Database for store-level unit tests."""
    database = Database(f"sqlite:///{tmp_path / 'petkeeper.db'}")
    yield database
    database.close()
