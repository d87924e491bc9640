"""
tests/conftest.py -- Shared test fixtures for Teamgate unit and integration tests.

This module provides:
  - FakeClock: a settable UTC clock injected into SessionManager / the app
  - engine, user_store, team_store: a fresh in-memory database per test
  - org: a seeded tree root -> ops -> mkt, plus a sibling "eng" under root
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient (follow_redirects=False) against the real app
  - csrf_headers() / login(): request helpers for state-changing routes

Design: plain "sqlite://" URLs get a StaticPool from core.db.create_db_engine,
so the worker thread TestClient runs handlers in sees the same in-memory
schema as the fixture code.

DEBUG, BCRYPT_ROUNDS and LOGIN_RATE_LIMIT must be set before any app import:
get_settings() is cached on first call and auth.passwords reads the bcrypt
cost at import.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

# CRITICAL: Set these before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.main import app
from auth.models import User
from auth.passwords import hash_password
from auth.store import UserStore
from core.cache import TTLCache
from core.db import create_db_engine, utcnow
from teams.hierarchy import TeamHierarchy
from teams.models import Team
from teams.store import TeamStore

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-pass-123"
MEMBER_EMAIL = "member@example.com"
MEMBER_PASSWORD = "member-pass-123"


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable UTC clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = create_db_engine("sqlite://")
    yield eng
    eng.dispose()


@pytest.fixture
def user_store(engine: Engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def team_store(engine: Engine) -> TeamStore:
    return TeamStore(engine)


@dataclass
class Org:
    root: Team
    ops: Team
    mkt: Team
    eng: Team
    admin_id: str
    member_id: str


@pytest.fixture
def org(user_store: UserStore, team_store: TeamStore) -> Org:
    """root -> ops -> mkt, root -> eng; an admin in root and a member in mkt."""
    root = team_store.ensure_root("root", "root")
    ops_id = team_store.create_team(Team(id="ops", name="Operations", parent_id=root.id))
    mkt_id = team_store.create_team(Team(id="mkt", name="Marketing", parent_id=ops_id))
    eng_id = team_store.create_team(Team(id="eng", name="Engineering", parent_id=root.id))

    admin_id = user_store.create_user(
        User(
            email=ADMIN_EMAIL,
            password_hash=hash_password(ADMIN_PASSWORD),
            first_name="Ada",
            last_name="Admin",
            team_id=root.id,
            role="admin",
        )
    )
    member_id = user_store.create_user(
        User(
            email=MEMBER_EMAIL,
            password_hash=hash_password(MEMBER_PASSWORD),
            first_name="Max",
            last_name="Member",
            team_id=mkt_id,
        )
    )
    return Org(
        root=root,
        ops=team_store.get_team(ops_id),
        mkt=team_store.get_team(mkt_id),
        eng=team_store.get_team(eng_id),
        admin_id=admin_id,
        member_id=member_id,
    )


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------


def _patch_lifespan(engine: Engine, user_store: UserStore, team_store: TeamStore, clock: FakeClock):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state. The hierarchy runs without
    snapshot caching so rows written directly through team_store are visible
    to the next request. The cleanup_task is a long sleep: a real
    asyncio.Task is required because shutdown calls .cancel() on it.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.user_store = user_store
        app.state.team_store = team_store
        app.state.cache = TTLCache()
        app.state.hierarchy = TeamHierarchy(team_store, app.state.cache, cache_ttl=0)
        app.state.clock = clock
        app.state.cleanup_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.cleanup_task.cancel()
        del app.state.clock

    return test_lifespan


@dataclass
class ApiHarness:
    client: TestClient
    org: Org
    clock: FakeClock
    user_store: UserStore
    team_store: TeamStore


@pytest.fixture
def api_client(engine, user_store, team_store, org, clock) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness around the real app with isolated in-memory stores.

    follow_redirects=False so tests can assert on 302 Location headers.
    """
    app.router.lifespan_context = _patch_lifespan(engine, user_store, team_store, clock)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield ApiHarness(client, org, clock, user_store, team_store)


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


def csrf_headers(client: TestClient) -> dict[str, str]:
    """Fetch (or reuse) the CSRF cookie and return the matching header."""
    token = client.get("/api/v1/auth/csrf").json()["csrf_token"]
    return {"X-CSRF-Token": token}


def login(client: TestClient, email: str, password: str):
    return client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
        headers=csrf_headers(client),
    )
