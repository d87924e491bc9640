"""
core/db.py -- Shared SQLAlchemy Core schema and engine factory.

users, teams and sessions reference each other through foreign keys, so they
live on one MetaData and share one Engine. The repositories in auth/store.py
and teams/store.py take that engine and own all queries against it.

Referential rules:
  users.team_id    -> teams.id     ON DELETE CASCADE
  sessions.user_id -> users.id     ON DELETE CASCADE
  teams.parent_id  -> teams.id     (self-reference)
  users.email      UNIQUE
  teams.is_root    at most one TRUE row (partial unique index)

SQLite only enforces foreign keys when PRAGMA foreign_keys=ON is issued on
every connection, so the connect listener below does that alongside WAL mode.

Layer rule: no imports from api/, auth/, or teams/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

metadata = MetaData()

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

teams = Table(
    "teams",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("parent_id", String(64), ForeignKey("teams.id", name="fk_teams_parent")),
    Column("is_root", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

Index(
    "uq_teams_single_root",
    teams.c.is_root,
    unique=True,
    sqlite_where=teams.c.is_root.is_(True),
    postgresql_where=teams.c.is_root.is_(True),
)
Index("ix_teams_parent_id", teams.c.parent_id)

users = Table(
    "users",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("first_name", String(255), nullable=False),
    Column("last_name", String(255), nullable=False),
    Column("role", String(30), nullable=False, server_default="member"),  # "admin" | "member"
    Column("team_id", String(64), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
    Column("active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("last_login_at", DateTime(timezone=True)),
)

sessions = Table(
    "sessions",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("user_id", String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("user_agent", Text),
    Column("ip_address", String(45)),
    Column("metadata", JSON),
)

Index("ix_sessions_user_id", sessions.c.user_id)
Index("ix_sessions_expires_at", sessions.c.expires_at)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL mode and foreign key enforcement on each new connection.

    Both are per-connection PRAGMAs -- they are not inherited by new
    connections from the pool. Without foreign_keys=ON the cascade deletes
    declared above are silently ignored by SQLite.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(db_url: str) -> Engine:
    """Create an Engine for db_url and make sure the schema exists.

    In-memory SQLite URLs get a StaticPool so every thread (TestClient runs
    handlers in a worker thread) sees the same single connection and schema.
    """
    kwargs: dict = {}
    if db_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(db_url, **kwargs)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _sqlite_pragmas)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise a datetime read back from the database to aware UTC.

    SQLite's DateTime storage drops tzinfo; values are always written as UTC,
    so a naive value is UTC by construction.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
