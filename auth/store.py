"""
auth/store.py -- SQLAlchemy Core persistence layer for users and sessions.

Pattern: Repository + Data Mapper (same as teams/store.py).
UserStore is the repository; _row_to_user / _row_to_session are the mappers.
Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  get_session_with_user() projects the user WITHOUT password_hash -- the
  credential never rides along with a session.

Sessions are written with single-statement UPDATE/DELETE ... WHERE id = ...,
which is all the atomicity the lifecycle needs: a session is only ever
mutated by the client that holds it, and every delete is idempotent.

Layer rule: no imports from api/ or teams/.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Session, SessionUser, User
from core.db import as_utc, sessions as _sessions, users as _users, utcnow
from core.errors import DuplicateEmailError, NotFoundError
from core.ids import create_id

_SESSION_ID_SIZE = 32


class UserStore:
    """Repository for User and Session rows.

    Usage:
        store = UserStore(create_db_engine("sqlite:///teamgate.db"))
        user_id = store.create_user(User(email=..., password_hash=..., ...))
        user = store.get_by_email("ada@example.com")
        store.close()
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated id.

        Raises DuplicateEmailError if the email is taken, NotFoundError if
        team_id does not reference an existing team. The insert is a single
        statement, so a failed insert leaves no partial row behind.
        """
        user_id = user.id or create_id("user")
        now = utcnow()
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user_id,
                        email=user.email,
                        password_hash=user.password_hash,
                        first_name=user.first_name,
                        last_name=user.last_name,
                        role=user.role,
                        team_id=user.team_id,
                        active=user.active,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            # Both the UNIQUE(email) and the team FK surface as IntegrityError;
            # tell them apart by looking for the conflicting email.
            if self.get_by_email(user.email) is not None:
                raise DuplicateEmailError(user.email) from exc
            raise NotFoundError(f"Team with ID {user.team_id} not found") from exc
        return user_id

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by email."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: first_name, last_name, role, team_id, active,
        password_hash. Returns True if a row was updated.
        """
        fields["updated_at"] = utcnow()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: str) -> None:
        """Stamp the current UTC time as last_login_at. Called on every successful login."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login_at=utcnow()))
            conn.commit()

    # ------------------------------------------------------------------
    # Session queries
    # ------------------------------------------------------------------

    def create_session(
        self,
        user_id: str,
        expires_at: datetime,
        metadata: dict[str, Any] | None = None,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> Session:
        """Insert a session row with a fresh CSPRNG id and return it."""
        now = utcnow()
        session = Session(
            id=create_id("sess", _SESSION_ID_SIZE),
            user_id=user_id,
            expires_at=expires_at,
            metadata=dict(metadata or {}),
            user_agent=user_agent,
            ip_address=ip_address,
            created_at=now,
            updated_at=now,
        )
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=session.id,
                    user_id=user_id,
                    expires_at=expires_at,
                    created_at=now,
                    updated_at=now,
                    user_agent=user_agent,
                    ip_address=ip_address,
                    metadata=session.metadata,
                )
            )
            conn.commit()
        return session

    def get_session(self, session_id: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def get_session_with_user(self, session_id: str) -> tuple[Session, SessionUser, bool] | None:
        """Return (session, user projection, user.active) or None if no row.

        Inner join: a session whose user vanished (cascade race) reads as
        missing rather than as a session with no user.
        """
        stmt = (
            select(
                _sessions,
                _users.c.email,
                _users.c.first_name,
                _users.c.last_name,
                _users.c.role,
                _users.c.team_id,
                _users.c.active,
            )
            .select_from(_sessions.join(_users, _sessions.c.user_id == _users.c.id))
            .where(_sessions.c.id == session_id)
            .limit(1)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        if row is None:
            return None
        session = _row_to_session(row)
        m = row._mapping
        user = SessionUser(
            id=session.user_id,
            email=m["email"],
            first_name=m["first_name"],
            last_name=m["last_name"],
            role=m["role"],
            team_id=m["team_id"],
        )
        return session, user, bool(m["active"])

    def list_sessions_for_user(self, user_id: str) -> list[Session]:
        """Return every stored session for a user (live or not), newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select().where(_sessions.c.user_id == user_id).order_by(_sessions.c.created_at.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def extend_session(self, session_id: str, expires_at: datetime, now: datetime) -> Session | None:
        """Move expires_at forward for a session that is still live at `now`.

        The expiry guard is part of the UPDATE's WHERE clause so a session
        that already died cannot be revived. Returns None when nothing matched.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.id == session_id) & (_sessions.c.expires_at >= now))
                .values(expires_at=expires_at, updated_at=now)
            )
            conn.commit()
        if result.rowcount == 0:
            return None
        return self.get_session(session_id)

    def delete_session(self, session_id: str) -> bool:
        """Delete one session. Idempotent; returns True if a row was removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
            conn.commit()
        return result.rowcount > 0

    def delete_sessions_for_user(self, user_id: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def delete_expired_sessions(self, now: datetime) -> int:
        """Bulk-delete every session whose expires_at is before now. Returns rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at < now))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        first_name=row.first_name,
        last_name=row.last_name,
        role=row.role,
        team_id=row.team_id,
        active=bool(row.active),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        last_login_at=as_utc(row.last_login_at),
    )


def _row_to_session(row) -> Session:
    m = row._mapping
    return Session(
        id=m["id"],
        user_id=m["user_id"],
        expires_at=as_utc(m["expires_at"]),
        metadata=dict(m["metadata"] or {}),
        user_agent=m["user_agent"],
        ip_address=m["ip_address"],
        created_at=as_utc(m["created_at"]),
        updated_at=as_utc(m["updated_at"]),
    )
