"""
auth/sessions.py -- Session lifecycle: create, resolve, extend, invalidate, sweep.

SessionManager composes two collaborators handed to it by the caller:
  store      -- auth.store.UserStore (rows)
  transport  -- auth.transport.SessionTransport (where the client's id lives)

State machine per session:
  CREATED -> ACTIVE -> EXTENDED -> ACTIVE
                    -> EXPIRED (noticed lazily by get()) -> DELETED
                    -> INVALIDATED -> DELETED
Nothing leaves DELETED: extend() on a dead row deletes it instead of
reviving it.

Every "no valid session" outcome is a None return, never an exception. A
TransportError from the cookie (tampered signature) reads as "no session"
and the bad cookie is cleared.

Time comes from an injected clock so tests can expire sessions without
sleeping.

Layer rule: no imports from api/ or teams/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from auth.models import Session
from auth.store import UserStore
from auth.transport import SessionTransport
from core.db import utcnow
from core.errors import TransportError

logger = logging.getLogger("teamgate.sessions")

DEFAULT_SESSION_DURATION = 7 * 24 * 60 * 60  # 7 days, seconds


class SessionManager:
    """Session operations bound to one transport (usually one HTTP request).

    Usage:
        sessions = SessionManager(store, CookieTransport(request, response))
        session = sessions.create(user.id)
        current = sessions.get()        # Session with .user, or None
        sessions.invalidate()
    """

    def __init__(
        self,
        store: UserStore,
        transport: SessionTransport,
        clock: Callable[[], datetime] = utcnow,
        default_duration: int = DEFAULT_SESSION_DURATION,
    ) -> None:
        self.store = store
        self.transport = transport
        self.default_duration = default_duration
        self._clock = clock

    def _current_id(self) -> Optional[str]:
        try:
            return self.transport.read()
        except TransportError as exc:
            logger.warning("Rejected session cookie: %s", exc.message)
            self.transport.clear()
            return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(
        self,
        user_id: str,
        metadata: Optional[dict[str, Any]] = None,
        duration_seconds: Optional[int] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Session:
        """Persist a new session for user_id and bind it to the transport."""
        duration = duration_seconds if duration_seconds is not None else self.default_duration
        expires_at = self._clock() + timedelta(seconds=duration)
        session = self.store.create_session(
            user_id,
            expires_at,
            metadata=metadata,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        self.transport.bind(session.id, expires_at)
        logger.info("Session created for user %s (expires %s)", user_id, expires_at.isoformat())
        return session

    def get(self) -> Optional[Session]:
        """Resolve the bound session id to a live session with its user.

        Checks, in order:
          1. the row exists            -- else clear the binding
          2. now <= expires_at         -- else delete the row and clear
          3. the user is still active  -- else delete the row and clear
        Cleanup is idempotent, so two requests noticing the same dead session
        at once both succeed.
        """
        session_id = self._current_id()
        if session_id is None:
            return None

        found = self.store.get_session_with_user(session_id)
        if found is None:
            self.transport.clear()
            return None

        session, user, active = found
        if self._clock() > session.expires_at:
            logger.info("Session for user %s expired; removing", session.user_id)
            self.invalidate()
            return None
        if not active:
            logger.info("Session for disabled user %s rejected; removing", session.user_id)
            self.invalidate()
            return None

        session.user = user
        return session

    def invalidate(self) -> None:
        """Delete the bound session (logout). No-op if nothing is bound."""
        session_id = self._current_id()
        if not session_id:
            return
        self.store.delete_session(session_id)
        self.transport.clear()

    def invalidate_all_for_user(self, user_id: str) -> int:
        """Delete every session belonging to user_id ("log out everywhere").

        If the caller's own session is one of them, the binding is cleared as
        well so no dangling cookie is left behind. Returns rows removed.
        """
        current_id = self._current_id()
        current = self.store.get_session(current_id) if current_id else None

        removed = self.store.delete_sessions_for_user(user_id)
        logger.info("Invalidated %d session(s) for user %s", removed, user_id)

        if current is not None and current.user_id == user_id:
            self.transport.clear()
        return removed

    def extend(self, duration_seconds: Optional[int] = None) -> Optional[Session]:
        """Push the bound session's expiry to now + duration.

        Returns None (and clears the binding) when there is no live row.
        """
        session_id = self._current_id()
        if not session_id:
            return None

        now = self._clock()
        duration = duration_seconds if duration_seconds is not None else self.default_duration
        expires_at = now + timedelta(seconds=duration)

        session = self.store.extend_session(session_id, expires_at, now)
        if session is None:
            # Either missing or already expired; an expired row is dead for good.
            self.store.delete_session(session_id)
            self.transport.clear()
            return None

        self.transport.bind(session.id, session.expires_at)
        return session

    def cleanup_expired(self) -> int:
        """Physically delete every expired session. Returns the count removed.

        Meant for a scheduler, not the request path. Only rows already past
        expiry are touched, so it can run alongside live traffic.
        """
        removed = self.store.delete_expired_sessions(self._clock())
        if removed:
            logger.info("Expired session sweep removed %d row(s)", removed)
        return removed
