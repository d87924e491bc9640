"""
auth/transport.py -- Binding a session id to a client.

SessionManager never touches HTTP. It talks to a SessionTransport, which has
three operations: bind(id, expires_at), read(), clear(). Two implementations:

  CookieTransport -- the web binding. One instance per request, wrapping the
      Starlette Request (to read) and the Response that FastAPI will send (to
      write). Cookie attributes:
        httponly=True   JS cannot read the session id (XSS mitigation).
        samesite="lax"  not sent on cross-site POSTs (CSRF mitigation).
        secure          Settings.secure_cookies (on in production).
        path="/"        one session for the whole app.
      The value is "<session id>.<hex HMAC-SHA256(SECRET_KEY, session id)>".
      A forged or truncated value fails read() with TransportError.

  MemoryTransport -- a single in-process slot for callers with no client:
      the background sweep and unit tests.

CSRF helpers live here too because they are the other cookie this app sets.
The CSRF cookie is deliberately NOT httponly -- the front end must read it
and echo it back in the X-CSRF-Token header (double-submit pattern).

Layer rule: no imports from api/ or teams/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime
from typing import Callable, Optional, Protocol

from starlette.requests import Request
from starlette.responses import Response

from core.config import Settings, get_settings
from core.db import utcnow
from core.errors import TransportError

logger = logging.getLogger("teamgate.auth.transport")

_UNSET = object()


class SessionTransport(Protocol):
    def bind(self, session_id: str, expires_at: datetime) -> None: ...

    def read(self) -> Optional[str]: ...

    def clear(self) -> None: ...


# ---------------------------------------------------------------------------
# Cookie signing
# ---------------------------------------------------------------------------


def _signature(session_id: str, secret_key: str) -> str:
    return hmac.new(secret_key.encode(), session_id.encode(), hashlib.sha256).hexdigest()


def sign_session_id(session_id: str, secret_key: str) -> str:
    return f"{session_id}.{_signature(session_id, secret_key)}"


def unsign_session_id(value: str, secret_key: str) -> str:
    """Return the session id from a signed cookie value.

    Raises TransportError if the value is malformed or the signature does not
    match. compare_digest keeps the check constant-time.
    """
    session_id, sep, signature = value.rpartition(".")
    if not sep or not session_id:
        raise TransportError("Malformed session cookie")
    if not hmac.compare_digest(signature, _signature(session_id, secret_key)):
        raise TransportError("Session cookie signature mismatch")
    return session_id


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


class CookieTransport:
    """Session transport over the request/response cookie pair of one HTTP exchange.

    Writes are remembered, so a read() after bind() or clear() in the same
    request sees the new state rather than the stale inbound cookie.
    """

    def __init__(self, request: Request, response: Response, settings: Settings | None = None) -> None:
        self.request = request
        self.response = response
        self.settings = settings or get_settings()
        self._pending = _UNSET

    @property
    def cookie_name(self) -> str:
        return self.settings.session_cookie_name

    def read(self) -> Optional[str]:
        if self._pending is not _UNSET:
            return self._pending
        raw = self.request.cookies.get(self.cookie_name)
        if not raw:
            return None
        return unsign_session_id(raw, self.settings.secret_key)

    def bind(self, session_id: str, expires_at: datetime) -> None:
        self.response.set_cookie(
            self.cookie_name,
            value=sign_session_id(session_id, self.settings.secret_key),
            expires=expires_at,
            path="/",
            httponly=True,
            samesite="lax",
            secure=bool(self.settings.secure_cookies),
        )
        self._pending = session_id

    def clear(self) -> None:
        # delete_cookie writes an empty value with max-age=0 and an expiry in
        # the past, so the browser drops it immediately.
        self.response.delete_cookie(
            self.cookie_name,
            path="/",
            httponly=True,
            samesite="lax",
            secure=bool(self.settings.secure_cookies),
        )
        self._pending = None

    def set_cookie_headers(self) -> list[str]:
        """Return the Set-Cookie headers written so far.

        Used when a request is rejected with an HTTPException: FastAPI does not
        merge the injected Response into error responses, so the caller copies
        these onto the exception to make a clear() reach the client.
        """
        return self.response.headers.getlist("set-cookie")


class MemoryTransport:
    """In-process single-session binding. Honors expires_at like a browser would."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._session_id: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    def read(self) -> Optional[str]:
        if self._session_id is None:
            return None
        if self._expires_at is not None and self._expires_at < self._clock():
            self.clear()
            return None
        return self._session_id

    def bind(self, session_id: str, expires_at: datetime) -> None:
        self._session_id = session_id
        self._expires_at = expires_at

    def clear(self) -> None:
        self._session_id = None
        self._expires_at = None


# ---------------------------------------------------------------------------
# CSRF token
# ---------------------------------------------------------------------------


def get_csrf_token(request: Request, response: Response, settings: Settings | None = None) -> str:
    """Return the CSRF token from the cookie, minting and setting one if absent."""
    settings = settings or get_settings()
    existing = request.cookies.get(settings.csrf_cookie_name)
    if existing:
        return existing
    token = secrets.token_urlsafe(32)
    response.set_cookie(
        settings.csrf_cookie_name,
        value=token,
        max_age=settings.csrf_max_age_seconds,
        path="/",
        httponly=False,  # the client echoes it back in X-CSRF-Token
        samesite="lax",
        secure=bool(settings.secure_cookies),
    )
    return token


def validate_csrf_token(request: Request, token: Optional[str], settings: Settings | None = None) -> bool:
    """Return True iff token equals the CSRF cookie. Constant-time; missing values fail."""
    settings = settings or get_settings()
    stored = request.cookies.get(settings.csrf_cookie_name)
    if not stored or not token:
        return False
    return hmac.compare_digest(stored.encode(), token.encode())
