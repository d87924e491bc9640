"""
auth/dependencies.py -- FastAPI Depends() helpers and the page-level access guard.

Every request gets its own SessionManager bound to a CookieTransport over that
request and the Response FastAPI will send, so cookie writes made by the core
(bind on login, clear on logout or expiry) land on the outgoing response.

  get_current_session()  raises HTTP 401 when unauthenticated.
  require_admin()        raises HTTP 403 when the user is not an admin.
  require_csrf()         raises HTTP 403 when X-CSRF-Token does not match.
  require_auth()         page guard: raises LoginRequired, which api/main.py
                         turns into a 302 to /login?returnTo=<path>.

HTTPException responses are built by FastAPI from scratch, so a cookie clear
queued on the injected Response would be lost. _reject() copies it onto the
exception's headers.

Layer rule: no imports from api/ or teams/. May import from fastapi because
this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote

from fastapi import Depends, Header, HTTPException, Request, Response
from fastapi.responses import RedirectResponse

from auth.models import Session
from auth.service import AuthService
from auth.sessions import SessionManager
from auth.transport import CookieTransport, validate_csrf_token
from core.config import Settings, get_settings
from core.db import utcnow


class LoginRequired(Exception):
    """Raised by require_auth() when a page needs a session and there is none."""

    def __init__(self, return_to: str, set_cookie: Optional[str] = None) -> None:
        self.return_to = return_to
        self.set_cookie = set_cookie
        super().__init__(return_to)


def get_session_manager(request: Request, response: Response) -> SessionManager:
    settings = get_settings()
    return SessionManager(
        request.app.state.user_store,
        CookieTransport(request, response, settings),
        clock=getattr(request.app.state, "clock", utcnow),
        default_duration=settings.session_duration_seconds,
    )


def get_auth_service(request: Request, sessions: SessionManager = Depends(get_session_manager)) -> AuthService:
    return AuthService(request.app.state.user_store, sessions, get_settings())


def _pending_clear(sessions: SessionManager) -> Optional[str]:
    transport = sessions.transport
    if isinstance(transport, CookieTransport):
        headers = transport.set_cookie_headers()
        if headers:
            return headers[-1]
    return None


def _reject(status_code: int, code: str, message: str, sessions: SessionManager) -> HTTPException:
    set_cookie = _pending_clear(sessions)
    return HTTPException(
        status_code=status_code,
        detail={"code": code, "message": message},
        headers={"set-cookie": set_cookie} if set_cookie else None,
    )


def get_current_session(sessions: SessionManager = Depends(get_session_manager)) -> Session:
    """Require a live session. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(session: Session = Depends(get_current_session)): ...
    """
    session = sessions.get()
    if session is None:
        raise _reject(401, "unauthorized", "Authentication required.", sessions)
    return session


def require_admin(session: Session = Depends(get_current_session)) -> Session:
    """Require an admin session. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin."""
    if session.user is None or session.user.role != "admin":
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return session


def require_csrf(
    request: Request,
    x_csrf_token: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject state-changing requests whose X-CSRF-Token header does not match the cookie."""
    if not settings.csrf_protection:
        return
    if not validate_csrf_token(request, x_csrf_token, settings):
        raise HTTPException(
            status_code=403,
            detail={"code": "csrf_failed", "message": "Missing or invalid CSRF token."},
        )


# ---------------------------------------------------------------------------
# Page-level guard
# ---------------------------------------------------------------------------


def _safe_return_to(path: str) -> str:
    # Only same-origin absolute paths; "//host" would be protocol-relative.
    if not path.startswith("/") or path.startswith("//"):
        return "/"
    return path


def require_auth(sessions: SessionManager, return_to: str) -> Session:
    """Return the live session or raise LoginRequired(return_to).

    Call at the top of page handlers:
        session = require_auth(sessions, request.url.path)
    """
    session = sessions.get()
    if session is None:
        raise LoginRequired(_safe_return_to(return_to), _pending_clear(sessions))
    return session


def login_redirect(exc: LoginRequired, settings: Settings | None = None) -> RedirectResponse:
    """Build the 302 to the login page for a LoginRequired."""
    settings = settings or get_settings()
    location = f"{settings.login_path}?returnTo={quote(exc.return_to, safe='')}"
    response = RedirectResponse(location, status_code=302)
    if exc.set_cookie:
        response.headers.append("set-cookie", exc.set_cookie)
    return response
