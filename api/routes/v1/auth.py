"""
api/routes/v1/auth.py -- Session and account REST endpoints.

Routes:
  GET  /api/v1/auth/csrf                          -- issue/return the CSRF token (public)
  POST /api/v1/auth/login                         -- password login; sets session cookie
  POST /api/v1/auth/register                      -- self-service registration
  POST /api/v1/auth/logout                        -- delete current session, clear cookie
  GET  /api/v1/auth/me                            -- current session + user
  POST /api/v1/auth/session/extend                -- push current session's expiry out
  POST /api/v1/auth/logout-all                    -- delete every session of the caller
  POST /api/v1/auth/users                         -- create user with team/role (admin)
  POST /api/v1/auth/users/{user_id}/sessions/revoke -- force-logout a user (admin)
  POST /api/v1/auth/sessions/cleanup              -- run the expired-session sweep now (admin)

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] AuthService.log_in() provides timing equalization -- use it, never inline
       get_by_email() + verify_password().
  [M5] Cache-Control: no-store on login responses.
  Every state-changing route requires X-CSRF-Token to match the csrf_token cookie.
  Wrong email and wrong password produce the same "bad_credentials" error.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.limiter import limiter
from api.models import (
    CsrfResponse,
    ExtendRequest,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    RemovedResponse,
    SessionResponse,
    UserCreate,
    UserCreatedResponse,
)
from auth.dependencies import (
    get_auth_service,
    get_current_session,
    get_session_manager,
    require_admin,
    require_csrf,
)
from auth.models import Session
from auth.service import AuthService
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.transport import get_csrf_token
from core.config import get_settings
from core.errors import NotFoundError

_settings = get_settings()

router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/csrf", response_model=CsrfResponse)
async def csrf(request: Request, response: Response) -> CsrfResponse:
    """Return the CSRF token, setting the cookie on first call."""
    return CsrfResponse(csrf_token=get_csrf_token(request, response, _settings))


@router.post("/auth/login", response_model=SessionResponse, dependencies=[Depends(require_csrf)])
@limiter.limit(lambda: _settings.login_rate_limit)  # [H2] brute-force mitigation; read per request
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
) -> SessionResponse:
    """Authenticate with email and password; set the session cookie."""
    session = auth.log_in(
        body.email,
        body.password,
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )
    if session is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "bad_credentials", "message": "Invalid email or password."},
            headers={"Cache-Control": "no-store"},  # [M5]
        )
    response.headers["Cache-Control"] = "no-store"  # [M5]
    # Re-read through the transport so the response carries the joined user.
    return SessionResponse.from_session(auth.sessions.get())


@router.post(
    "/auth/register",
    response_model=UserCreatedResponse,
    status_code=201,
    dependencies=[Depends(require_csrf)],
)
def register(body: RegisterRequest, auth: AuthService = Depends(get_auth_service)) -> UserCreatedResponse:
    """Create an account in the default team with the default role.

    A taken email surfaces as DuplicateEmailError -> 409 via the app's
    exception handler.
    """
    user_id = auth.create_user(body.email, body.password, body.first_name, body.last_name)
    return UserCreatedResponse(user_id=user_id)


@router.post("/auth/logout", response_model=MessageResponse, dependencies=[Depends(require_csrf)])
def logout(sessions: SessionManager = Depends(get_session_manager)) -> MessageResponse:
    """Delete the current session and clear the cookie. Succeeds without a session."""
    sessions.invalidate()
    return MessageResponse(message="Logged out.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=SessionResponse)
def me(session: Session = Depends(get_current_session)) -> SessionResponse:
    return SessionResponse.from_session(session)


@router.post("/auth/session/extend", response_model=SessionResponse, dependencies=[Depends(require_csrf)])
def extend_session(
    body: Optional[ExtendRequest] = None,
    session: Session = Depends(get_current_session),
    sessions: SessionManager = Depends(get_session_manager),
) -> SessionResponse:
    """Renew the current session for duration_seconds (default: SESSION_DURATION_SECONDS)."""
    extended = sessions.extend(body.duration_seconds if body else None)
    if extended is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    extended.user = session.user
    return SessionResponse.from_session(extended)


@router.post("/auth/logout-all", response_model=RemovedResponse, dependencies=[Depends(require_csrf)])
def logout_all(
    session: Session = Depends(get_current_session),
    sessions: SessionManager = Depends(get_session_manager),
) -> RemovedResponse:
    """Log the caller out of every device, including this one."""
    return RemovedResponse(removed=sessions.invalidate_all_for_user(session.user_id))


# ---------------------------------------------------------------------------
# Admin endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/auth/users",
    response_model=UserCreatedResponse,
    status_code=201,
    dependencies=[Depends(require_csrf)],
)
def create_user(
    body: UserCreate,
    admin: Session = Depends(require_admin),
    auth: AuthService = Depends(get_auth_service),
) -> UserCreatedResponse:
    """Create a user in a chosen team with a chosen role. Admin only."""
    user_id = auth.create_user(
        body.email,
        body.password,
        body.first_name,
        body.last_name,
        team_id=body.team_id,
        role=body.role.value if body.role else None,
    )
    return UserCreatedResponse(user_id=user_id)


@router.post(
    "/auth/users/{user_id}/sessions/revoke",
    response_model=RemovedResponse,
    dependencies=[Depends(require_csrf)],
)
def revoke_user_sessions(
    request: Request,
    user_id: str,
    admin: Session = Depends(require_admin),
    sessions: SessionManager = Depends(get_session_manager),
) -> RemovedResponse:
    """Force-logout a user everywhere. Admin only.

    If the admin revokes their own sessions, their cookie is cleared too.
    """
    user_store: UserStore = request.app.state.user_store
    if user_store.get_by_id(user_id) is None:
        raise NotFoundError(f"User with ID {user_id} not found")
    return RemovedResponse(removed=sessions.invalidate_all_for_user(user_id))


@router.post("/auth/sessions/cleanup", response_model=RemovedResponse, dependencies=[Depends(require_csrf)])
def cleanup_sessions(
    admin: Session = Depends(require_admin),
    sessions: SessionManager = Depends(get_session_manager),
) -> RemovedResponse:
    """Run the expired-session sweep immediately. Admin only."""
    return RemovedResponse(removed=sessions.cleanup_expired())
