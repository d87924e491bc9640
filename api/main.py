"""
api/main.py -- FastAPI application entry point for Teamgate.

Exposes session authentication and the team hierarchy over HTTP.

Install deps:  pip install -e ".[test]"
Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (engine, stores, root team seed, session sweep task)
and shutdown (cancel sweep task, close cache and stores) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.teams import router as teams_router
from auth.dependencies import LoginRequired, get_session_manager, login_redirect, require_auth
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.transport import MemoryTransport
from core.cache import TTLCache
from core.config import get_settings
from core.db import create_db_engine
from core.errors import (
    DuplicateEmailError,
    HierarchyCycleError,
    NoRootError,
    NotFoundError,
    RootConflictError,
    TeamgateError,
)
from teams.hierarchy import TeamHierarchy
from teams.store import TeamStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("teamgate.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background session sweep
# ---------------------------------------------------------------------------


async def _session_cleanup_loop(app: FastAPI, interval: int) -> None:
    """Delete expired session rows every `interval` seconds.

    The sweep has no client binding, so it runs through a MemoryTransport.
    Store calls are blocking; asyncio.to_thread keeps them off the event loop.
    Any failure is logged and the loop keeps going. CancelledError from
    task.cancel() at shutdown propagates out of asyncio.sleep.
    """
    sweeper = SessionManager(app.state.user_store, MemoryTransport())
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await asyncio.to_thread(sweeper.cleanup_expired)
        except Exception:
            logger.exception("Session cleanup failed")
            continue
        if removed:
            logger.info("Session cleanup removed %d expired sessions", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Engine first -- creates the schema; both stores share it.
      2. Root team seed -- registration defaults to DEFAULT_TEAM_ID, which
         must exist before the first POST /register.
      3. Sweep task last -- references app.state.user_store.
    """
    logger.info("Teamgate API starting up")
    engine = create_db_engine(_settings.database_url)
    app.state.engine = engine
    app.state.user_store = UserStore(engine)
    app.state.team_store = TeamStore(engine)
    app.state.cache = TTLCache()
    app.state.hierarchy = TeamHierarchy(app.state.team_store, app.state.cache, _settings.team_cache_ttl_seconds)

    if _settings.seed_root_team:
        root = app.state.team_store.ensure_root(_settings.default_team_id, _settings.root_team_name)
        logger.info("Root team ready (id=%s)", root.id)
    else:
        logger.info("Root team seeding disabled")

    app.state.cleanup_task = asyncio.create_task(
        _session_cleanup_loop(app, _settings.session_cleanup_interval_seconds)
    )

    yield

    app.state.cleanup_task.cancel()
    app.state.cache.close()
    app.state.team_store.close()
    app.state.user_store.close()
    logger.info("Teamgate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Teamgate API",
    description="Session authentication and team-hierarchy access control.",
    version=VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced below by session-guarded routes.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,  # the session is a cookie
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "X-CSRF-Token"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(teams_router, prefix="/api/v1", tags=["Teams"])


# ---------------------------------------------------------------------------
# Session-guarded API documentation
#
# Browsers without a session are redirected to LOGIN_PATH?returnTo=/docs
# rather than shown a JSON 401.
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
def docs(request: Request, sessions: SessionManager = Depends(get_session_manager)):
    """Swagger UI -- requires a session."""
    require_auth(sessions, request.url.path)
    return get_swagger_ui_html(openapi_url="/openapi.json", title="Teamgate API")


@app.get("/redoc", include_in_schema=False)
def redoc(request: Request, sessions: SessionManager = Depends(get_session_manager)):
    """ReDoc UI -- requires a session."""
    require_auth(sessions, request.url.path)
    return get_redoc_html(openapi_url="/openapi.json", title="Teamgate API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All JSON handlers return the same ErrorResponse envelope.
# ---------------------------------------------------------------------------

_ERROR_STATUS: list[tuple[type[TeamgateError], int, str]] = [
    (NotFoundError, 404, "not_found"),
    (DuplicateEmailError, 409, "duplicate_email"),
    (RootConflictError, 409, "root_conflict"),
    (NoRootError, 409, "no_root"),
    (HierarchyCycleError, 400, "hierarchy_cycle"),
]


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(TeamgateError)
async def teamgate_error_handler(request: Request, exc: TeamgateError) -> JSONResponse:
    """Map domain errors to HTTP statuses.

    Anything not listed (HashingError, TransportError) is an internal fault:
    log it and answer with a generic 500.
    """
    for exc_type, status_code, code in _ERROR_STATUS:
        if isinstance(exc, exc_type):
            return _error_response(status_code, code, exc.message)
    logger.error("%s on %s %s", type(exc).__name__, request.method, request.url.path, exc_info=exc)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    return login_redirect(exc, _settings)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    exc.headers is passed through: it carries Cache-Control on login failures
    and the session cookie clear when a dead session caused the 401.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )
    response = _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    for key, value in (exc.headers or {}).items():
        response.headers[key] = value
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. The traceback goes to the log, never the body."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit and no session: load balancers must reach it.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and database reachability."""
    try:
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        database = "unavailable"
    status = "healthy" if database == "ok" else "degraded"
    return HealthResponse(status=status, version=VERSION, components={"database": database})
