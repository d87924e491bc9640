"""
API request and response models for Teamgate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
teams/models.py, which own the internal domain representation. Route handlers
map between the two.

The session id is never part of any response body. It lives only in the
httpOnly cookie, out of reach of page scripts.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from auth.models import Session
from auth.passwords import MAX_PASSWORD_BYTES
from teams.models import HierarchyTeam, Team

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_MIN_EXTEND_SECONDS = 60
_MAX_EXTEND_SECONDS = 30 * 24 * 60 * 60


class RoleEnum(str, Enum):
    admin = "admin"
    member = "member"


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class _Credentials(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    password: str = Field(min_length=8)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        """bcrypt ignores input past 72 bytes; refuse it rather than truncate silently."""
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
        return value


class LoginRequest(_Credentials):
    """Request body for POST /api/v1/auth/login."""


class RegisterRequest(_Credentials):
    """Request body for POST /api/v1/auth/register (self-service, default team and role)."""

    first_name: str = Field(min_length=1, max_length=255)
    last_name: str = Field(min_length=1, max_length=255)


class UserCreate(RegisterRequest):
    """Request body for POST /api/v1/auth/users (admin)."""

    team_id: Optional[str] = Field(default=None, max_length=64)
    role: Optional[RoleEnum] = None


class ExtendRequest(BaseModel):
    """Request body for POST /api/v1/auth/session/extend. Omit duration for the default."""

    duration_seconds: Optional[int] = Field(default=None, ge=_MIN_EXTEND_SECONDS, le=_MAX_EXTEND_SECONDS)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class SessionUserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    first_name: str
    last_name: str
    role: str
    team_id: str


class SessionResponse(BaseModel):
    """Current session: expiry and the user it belongs to."""

    model_config = ConfigDict(frozen=True)

    expires_at: datetime
    user: SessionUserResponse

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        u = session.user
        return cls(
            expires_at=session.expires_at,
            user=SessionUserResponse(
                id=u.id,
                email=u.email,
                first_name=u.first_name,
                last_name=u.last_name,
                role=u.role,
                team_id=u.team_id,
            ),
        )


class CsrfResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    csrf_token: str


class UserCreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str


class RemovedResponse(BaseModel):
    """Count of session rows removed by a bulk invalidation or sweep."""

    model_config = ConfigDict(frozen=True)

    removed: int


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------


class TeamCreate(BaseModel):
    """Request body for POST /api/v1/teams."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    parent_id: str = Field(min_length=1, max_length=64)


class TeamPatch(BaseModel):
    """Request body for PATCH /api/v1/teams/{team_id}. parent_id moves the team."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    parent_id: Optional[str] = Field(default=None, min_length=1, max_length=64)


class TeamResponse(BaseModel):
    """A team with its depth relative to the query's starting team."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: Optional[str]
    parent_id: Optional[str]
    is_root: bool
    depth: int = 0
    children: Optional[list[TeamResponse]] = None

    @classmethod
    def from_team(cls, team: Team, depth: int = 0) -> "TeamResponse":
        """Factory Method: map a Team or HierarchyTeam (recursively) to the API shape."""
        children = None
        if isinstance(team, HierarchyTeam):
            depth = team.depth
            if team.children is not None:
                children = [cls.from_team(c) for c in team.children]
        return cls(
            id=team.id,
            name=team.name,
            description=team.description,
            parent_id=team.parent_id,
            is_root=team.is_root,
            depth=depth,
            children=children,
        )


TeamResponse.model_rebuild()


class AccessResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_team_id: str
    target_team_id: str
    allowed: bool


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
