"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these only describe shape.

Layer rule: no imports from api/ or teams/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class User:
    """An identity record.

    password_hash is never copied into a SessionUser and never leaves the
    service layer. active=False soft-disables the account: the row stays,
    but log_in() and SessionManager.get() both refuse it.
    """

    email: str
    password_hash: str
    first_name: str
    last_name: str
    team_id: str
    role: str = "member"  # "admin" | "member"
    id: str | None = None
    active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_login_at: datetime | None = None


@dataclass
class SessionUser:
    """The user projection embedded in a resolved session. No credentials."""

    id: str
    email: str
    first_name: str
    last_name: str
    role: str
    team_id: str


@dataclass
class Session:
    """A time-bounded grant of an identity to a client.

    user is populated only by SessionManager.get() (session joined to user).
    """

    id: str
    user_id: str
    expires_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)
    user: SessionUser | None = None
    user_agent: str | None = None
    ip_address: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
