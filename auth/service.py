"""
auth/service.py -- Login and registration.

AuthService composes the credential codec (auth/passwords.py) with the session
lifecycle (auth/sessions.py).

Timing equalization [C1]:
  log_in() always performs one bcrypt operation before it returns:
    - unknown email: hash a freshly generated random password, discard it
    - known email:   verify against the stored hash
  Both paths cost one bcrypt call at the same work factor, so response time
  does not reveal whether the email is registered. The return value doesn't
  either -- every failure is None.

Layer rule: no imports from api/ or teams/.
"""

from __future__ import annotations

import logging
from typing import Optional

from auth.models import Session, User
from auth.passwords import generate_random_password, hash_password, verify_password
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import Settings, get_settings

logger = logging.getLogger("teamgate.auth")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    def __init__(self, store: UserStore, sessions: SessionManager, settings: Settings | None = None) -> None:
        self.store = store
        self.sessions = sessions
        self.settings = settings or get_settings()

    def log_in(
        self,
        email: str,
        password: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Optional[Session]:
        """Authenticate email/password and open a session. Returns None on any failure."""
        user = self.store.get_by_email(normalize_email(email))
        if user is None:
            # Equalize timing -- do NOT return before doing the hashing work [C1]
            hash_password(generate_random_password())
            logger.info("Login failed")
            return None

        if not verify_password(password, user.password_hash):
            logger.info("Login failed")
            return None
        if not user.active:
            logger.info("Login refused for disabled user %s", user.id)
            return None

        self.store.update_last_login(user.id)
        return self.sessions.create(user.id, user_agent=user_agent, ip_address=ip_address)

    def create_user(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        team_id: Optional[str] = None,
        role: Optional[str] = None,
    ) -> str:
        """Register a user and return the new id.

        team_id and role fall back to DEFAULT_TEAM_ID / DEFAULT_ROLE.
        Raises DuplicateEmailError, NotFoundError (unknown team) or HashingError.
        """
        user = User(
            email=normalize_email(email),
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            team_id=team_id or self.settings.default_team_id,
            role=role or self.settings.default_role,
        )
        user_id = self.store.create_user(user)
        logger.info("User %s created in team %s", user_id, user.team_id)
        return user_id
