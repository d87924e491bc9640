"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Teamgate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY).

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Implements the DEBUG-conditional SECRET_KEY policy and derives
      the cookie Secure flag from DEBUG when it is not set explicitly.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. The session
       cookie signature is HMAC-SHA256 keyed by SECRET_KEY.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure. A random key would invalidate every signed
       session cookie on restart.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or teams/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("teamgate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent.parent / 'teamgate.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # "testserver" is the Host header fastapi.testclient sends.
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    # None means "derive from DEBUG": Secure in production, plain in dev.
    secure_cookies: Optional[bool] = None
    session_cookie_name: str = "app_session"
    session_duration_seconds: int = 7 * 24 * 60 * 60
    session_cleanup_interval_seconds: int = 60 * 60

    csrf_cookie_name: str = "csrf_token"
    csrf_max_age_seconds: int = 60 * 60
    csrf_protection: bool = True

    login_path: str = "/login"
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    # bcrypt cost factor. 12 is ~250ms on current hardware; tests drop it to 4.
    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Registration policy and team hierarchy
    # ------------------------------------------------------------------

    default_team_id: str = "root"
    default_role: str = "member"
    root_team_name: str = "root"
    seed_root_team: bool = True
    # 0 disables snapshot caching: every resolver call reloads the team table.
    team_cache_ttl_seconds: float = 30.0

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy [M7] and resolve the cookie Secure flag.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Session cookies will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Session cookies will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        if self.secure_cookies is None:
            self.secure_cookies = not self.debug
        if self.default_role not in ("admin", "member"):
            raise ValueError("DEFAULT_ROLE must be 'admin' or 'member'.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
