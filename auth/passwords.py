"""
auth/passwords.py -- Password hashing, verification, and random padding passwords.

Security design decisions:
  Hashing: bcrypt used directly (no passlib wrapper). Its cost factor makes
       offline brute force expensive; the cost is fixed process-wide by
       Settings.bcrypt_rounds and a fresh salt is drawn on every call, so two
       hashes of the same password never match byte-for-byte.

  Verification: bcrypt.checkpw compares in constant time. verify_password()
       FAILS CLOSED -- a malformed digest or an engine error returns False,
       exactly like a wrong password. The difference is only visible in the
       log (WARNING on teamgate.auth), never in the return value.

  Failure reporting: hash_password() converts any engine failure into
       HashingError with a generic message. The original exception is logged
       and chained, so callers cannot accidentally echo whether the input was
       at fault.

  Padding passwords: generate_random_password() draws from the secrets CSPRNG.
       Its only consumer is AuthService.log_in(), which hashes one on the
       unknown-email path to burn the same CPU time as a real verification [C1].

Layer rule: no imports from api/ or teams/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import secrets

import bcrypt

from core.config import get_settings
from core.errors import HashingError

logger = logging.getLogger("teamgate.auth")

_settings = get_settings()

_PASSWORD_CHARSET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789!@#$%^&*()-_=+"

# bcrypt only reads the first 72 bytes of its input. The API layer rejects
# longer passwords before they reach this module.
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    """Return a salted bcrypt hash of password.

    Raises HashingError on any internal failure.
    """
    try:
        salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")
    except Exception as exc:
        logger.error("Password hashing failed: %s", type(exc).__name__)
        raise HashingError() from exc


def verify_password(password: str, password_hash: str) -> bool:
    """Return True if password matches password_hash. Never raises."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except Exception as exc:
        logger.warning("Password verification error treated as mismatch: %s", type(exc).__name__)
        return False


def generate_random_password(length: int = 12) -> str:
    """Return a CSPRNG password of `length` characters from a fixed charset."""
    if length < 1:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(_PASSWORD_CHARSET) for _ in range(length))
