"""
core/ids.py -- Prefixed random identifiers ("user_...", "team_...", "sess_...").

The prefix makes ids self-describing in logs. The random part comes from the
secrets CSPRNG over an alphabet without punctuation so ids are safe in URLs
and cookie values without escaping.
"""

import secrets
import string

_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase


def create_id(prefix: str, size: int = 12) -> str:
    """Return "<prefix>_<size random alphanumerics>"."""
    return f"{prefix}_{''.join(secrets.choice(_ALPHABET) for _ in range(size))}"
