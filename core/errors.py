"""
core/errors.py -- Exception taxonomy for Teamgate.

Authentication failures (bad credentials, missing or expired session) are NOT
exceptions -- the core returns None/False for those so callers branch without
try/except and no error detail can leak into a user-facing message.

The classes below are the structural failures a caller is expected to tell
apart. api/main.py maps each to an HTTP status.

Layer rule: no imports from api/, auth/, or teams/.
"""


class TeamgateError(Exception):
    """Base exception for Teamgate."""

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(TeamgateError):
    """Raised when a referenced team or user does not exist."""


class DuplicateEmailError(TeamgateError):
    """Raised when registration hits the users.email unique constraint."""

    def __init__(self, email: str):
        self.email = email
        super().__init__("A user with that email already exists.")


class HashingError(TeamgateError):
    """Raised when the credential codec fails internally.

    The message is deliberately generic. The underlying cause is logged by
    auth/passwords.py and chained via __cause__, never shown to end users.
    """

    def __init__(self, message: str = "Password hashing failed"):
        super().__init__(message)


class NoRootError(TeamgateError):
    """Raised when a tree operation needs the root team and none is configured."""

    def __init__(self, message: str = "No root team found in the system"):
        super().__init__(message)


class TransportError(TeamgateError):
    """Raised when the session cookie cannot be read or written.

    SessionManager treats this exactly like "no session".
    """


class RootConflictError(TeamgateError):
    """Raised when a second team is marked is_root."""

    def __init__(self, message: str = "A root team already exists"):
        super().__init__(message)


class HierarchyCycleError(TeamgateError):
    """Raised when a re-parent would make a team its own ancestor."""
