"""
core/errors.py -- Failure taxonomy shared by the store, the auth service and the API.

Every error carries the HTTP status it maps to and a client-safe message.
The API layer turns any CredVaultError into the standard error body with a
single exception handler; nothing below the API layer knows about HTTP.

Layer rule: core/ is the kernel. No imports from api/, auth/, or kv/.
"""


class CredVaultError(Exception):
    """Base class for all expected credvault failures."""

    status_code: int = 500
    message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class AlreadyExists(CredVaultError):
    """Registration failed because the username is taken."""

    status_code = 409
    message = "Username already exists"


class InvalidCredentials(CredVaultError):
    """Login failed: unknown username OR wrong password.

    The two cases are deliberately indistinguishable -- same class, same
    message -- so callers cannot enumerate registered usernames.
    """

    status_code = 401
    message = "Invalid credentials"


class InvalidToken(InvalidCredentials):
    """A bearer token failed signature, expiry, or claim checks."""

    message = "Invalid or expired token"


class InfrastructureError(CredVaultError):
    """The key-value backend is unreachable, timed out, or returned unusable data."""

    status_code = 503
    message = "Service unavailable"
