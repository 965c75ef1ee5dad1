"""
Exception hierarchy for gup.

Every authentication failure is resolved to one of the AuthError subclasses
before it reaches the CLI layer, which prints the message and exits non-zero.
RefreshFailedError and CorruptRecordError are normally recovered inside
Session by falling back to a fresh interactive authorization.

    GupError
     ├─ AuthError
     │   ├─ PortInUseError
     │   ├─ AuthorizationFailedError
     │   │   ├─ MissingCodeError
     │   │   │   └─ AuthorizationDeniedError
     │   │   ├─ ExchangeFailedError
     │   │   └─ AuthorizationTimeoutError
     │   ├─ RefreshFailedError
     │   ├─ CorruptRecordError
     │   └─ NotAuthenticatedError
     ├─ ConfigError
     └─ DriveError
"""
from __future__ import annotations


class GupError(Exception):
    """Base class for all gup errors."""


# ── Authentication ────────────────────────────────────────────────────────────

class AuthError(GupError):
    """Base class for authentication-layer failures."""


class PortInUseError(AuthError):
    """The loopback callback port could not be bound."""

    def __init__(self, port: int, reason: str = "") -> None:
        self.port = port
        msg = f"Cannot listen on localhost:{port} for the OAuth callback"
        if reason:
            msg += f" ({reason})"
        msg += ". Is another 'gup auth' still running?"
        super().__init__(msg)


class AuthorizationFailedError(AuthError):
    """The interactive authorization attempt did not produce a token."""


class MissingCodeError(AuthorizationFailedError):
    """The OAuth callback arrived without an authorization code."""


class AuthorizationDeniedError(MissingCodeError):
    """The user (or Google) declined the consent request."""

    def __init__(self, error: str) -> None:
        self.error = error
        super().__init__(f"Authorization denied: {error}")


class ExchangeFailedError(AuthorizationFailedError):
    """The token endpoint rejected the authorization code."""


class AuthorizationTimeoutError(AuthorizationFailedError):
    """No callback arrived before the caller's deadline."""


class RefreshFailedError(AuthError):
    """The stored refresh token is missing or was rejected."""

    # Set when the token endpoint could not be reached at all, as opposed to
    # answering with a rejection.
    transient = False


class CorruptRecordError(AuthError):
    """The on-disk credential record could not be parsed."""


class NotAuthenticatedError(AuthError):
    """No usable credential is available for an API call."""

    def __init__(self, msg: str = "Not authenticated. Run 'gup auth' first.") -> None:
        super().__init__(msg)


# ── Configuration ─────────────────────────────────────────────────────────────

class ConfigError(GupError):
    """Configuration is missing or invalid."""


# ── Drive ─────────────────────────────────────────────────────────────────────

class DriveError(GupError):
    """A Drive operation could not be completed."""


class FileNotFoundOnDriveError(DriveError):
    """The given Drive file ID does not exist or is not visible."""

    def __init__(self, file_id: str) -> None:
        self.file_id = file_id
        super().__init__(f'File with ID "{file_id}" not found')
