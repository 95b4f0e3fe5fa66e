"""Closed set of authentication/authorization failures.

Every failure the auth subsystem reports to callers is one of the ``AuthError``
subclasses below. Token-level failures (``TokenInvalid``/``TokenExpired``) stay
inside the subsystem and surface as ``Unauthenticated``.
"""

from __future__ import annotations

from drone_analytics.core.security import TokenError, TokenExpired, TokenInvalid

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


class AuthError(Exception):
    """Base class for auth failures returned to the routing layer."""

    default_message = "Authentication error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    """Input failed schema constraints; the caller must correct and retry."""

    default_message = "Invalid input"

    def __init__(self, message: str | None = None, *, field: str = "") -> None:
        super().__init__(message)
        self.field = field


class Conflict(AuthError):
    """Username or email is already taken."""

    default_message = "Username or email already exists"


class InvalidCredentials(AuthError):
    """Wrong email, wrong password or inactive account, deliberately merged."""

    default_message = INVALID_CREDENTIALS_MESSAGE


class Unauthenticated(AuthError):
    """Missing, invalid or expired token."""

    default_message = "Authentication required"

    # Machine-readable cause: missing_token, token_invalid, token_expired,
    # token_revoked or account_inactive.
    def __init__(self, message: str | None = None, *, reason: str = "token_invalid") -> None:
        super().__init__(message)
        self.reason = reason


class Forbidden(AuthError):
    """Authenticated identity lacks the required role."""

    default_message = "Insufficient permissions"


class RateLimited(AuthError):
    """Too many attempts from the same client within the current window."""

    default_message = "Too many requests"

    def __init__(self, message: str | None = None, *, retry_after: int = 0) -> None:
        super().__init__(message)
        self.retry_after = max(0, int(retry_after))


class NotFound(AuthError):
    """Requested user does not exist."""

    default_message = "User not found"


class DuplicateUserError(Exception):
    """Raised by credential stores when a unique constraint rejects a write."""


__all__ = [
    "AuthError",
    "Conflict",
    "DuplicateUserError",
    "Forbidden",
    "INVALID_CREDENTIALS_MESSAGE",
    "InvalidCredentials",
    "NotFound",
    "RateLimited",
    "TokenError",
    "TokenExpired",
    "TokenInvalid",
    "Unauthenticated",
    "ValidationError",
]
