"""Typed errors raised by the credential and session services.

Each error carries the HTTP status and a stable ``error_code`` so the API layer
can render it without inspecting messages. Messages are generic:
they never say whether an email exists or why a token was refused beyond the
error kind.
"""

import math
from typing import Optional


class AuthError(Exception):
    """Base class for auth-layer exceptions mapped to HTTP responses."""

    status_code: int = 400
    error_code: str = "auth_error"
    default_message: str = "Authentication error"

    def __init__(self, message: Optional[str] = None, *, detail: Optional[dict] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        self.detail = detail or {}


class InvalidCredentials(AuthError):
    """Wrong email or password. Never says which."""
    status_code = 401
    error_code = "invalid_credentials"
    default_message = "Invalid email or password"


class AccountLocked(AuthError):
    """Too many failed logins for this identifier."""
    status_code = 429
    error_code = "account_locked"
    default_message = "Too many failed login attempts"

    def __init__(self, retry_after: int, message: Optional[str] = None) -> None:
        self.retry_after = max(int(retry_after), 1)
        self.retry_after_minutes = max(math.ceil(self.retry_after / 60), 1)
        super().__init__(
            message or f"Too many failed login attempts. Try again in {self.retry_after_minutes} minute(s).",
            detail={"retry_after": self.retry_after},
        )


class TokenExpired(AuthError):
    status_code = 401
    error_code = "token_expired"
    default_message = "Token expired"


class InvalidToken(AuthError):
    status_code = 401
    error_code = "invalid_token"
    default_message = "Invalid token"


class InvalidTokenSignature(InvalidToken):
    """Malformed, tampered with, signed with the wrong key, or of the wrong type."""
    error_code = "invalid_token_signature"
    default_message = "Invalid token signature"


class SecurityBreach(AuthError):
    """A refresh token was presented after it had already been revoked."""
    status_code = 401
    error_code = "security_breach"
    default_message = "Refresh token reuse detected; all sessions have been revoked"

    def __init__(self, user_id: Optional[str] = None, message: Optional[str] = None) -> None:
        self.user_id = user_id
        super().__init__(message)


class InvalidResetToken(AuthError):
    status_code = 400
    error_code = "invalid_reset_token"
    default_message = "Invalid or expired reset token"


class EmailAlreadyRegistered(AuthError):
    status_code = 409
    error_code = "conflict"
    default_message = "Email already registered"


class PasswordMismatch(AuthError):
    status_code = 400
    error_code = "password_mismatch"
    default_message = "Current password is incorrect"


class NotAuthenticated(AuthError):
    status_code = 401
    error_code = "unauthorized"
    default_message = "Unauthorized - token missing"


class InsufficientRole(AuthError):
    status_code = 403
    error_code = "forbidden"
    default_message = "Forbidden - insufficient privileges"


class StoreUnavailable(AuthError):
    """The credential store timed out or refused the operation.

    ``retryable`` is False once the failing transaction had written anything,
    in which case the caller must fail closed.
    """
    status_code = 503
    error_code = "store_unavailable"
    default_message = "Credential store unavailable"

    def __init__(self, message: Optional[str] = None, *, retryable: bool = True) -> None:
        self.retryable = retryable
        super().__init__(message, detail={"retryable": retryable})
