"""Database models."""

from roadbook_auth.models.user import User
from roadbook_auth.models.refresh_token import RefreshToken
from roadbook_auth.models.password_reset import PasswordResetToken

__all__ = [
    "User",
    "RefreshToken",
    "PasswordResetToken",
]
