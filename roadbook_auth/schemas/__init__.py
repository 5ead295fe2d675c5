"""Pydantic schemas."""

from roadbook_auth.schemas.auth import (
    UserCreate,
    UserLogin,
    UserResponse,
    TokenResponse,
    LoginResponse,
    TokenPayload,
    RefreshRequest,
    PasswordChange,
    PasswordResetRequest,
    PasswordResetConfirm,
    MessageResponse,
    VerifyResponse,
)

__all__ = [
    "UserCreate",
    "UserLogin",
    "UserResponse",
    "TokenResponse",
    "LoginResponse",
    "TokenPayload",
    "RefreshRequest",
    "PasswordChange",
    "PasswordResetRequest",
    "PasswordResetConfirm",
    "MessageResponse",
    "VerifyResponse",
]
