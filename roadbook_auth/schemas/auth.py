"""Auth schemas for API validation and service results."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class UserCreate(BaseModel):
    """Schema for user registration."""
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)
    display_name: str = Field(min_length=2, max_length=255)
    role: Optional[str] = Field(None, max_length=50)


class UserLogin(BaseModel):
    """Schema for user login."""
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    """Public view of a user. Never carries the password hash."""
    id: str
    email: str
    display_name: Optional[str] = None
    role: str
    is_active: bool
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    """Schema for JWT token response."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class LoginResponse(TokenResponse):
    user: UserResponse


class TokenPayload(BaseModel):
    """Claims carried by an access or refresh token."""
    user_id: str
    role: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    token_id: str
    token_type: str = "access"
    expires_at: Optional[datetime] = None


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class PasswordChange(BaseModel):
    """Schema for password change."""
    current_password: str
    new_password: str = Field(min_length=8, max_length=72)


class PasswordResetRequest(BaseModel):
    """Schema for password reset request (step 1: ask for a link)."""
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    """Schema for password reset confirmation (step 2: set new password)."""
    token: str = Field(min_length=16)
    new_password: str = Field(min_length=8, max_length=72)


class MessageResponse(BaseModel):
    """Simple message response."""
    message: str


class VerifyResponse(BaseModel):
    valid: bool
    user: TokenPayload
