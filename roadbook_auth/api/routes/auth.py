"""Authentication endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Cookie, Request, Response, status

from roadbook_auth.api.dependencies import (
    AdminUser,
    AuthServiceDep,
    CurrentUser,
    PasswordResetServiceDep,
    ResetNotifierDep,
)
from roadbook_auth.core.errors import NotAuthenticated
from roadbook_auth.schemas.auth import (
    LoginResponse,
    MessageResponse,
    PasswordChange,
    PasswordResetConfirm,
    PasswordResetRequest,
    RefreshRequest,
    TokenResponse,
    UserCreate,
    UserLogin,
    VerifyResponse,
)
from roadbook_auth.services.notifier import build_reset_link

logger = logging.getLogger(__name__)
router = APIRouter()

REFRESH_COOKIE = "refreshToken"


def set_refresh_cookie(request: Request, response: Response, refresh_token: str) -> None:
    settings = request.app.state.settings
    response.set_cookie(
        REFRESH_COOKIE,
        refresh_token,
        httponly=True,
        secure=settings.refresh_cookie_secure,
        samesite="lax",
        max_age=settings.refresh_token_expire_seconds,
    )


def presented_refresh_token(body: Optional[RefreshRequest], cookie: Optional[str]) -> Optional[str]:
    """Body wins over cookie."""
    if body is not None and body.refresh_token:
        return body.refresh_token
    return cookie


# ─────────────────────────────────────────────
# Register
# ─────────────────────────────────────────────

@router.post("/register", response_model=LoginResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, request: Request, response: Response, auth_service: AuthServiceDep):
    """
    Register a new user.
    Returns the user with access and refresh tokens.
    """
    await auth_service.register(
        email=user_data.email,
        password=user_data.password,
        display_name=user_data.display_name,
        role=user_data.role,
    )
    result = await auth_service.login(user_data.email, user_data.password)
    set_refresh_cookie(request, response, result.refresh_token)
    return result


# ─────────────────────────────────────────────
# Login
# ─────────────────────────────────────────────

@router.post("/login", response_model=LoginResponse)
async def login(credentials: UserLogin, request: Request, response: Response, auth_service: AuthServiceDep):
    """
    Authenticate a user.
    Returns access and refresh tokens.
    """
    result = await auth_service.login(credentials.email, credentials.password)
    set_refresh_cookie(request, response, result.refresh_token)
    response.headers["Authorization"] = f"Bearer {result.access_token}"
    return result


# ─────────────────────────────────────────────
# Refresh Token (Rotation)
# ─────────────────────────────────────────────

@router.post("/refresh-token", response_model=TokenResponse)
async def refresh_token(
    request: Request,
    response: Response,
    auth_service: AuthServiceDep,
    body: Optional[RefreshRequest] = None,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
):
    """
    Rotate refresh token and get a new access token + refresh token.
    The presented refresh token is dead afterwards.
    """
    token = presented_refresh_token(body, refresh_cookie)
    if not token:
        raise NotAuthenticated("Refresh token is required")

    tokens = await auth_service.refresh(token)
    set_refresh_cookie(request, response, tokens.refresh_token)
    response.headers["Authorization"] = f"Bearer {tokens.access_token}"
    return tokens


# ─────────────────────────────────────────────
# Logout
# ─────────────────────────────────────────────

@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    auth_service: AuthServiceDep,
    body: Optional[RefreshRequest] = None,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_COOKIE),
):
    """Revoke the presented refresh token. Always succeeds."""
    token = presented_refresh_token(body, refresh_cookie)
    if token:
        await auth_service.revoke(refresh_token=token)
    response.delete_cookie(REFRESH_COOKIE)
    return MessageResponse(message="Logout successful")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(response: Response, current_user: CurrentUser, auth_service: AuthServiceDep):
    """Revoke every refresh token of the current user."""
    await auth_service.revoke(user_id=current_user.user_id)
    response.delete_cookie(REFRESH_COOKIE)
    return MessageResponse(message="All sessions revoked")


@router.post("/users/{user_id}/revoke-sessions", response_model=MessageResponse)
async def revoke_user_sessions(user_id: str, admin: AdminUser, auth_service: AuthServiceDep):
    """Admin only: force a user to log in again everywhere."""
    await auth_service.revoke(user_id=user_id)
    logger.info(f"Admin {admin.user_id[:8]}... revoked sessions of user {user_id[:8]}...")
    return MessageResponse(message="Sessions revoked")


# ─────────────────────────────────────────────
# Verify
# ─────────────────────────────────────────────

@router.get("/verify", response_model=VerifyResponse)
async def verify_token(current_user: CurrentUser):
    """Report the decoded payload of a valid access token."""
    return VerifyResponse(valid=True, user=current_user)


# ─────────────────────────────────────────────
# Change Password
# ─────────────────────────────────────────────

@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    password_data: PasswordChange,
    current_user: CurrentUser,
    auth_service: AuthServiceDep,
):
    """
    Change the user's password.
    Requires current password; every session is revoked afterwards.
    """
    await auth_service.change_password(
        current_user.user_id,
        password_data.current_password,
        password_data.new_password,
    )
    return MessageResponse(message="Password changed successfully")


# ─────────────────────────────────────────────
# Forgot Password - Step 1: Request link
# ─────────────────────────────────────────────

@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    password_reset: PasswordResetRequest,
    request: Request,
    reset_service: PasswordResetServiceDep,
    notifier: ResetNotifierDep,
):
    """
    Request a password reset link.

    Always returns the same message to prevent user enumeration.
    """
    token = await reset_service.initiate_reset(password_reset.email)

    if token:
        link = build_reset_link(request.app.state.settings.password_reset_url, token)
        try:
            await notifier.send_reset_link(password_reset.email, link)
        except Exception as e:
            # Log error but don't expose to user
            logger.error(f"Failed to deliver password reset link: {type(e).__name__}")

    return MessageResponse(
        message="If an account with this email exists, a reset link has been sent."
    )


# ─────────────────────────────────────────────
# Forgot Password - Step 2: Reset Password
# ─────────────────────────────────────────────

@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(data: PasswordResetConfirm, reset_service: PasswordResetServiceDep):
    """
    Reset the password using the token from the reset link.
    Invalidates ALL existing sessions.
    """
    await reset_service.complete_reset(data.token, data.new_password)
    return MessageResponse(message="Password reset successfully")
