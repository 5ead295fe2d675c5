"""FastAPI dependencies: service lookup, bearer authentication, role checks."""

from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from roadbook_auth.core.errors import AuthError, InsufficientRole, NotAuthenticated
from roadbook_auth.schemas.auth import TokenPayload
from roadbook_auth.services.auth_service import AuthService
from roadbook_auth.services.notifier import ResetNotifier
from roadbook_auth.services.password_reset_service import PasswordResetService

bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_password_reset_service(request: Request) -> PasswordResetService:
    return request.app.state.password_reset_service


def get_reset_notifier(request: Request) -> ResetNotifier:
    return request.app.state.reset_notifier


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
PasswordResetServiceDep = Annotated[PasswordResetService, Depends(get_password_reset_service)]
ResetNotifierDep = Annotated[ResetNotifier, Depends(get_reset_notifier)]


async def get_current_user(
    auth_service: AuthServiceDep,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> TokenPayload:
    """Require a valid access token; the payload becomes the request's user."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise NotAuthenticated()
    return auth_service.verify_access(credentials.credentials)


async def get_optional_user(
    auth_service: AuthServiceDep,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[TokenPayload]:
    """Authenticate when a token is present; otherwise continue anonymously."""
    if credentials is None:
        return None
    try:
        return auth_service.verify_access(credentials.credentials)
    except AuthError:
        return None


CurrentUser = Annotated[TokenPayload, Depends(get_current_user)]
OptionalUser = Annotated[Optional[TokenPayload], Depends(get_optional_user)]


def require_roles(*roles: str):
    """Dependency factory: the current user must hold one of ``roles``."""
    allowed = {role.upper() for role in roles}

    async def check_role(current_user: CurrentUser) -> TokenPayload:
        if current_user.role.upper() not in allowed:
            raise InsufficientRole(detail={"required_roles": sorted(allowed)})
        return current_user

    return check_role


require_admin = require_roles("ADMIN")
AdminUser = Annotated[TokenPayload, Depends(require_admin)]
