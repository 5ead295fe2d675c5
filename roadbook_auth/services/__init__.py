"""Services for business logic."""

from roadbook_auth.services.auth_service import AuthService
from roadbook_auth.services.credential_store import (
    CredentialStore,
    SQLAlchemyCredentialStore,
    StoreTransaction,
)
from roadbook_auth.services.password_reset_service import PasswordResetService

__all__ = [
    "AuthService",
    "CredentialStore",
    "SQLAlchemyCredentialStore",
    "StoreTransaction",
    "PasswordResetService",
]
