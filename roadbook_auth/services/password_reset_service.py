"""
Password Reset Service.

Security features:
- Cryptographically secure reset secrets (``secrets.token_urlsafe``)
- Secrets stored as bcrypt hashes (never plain text, never logged)
- Time-limited expiration (default 1 hour)
- Single-use enforcement, and only the newest link for a user works
- Unknown emails look exactly like known ones to the caller
- Every session of the user is revoked once the password is reset

Stored secrets are hashed, so they cannot be used as an index: redemption
scans every live reset record. That is fine at low reset volume; splitting
the token into a cleartext lookup id plus a hashed secret would make it O(1).
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

from roadbook_auth.core.config import Settings
from roadbook_auth.core.errors import InvalidResetToken
from roadbook_auth.core.security import PasswordHasher, mask_email, normalize_email, utcnow
from roadbook_auth.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)

RESET_SECRET_BYTES = 32


class PasswordResetService:
    """Issuance and single-use redemption of password reset secrets."""

    def __init__(
        self,
        store: CredentialStore,
        settings: Settings,
        hasher: Optional[PasswordHasher] = None,
    ):
        self.store = store
        self.settings = settings
        self.hasher = hasher or PasswordHasher(rounds=settings.bcrypt_rounds)

    @staticmethod
    def generate_secret() -> str:
        """URL-safe secret for the reset link."""
        return secrets.token_urlsafe(RESET_SECRET_BYTES)

    # ─────────────────────────────────────────────────────────────
    # Request Password Reset (Step 1)
    # ─────────────────────────────────────────────────────────────

    async def initiate_reset(self, email: str) -> Optional[str]:
        """
        Create a reset secret for ``email``.

        Returns:
            The plaintext secret, for out-of-band delivery. ``None`` when the
            email is unknown; callers must answer both cases identically.
        """
        email = normalize_email(email)

        async with self.store.transaction() as tx:
            user = await tx.find_user_by_email(email)

        secret = self.generate_secret()
        hashed_secret = self.hasher.hash(secret)

        if user is None or not user.is_active:
            # The hash above keeps the unknown path about as slow as the real one
            logger.info(f"Password reset requested for unknown email {mask_email(email)}")
            return None

        async with self.store.transaction() as tx:
            superseded = await tx.revoke_reset_tokens(user.id)
            await tx.create_reset_token(
                user_id=user.id,
                hashed_secret=hashed_secret,
                expires_at=utcnow() + timedelta(minutes=self.settings.reset_token_expire_minutes),
            )

        logger.info(
            f"Password reset token created for user {user.id[:8]}... "
            f"({superseded} older request(s) revoked)"
        )
        # WARNING: Do NOT log the plain secret
        return secret

    # ─────────────────────────────────────────────────────────────
    # Reset Password (Step 2)
    # ─────────────────────────────────────────────────────────────

    async def complete_reset(self, token: str, new_password: str) -> None:
        """
        Redeem ``token`` and set ``new_password``.

        Raises:
            InvalidResetToken: no live reset record matches, or it was redeemed
                concurrently.
        """
        async with self.store.transaction() as tx:
            candidates = await tx.find_live_reset_tokens()

        match = None
        for candidate in candidates:
            if self.hasher.verify(token, candidate.hashed_secret):
                match = candidate
                break

        if match is None:
            raise InvalidResetToken()

        password_hash = self.hasher.hash(new_password)

        async with self.store.transaction() as tx:
            if not await tx.revoke_reset_token(match.id):
                # Redeemed, or superseded by a newer request, since the scan
                raise InvalidResetToken()
            await tx.update_user_password(match.user_id, password_hash)
            sessions = await tx.revoke_refresh_tokens(user_id=match.user_id)
            await tx.revoke_reset_tokens(match.user_id)

        logger.info(
            f"Password reset completed for user {match.user_id[:8]}..., "
            f"{sessions} session(s) invalidated"
        )

    # ─────────────────────────────────────────────────────────────
    # Maintenance
    # ─────────────────────────────────────────────────────────────

    async def cleanup_expired(self) -> int:
        """Delete expired reset records. Call periodically."""
        async with self.store.transaction() as tx:
            count = await tx.delete_expired_reset_tokens()
        if count > 0:
            logger.info(f"Cleaned up {count} expired password reset tokens")
        return count
