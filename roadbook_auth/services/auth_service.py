"""Authentication service: login, JWT pair issuance, refresh-token rotation.

Refresh tokens are one-time use. Redeeming one revokes it and issues a new
pair; presenting an already-revoked refresh token is treated as theft and
revokes every refresh token the user holds.
"""

import logging
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from roadbook_auth.core.config import Settings
from roadbook_auth.core.errors import (
    AccountLocked,
    EmailAlreadyRegistered,
    InsufficientRole,
    InvalidCredentials,
    InvalidToken,
    PasswordMismatch,
    SecurityBreach,
    StoreUnavailable,
    TokenExpired,
)
from roadbook_auth.core.login_attempts import InMemoryLoginAttemptTracker, LoginAttemptTracker
from roadbook_auth.core.security import (
    ACCESS_TOKEN,
    REFRESH_TOKEN,
    PasswordHasher,
    TokenCodec,
    mask_email,
    new_token_id,
    normalize_email,
    utcnow,
)
from roadbook_auth.models.user import User
from roadbook_auth.schemas.auth import LoginResponse, TokenPayload, TokenResponse, UserResponse
from roadbook_auth.services.credential_store import CredentialStore

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "APPRENTICE"
# Roles a user may pick for themselves at registration
SELF_SERVICE_ROLES = frozenset({"APPRENTICE", "GUIDE"})


class AuthService:
    """Session manager: login, rotation, revocation and access-token checks."""

    def __init__(
        self,
        store: CredentialStore,
        settings: Settings,
        hasher: Optional[PasswordHasher] = None,
        codec: Optional[TokenCodec] = None,
        tracker: Optional[LoginAttemptTracker] = None,
    ):
        self.store = store
        self.settings = settings
        self.hasher = hasher or PasswordHasher(rounds=settings.bcrypt_rounds)
        self.codec = codec or TokenCodec(algorithm=settings.jwt_algorithm)
        self.tracker = tracker or InMemoryLoginAttemptTracker(
            max_attempts=settings.max_login_attempts,
            lockout_seconds=settings.lockout_seconds,
        )

    # ─── Token Creation ──────────────────────────
    def _mint_pair(self, user: User, token_id: str) -> Tuple[TokenResponse, TokenPayload]:
        payload = TokenPayload(
            user_id=user.id,
            role=user.role,
            email=user.email,
            display_name=user.display_name,
            token_id=token_id,
            token_type=ACCESS_TOKEN,
        )
        access_token = self.codec.issue(
            payload,
            self.settings.access_token_secret,
            timedelta(minutes=self.settings.access_token_expire_minutes),
        )
        refresh_token = self.codec.issue(
            payload.model_copy(update={"token_type": REFRESH_TOKEN}),
            self.settings.refresh_token_secret,
            timedelta(days=self.settings.refresh_token_expire_days),
        )
        tokens = TokenResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="bearer",
            expires_in=self.settings.access_token_expire_seconds,
        )
        return tokens, payload

    def _refresh_expiry(self):
        return utcnow() + timedelta(days=self.settings.refresh_token_expire_days)

    # ─── Registration ───────────────────────────
    async def register(
        self,
        email: str,
        password: str,
        display_name: Optional[str] = None,
        role: Optional[str] = None,
    ) -> UserResponse:
        email = normalize_email(email)
        role = (role or DEFAULT_ROLE).upper()
        if role not in SELF_SERVICE_ROLES:
            raise InsufficientRole(f"Role {role} cannot be self-assigned")

        password_hash = self.hasher.hash(password)
        try:
            async with self.store.transaction() as tx:
                if await tx.find_user_by_email(email):
                    raise EmailAlreadyRegistered()
                user = await tx.create_user(
                    email=email,
                    password_hash=password_hash,
                    display_name=display_name,
                    role=role,
                )
        except IntegrityError as exc:
            # Lost a race with a concurrent registration of the same email
            raise EmailAlreadyRegistered() from exc

        logger.info(f"User registered: {user.id[:8]}... ({mask_email(email)})")
        return UserResponse.model_validate(user)

    # ─── Login ───────────────────────────────────
    async def login(self, email: str, password: str) -> LoginResponse:
        email = normalize_email(email)

        # Counted as a failure before any await; success clears it. Attempts
        # while locked slide the window forward.
        allowed, retry_after = self.tracker.begin_attempt(email)
        if not allowed:
            logger.warning(f"Login refused for locked account {mask_email(email)}")
            raise AccountLocked(retry_after)

        async with self.store.transaction() as tx:
            user = await tx.find_user_by_email(email)

        if user is None or not user.is_active:
            # Same bcrypt cost as a real check, so the response time does not
            # reveal whether the email exists
            self.hasher.dummy_verify(password)
            raise InvalidCredentials()

        if not self.hasher.verify(password, user.password_hash):
            raise InvalidCredentials()

        self.tracker.record_success(email)

        token_id = new_token_id()
        tokens, _ = self._mint_pair(user, token_id)

        async with self.store.transaction() as tx:
            # One refresh chain per login: the previous chain ends here.
            # Access tokens already handed out simply run out their TTL.
            previous = await tx.find_latest_active_refresh_token(user.id)
            if previous is not None and not await tx.revoke_refresh_token(previous.id):
                logger.warning(
                    f"Concurrent login for user {user.id[:8]}...: previous session "
                    f"(tid={previous.token_id[:8]}) was already revoked"
                )
            await tx.create_refresh_token(
                user_id=user.id,
                token=tokens.refresh_token,
                token_id=token_id,
                expires_at=self._refresh_expiry(),
            )
            await tx.touch_last_login(user.id)

        user.last_login = utcnow()
        logger.info(f"Login successful for user {user.id[:8]}... (tid={token_id[:8]})")

        return LoginResponse(user=UserResponse.model_validate(user), **tokens.model_dump())

    # ─── Refresh (Rotation) ──────────────────────
    async def refresh(self, refresh_token: str) -> TokenResponse:
        """Redeem a refresh token for a new pair.

        Raises:
            InvalidTokenSignature: bad signature, wrong key or wrong token type.
            TokenExpired: the JWT or its stored record is past expiry.
            InvalidToken: no record for this token, or its owner is gone.
            SecurityBreach: the token had already been redeemed or revoked.
        """
        self.codec.verify(refresh_token, self.settings.refresh_token_secret, expected_type=REFRESH_TOKEN)

        breached_user_id = None
        owner_missing = False
        tokens = None

        async with self.store.transaction() as tx:
            record = await tx.find_refresh_token(refresh_token)
            if record is None:
                raise InvalidToken()

            if record.revoked:
                breached_user_id = record.user_id
            elif record.is_expired():
                raise TokenExpired()
            elif not await tx.revoke_refresh_token(record.id):
                # A concurrent call rotated this token between our read and our write
                breached_user_id = record.user_id
            else:
                user = await tx.find_user_by_id(record.user_id)
                if user is None or not user.is_active:
                    owner_missing = True
                    await tx.revoke_refresh_tokens(user_id=record.user_id)
                else:
                    token_id = new_token_id()
                    tokens, _ = self._mint_pair(user, token_id)
                    await tx.create_refresh_token(
                        user_id=user.id,
                        token=tokens.refresh_token,
                        token_id=token_id,
                        expires_at=self._refresh_expiry(),
                    )

            if breached_user_id is not None:
                revoked = await tx.revoke_refresh_tokens(user_id=breached_user_id)

        # Raised only after the revocations above are committed
        if breached_user_id is not None:
            logger.warning(
                f"SECURITY: refresh token reuse detected for user {breached_user_id} "
                f"(tid={record.token_id[:8]}); revoked {revoked} active session(s)"
            )
            raise SecurityBreach(user_id=breached_user_id)
        if owner_missing:
            raise InvalidToken()

        logger.debug(f"Refresh token rotated for user {record.user_id[:8]}...")
        return tokens

    # ─── Logout ──────────────────────────────────
    async def revoke(self, *, user_id: Optional[str] = None, refresh_token: Optional[str] = None) -> None:
        """Revoke one refresh token or every token of a user.

        Always appears to succeed: unknown or already-revoked tokens and store
        failures are logged, never raised.
        """
        if user_id is None and not refresh_token:
            return

        try:
            async with self.store.transaction() as tx:
                count = await tx.revoke_refresh_tokens(user_id=user_id, token=refresh_token or None)
        except (StoreUnavailable, SQLAlchemyError) as exc:
            logger.error(f"Revocation failed ({type(exc).__name__}); reporting success to caller")
            return

        if user_id is not None:
            logger.info(f"Revoked {count} session(s) for user {user_id[:8]}...")
        else:
            logger.info(f"Revoked {count} session(s) by token")

    # ─── Access Token Check ──────────────────────
    def verify_access(self, access_token: str) -> TokenPayload:
        """Signature and expiry only. Access tokens are not individually revocable."""
        return self.codec.verify(access_token, self.settings.access_token_secret, expected_type=ACCESS_TOKEN)

    # ─── Change Password ────────────────────────
    async def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        async with self.store.transaction() as tx:
            user = await tx.find_user_by_id(user_id)

        if user is None or not self.hasher.verify(current_password, user.password_hash):
            raise PasswordMismatch()

        password_hash = self.hasher.hash(new_password)
        async with self.store.transaction() as tx:
            await tx.update_user_password(user_id, password_hash)
            revoked = await tx.revoke_refresh_tokens(user_id=user_id)

        logger.info(f"Password changed for user {user_id[:8]}...; revoked {revoked} session(s)")
