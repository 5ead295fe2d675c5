"""Password hashing and signed-token primitives."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from roadbook_auth.core.errors import InvalidTokenSignature, TokenExpired
from roadbook_auth.schemas.auth import TokenPayload

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_token_id() -> str:
    return str(uuid.uuid4())


def normalize_email(email: str) -> str:
    return email.strip().lower()


def mask_email(email: str) -> str:
    """Log-safe form of an address: first three characters only."""
    return f"{email[:3]}***"


# ─── Password ────────────────────────────────
class PasswordHasher:
    """bcrypt hashing with a tunable cost factor.

    Used for login passwords and for password-reset secrets alike.
    """

    def __init__(self, rounds: int = 12):
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )
        self._dummy_hash: Optional[str] = None

    def hash(self, plaintext: str) -> str:
        return self._context.hash(plaintext)

    def verify(self, plaintext: str, digest: str) -> bool:
        try:
            return self._context.verify(plaintext, digest)
        except (ValueError, TypeError):
            # Unrecognised or corrupt digest
            return False

    def dummy_verify(self, plaintext: str) -> None:
        """Spend one verify's worth of time against a hash nobody owns."""
        if self._dummy_hash is None:
            self._dummy_hash = self._context.hash("this_is_a_fake_user_that_never_exists")
        self._context.verify(plaintext, self._dummy_hash)


# ─── JWT ─────────────────────────────────────
class TokenCodec:
    """Signs and verifies compact JWTs carrying a ``TokenPayload``.

    Every token gets its own ``jti``; the ``tid`` claim is shared by an
    access/refresh pair minted together and is only used for correlation.
    """

    def __init__(self, algorithm: str = "HS256"):
        self.algorithm = algorithm

    def issue(self, payload: TokenPayload, secret: str, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(payload.user_id),
            "role": payload.role,
            "email": payload.email,
            "name": payload.display_name,
            "tid": payload.token_id,
            "jti": str(uuid.uuid4()),
            "type": payload.token_type,
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(claims, secret, algorithm=self.algorithm)

    def verify(self, token: str, secret: str, expected_type: Optional[str] = None) -> TokenPayload:
        try:
            claims = jwt.decode(token, secret, algorithms=[self.algorithm])
        except ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except JWTError as exc:
            raise InvalidTokenSignature() from exc

        if expected_type is not None and claims.get("type") != expected_type:
            raise InvalidTokenSignature()
        if not claims.get("sub") or not claims.get("tid"):
            raise InvalidTokenSignature()

        return TokenPayload(
            user_id=claims["sub"],
            role=claims.get("role") or "",
            email=claims.get("email"),
            display_name=claims.get("name"),
            token_id=claims["tid"],
            token_type=claims.get("type") or "",
            expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
        )
