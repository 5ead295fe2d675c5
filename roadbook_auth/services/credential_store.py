"""
Credential store adapter.

The auth services talk to storage only through ``CredentialStore``: they open
a transaction, call the read/write methods on it, and the transaction commits
when the block exits without error. ``SQLAlchemyCredentialStore`` is the
relational implementation.

Every statement runs under a bounded timeout. Timeouts and connection-level
driver errors surface as ``StoreUnavailable``; ``retryable`` is False once the
transaction had already issued a write.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncContextManager, AsyncIterator, List, Optional, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roadbook_auth.core.errors import StoreUnavailable
from roadbook_auth.core.security import utcnow
from roadbook_auth.models.password_reset import PasswordResetToken
from roadbook_auth.models.refresh_token import RefreshToken
from roadbook_auth.models.user import User

logger = logging.getLogger(__name__)


class StoreTransaction(Protocol):
    # ─── Users ───
    async def find_user_by_email(self, email: str) -> Optional[User]: ...

    async def find_user_by_id(self, user_id: str) -> Optional[User]: ...

    async def create_user(
        self,
        email: str,
        password_hash: str,
        display_name: Optional[str] = None,
        role: str = "APPRENTICE",
    ) -> User: ...

    async def update_user_password(self, user_id: str, password_hash: str) -> None: ...

    async def touch_last_login(self, user_id: str) -> None: ...

    # ─── Refresh tokens ───
    async def find_refresh_token(self, token: str) -> Optional[RefreshToken]: ...

    async def find_latest_active_refresh_token(self, user_id: str) -> Optional[RefreshToken]: ...

    async def create_refresh_token(
        self, user_id: str, token: str, token_id: str, expires_at: datetime
    ) -> RefreshToken: ...

    async def revoke_refresh_token(self, record_id: str) -> bool: ...

    async def revoke_refresh_tokens(
        self, *, user_id: Optional[str] = None, token: Optional[str] = None
    ) -> int: ...

    # ─── Password reset tokens ───
    async def find_live_reset_tokens(self) -> List[PasswordResetToken]: ...

    async def create_reset_token(
        self, user_id: str, hashed_secret: str, expires_at: datetime
    ) -> PasswordResetToken: ...

    async def revoke_reset_token(self, record_id: str) -> bool: ...

    async def revoke_reset_tokens(self, user_id: str) -> int: ...

    async def delete_expired_reset_tokens(self) -> int: ...


class CredentialStore(Protocol):
    def transaction(self) -> AsyncContextManager[StoreTransaction]: ...


class SQLAlchemyTransaction:
    """``StoreTransaction`` bound to one ``AsyncSession``."""

    def __init__(self, db: AsyncSession, timeout: float):
        self._db = db
        self._timeout = timeout
        self.has_written = False

    async def _execute(self, stmt, *, write: bool = False):
        if write:
            self.has_written = True
        return await asyncio.wait_for(self._db.execute(stmt), self._timeout)

    async def _add(self, obj):
        self.has_written = True
        self._db.add(obj)
        await asyncio.wait_for(self._db.flush(), self._timeout)
        return obj

    async def commit(self) -> None:
        await asyncio.wait_for(self._db.commit(), self._timeout)

    # ─── Users ───────────────────────────────────
    async def find_user_by_email(self, email: str) -> Optional[User]:
        result = await self._execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def find_user_by_id(self, user_id: str) -> Optional[User]:
        result = await self._execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def create_user(
        self,
        email: str,
        password_hash: str,
        display_name: Optional[str] = None,
        role: str = "APPRENTICE",
    ) -> User:
        return await self._add(
            User(
                email=email,
                password_hash=password_hash,
                display_name=display_name,
                role=role,
                is_active=True,
                last_login=None,
            )
        )

    async def update_user_password(self, user_id: str, password_hash: str) -> None:
        await self._execute(
            update(User)
            .where(User.id == user_id)
            .values(password_hash=password_hash, updated_at=utcnow()),
            write=True,
        )

    async def touch_last_login(self, user_id: str) -> None:
        await self._execute(
            update(User).where(User.id == user_id).values(last_login=utcnow()),
            write=True,
        )

    # ─── Refresh tokens ──────────────────────────
    async def find_refresh_token(self, token: str) -> Optional[RefreshToken]:
        result = await self._execute(select(RefreshToken).where(RefreshToken.token == token))
        return result.scalar_one_or_none()

    async def find_latest_active_refresh_token(self, user_id: str) -> Optional[RefreshToken]:
        result = await self._execute(
            select(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked == False)
            .order_by(RefreshToken.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create_refresh_token(
        self, user_id: str, token: str, token_id: str, expires_at: datetime
    ) -> RefreshToken:
        return await self._add(
            RefreshToken(
                user_id=user_id,
                token=token,
                token_id=token_id,
                expires_at=expires_at,
                revoked=False,
            )
        )

    async def revoke_refresh_token(self, record_id: str) -> bool:
        """Compare-and-set ``revoked`` False -> True. True only for the caller that flipped it."""
        result = await self._execute(
            update(RefreshToken)
            .where(RefreshToken.id == record_id, RefreshToken.revoked == False)
            .values(revoked=True, revoked_at=utcnow())
            .execution_options(synchronize_session=False),
            write=True,
        )
        return result.rowcount == 1

    async def revoke_refresh_tokens(
        self, *, user_id: Optional[str] = None, token: Optional[str] = None
    ) -> int:
        if user_id is None and token is None:
            raise ValueError("revoke_refresh_tokens needs user_id or token")

        stmt = update(RefreshToken).where(RefreshToken.revoked == False)
        if user_id is not None:
            stmt = stmt.where(RefreshToken.user_id == user_id)
        if token is not None:
            stmt = stmt.where(RefreshToken.token == token)
        result = await self._execute(
            stmt.values(revoked=True, revoked_at=utcnow()).execution_options(synchronize_session=False),
            write=True,
        )
        return result.rowcount

    # ─── Password reset tokens ───────────────────
    async def find_live_reset_tokens(self) -> List[PasswordResetToken]:
        result = await self._execute(
            select(PasswordResetToken)
            .where(
                PasswordResetToken.revoked == False,
                PasswordResetToken.expires_at > utcnow(),
            )
            .order_by(PasswordResetToken.created_at.desc())
        )
        return list(result.scalars().all())

    async def create_reset_token(
        self, user_id: str, hashed_secret: str, expires_at: datetime
    ) -> PasswordResetToken:
        return await self._add(
            PasswordResetToken(
                user_id=user_id,
                hashed_secret=hashed_secret,
                expires_at=expires_at,
                revoked=False,
            )
        )

    async def revoke_reset_token(self, record_id: str) -> bool:
        """Compare-and-set on a single reset record; False if it was already revoked."""
        result = await self._execute(
            update(PasswordResetToken)
            .where(PasswordResetToken.id == record_id, PasswordResetToken.revoked == False)
            .values(revoked=True)
            .execution_options(synchronize_session=False),
            write=True,
        )
        return result.rowcount == 1

    async def revoke_reset_tokens(self, user_id: str) -> int:
        result = await self._execute(
            update(PasswordResetToken)
            .where(
                PasswordResetToken.user_id == user_id,
                PasswordResetToken.revoked == False,
            )
            .values(revoked=True)
            .execution_options(synchronize_session=False),
            write=True,
        )
        return result.rowcount

    async def delete_expired_reset_tokens(self) -> int:
        result = await self._execute(
            delete(PasswordResetToken)
            .where(PasswordResetToken.expires_at < utcnow())
            .execution_options(synchronize_session=False),
            write=True,
        )
        return result.rowcount


class SQLAlchemyCredentialStore:
    """Relational ``CredentialStore`` over an async session factory."""

    def __init__(self, session_factory: async_sessionmaker, timeout: float = 5.0):
        self._session_factory = session_factory
        self.timeout = timeout

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLAlchemyTransaction]:
        async with self._session_factory() as db:
            tx = SQLAlchemyTransaction(db, self.timeout)
            try:
                yield tx
                await tx.commit()
            except (asyncio.TimeoutError, OperationalError, InterfaceError) as exc:
                logger.error(f"Credential store failure ({type(exc).__name__}); wrote={tx.has_written}")
                raise StoreUnavailable(retryable=not tx.has_written) from exc
