"""Password reset token model for secure password recovery."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roadbook_auth.core.security import utcnow
from roadbook_auth.db.session import Base

if TYPE_CHECKING:
    from roadbook_auth.models.user import User


class PasswordResetToken(Base):
    """
    Stores hashed reset secrets.

    Security features:
    - Secret is stored as a bcrypt hash (never plain text)
    - Time-limited expiration
    - Single-use enforcement through ``revoked``
    - Issuing a new secret revokes every older one for the user
    """

    __tablename__ = "password_reset_tokens"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    hashed_secret: Mapped[str] = mapped_column(String(255), nullable=False)

    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    revoked: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    user: Mapped["User"] = relationship("User", back_populates="password_reset_tokens")

    def __repr__(self) -> str:
        return f"<PasswordResetToken(id={self.id}, user_id={self.user_id}, revoked={self.revoked})>"

    def is_valid(self) -> bool:
        """Not revoked and not expired."""
        return not self.revoked and self.expires_at > utcnow()
