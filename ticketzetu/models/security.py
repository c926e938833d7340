"""SecurityAttributes model: credentials and lockout state, one row per user.

Token columns come in pairs (token + expiry) and are only meaningful while
the expiry lies in the future.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketzetu.models.base import Base, TimestampMixin, UTCDateTime
from ticketzetu.models.enums import AuthType

if TYPE_CHECKING:
    from ticketzetu.models.user import User


class SecurityAttributes(TimestampMixin, Base):
    """Password hash, failed-login counter, lock and one-time tokens."""

    __tablename__ = "user_security_attributes"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user_profiles.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    password: Mapped[str] = mapped_column(Text, nullable=False, comment="Argon2id, base64 raw")
    auth_type: Mapped[str] = mapped_column(String(20), default=AuthType.PASSWORD.value)

    # Lockout
    failed_login_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    lock_until: Mapped[datetime | None] = mapped_column(UTCDateTime)

    # Email verification
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_verified_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    email_verification_token: Mapped[str | None] = mapped_column(Text)
    email_token_expiry: Mapped[datetime | None] = mapped_column(UTCDateTime)
    pending_email: Mapped[str | None] = mapped_column(String(255), index=True)

    # Password reset
    password_reset_token: Mapped[str | None] = mapped_column(Text, index=True)
    password_reset_token_expiry: Mapped[datetime | None] = mapped_column(UTCDateTime)

    two_factor_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    user: Mapped[User] = relationship("User", back_populates="security")

    # ── Helpers ──────────────────────────────────────────────────────

    def is_locked(self, now: datetime) -> bool:
        return self.lock_until is not None and self.lock_until > now

    def reset_login_attempts(self) -> None:
        self.failed_login_attempts = 0
        self.lock_until = None

    def increment_failed_attempts(self, max_attempts: int, now: datetime) -> int:
        """Count a failed login and apply progressive lockout.

        Once the counter reaches `max_attempts`, each further failure locks
        the account for one more hour. Returns the new counter.
        """
        self.failed_login_attempts = (self.failed_login_attempts or 0) + 1
        if self.failed_login_attempts >= max_attempts:
            hours = self.failed_login_attempts - max_attempts + 1
            self.lock_until = now + timedelta(hours=hours)
        return self.failed_login_attempts

    def __repr__(self) -> str:
        return (
            f"<SecurityAttributes user_id={self.user_id} verified={self.email_verified} "
            f"failed={self.failed_login_attempts}>"
        )
