"""UserSession model: one signed-in browser or device."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ticketzetu.models.base import Base, TimestampMixin, UTCDateTime
from ticketzetu.models.enums import DeviceType


class UserSession(TimestampMixin, Base):
    """Session and refresh token pair issued at sign-in."""

    __tablename__ = "user_sessions"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    session_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    refresh_token: Mapped[str | None] = mapped_column(String(64))

    # Client
    ip_address: Mapped[str | None] = mapped_column(String(45), index=True)
    user_agent: Mapped[str | None] = mapped_column(Text)
    device_type: Mapped[str] = mapped_column(String(20), default=DeviceType.UNKNOWN.value)
    device_name: Mapped[str | None] = mapped_column(String(100))

    # Lifecycle
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    logged_out_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    refresh_expiry: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    def is_valid(self, now: datetime) -> bool:
        return self.is_active and self.expires_at > now

    def terminate(self, now: datetime) -> None:
        """End the session. Terminated sessions never become active again."""
        self.is_active = False
        self.logged_out_at = now
        self.updated_at = now

    def __repr__(self) -> str:
        return f"<UserSession id={self.id} user_id={self.user_id} active={self.is_active}>"
