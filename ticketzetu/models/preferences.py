"""UserPreferences model: profile visibility and display settings."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketzetu.models.base import Base, TimestampMixin, UTCDateTime

if TYPE_CHECKING:
    from ticketzetu.models.user import User


class UserPreferences(TimestampMixin, Base):
    """Per-user preferences; every sign-up gets a row with these defaults."""

    __tablename__ = "user_preferences"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user_profiles.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    show_email: Mapped[bool] = mapped_column(Boolean, default=False)
    show_phone: Mapped[bool] = mapped_column(Boolean, default=False)
    show_location: Mapped[bool] = mapped_column(Boolean, default=False)
    show_gender: Mapped[bool] = mapped_column(Boolean, default=False)
    show_role: Mapped[bool] = mapped_column(Boolean, default=False)
    show_profile: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    allow_following: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    language: Mapped[str] = mapped_column(String(10), default="en", index=True)
    theme: Mapped[str] = mapped_column(String(20), default="light")
    timezone: Mapped[str] = mapped_column(String(50), default="UTC")

    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    user: Mapped[User] = relationship("User", back_populates="preferences")
