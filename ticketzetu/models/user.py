"""User model: a registered ticketing account.

Soft-deleted accounts keep their row with `deleted_at` set; every lookup
in the auth flow excludes them.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Date, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketzetu.models.base import Base, TimestampMixin, UTCDateTime

if TYPE_CHECKING:
    from ticketzetu.models.location import UserLocation
    from ticketzetu.models.preferences import UserPreferences
    from ticketzetu.models.role import Role
    from ticketzetu.models.security import SecurityAttributes


class User(TimestampMixin, Base):
    """A ticketing platform user profile."""

    __tablename__ = "user_profiles"

    # Identifiers
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    phone: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)

    # Profile
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(Text)
    date_of_birth: Mapped[date | None] = mapped_column(Date)

    role_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("roles.id"), index=True)

    # Audit
    created_by: Mapped[str | None] = mapped_column(String(36))
    last_modified_by: Mapped[str | None] = mapped_column(String(36))
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, index=True)

    # Relationships
    role: Mapped[Role | None] = relationship("Role", back_populates="users", lazy="selectin")
    security: Mapped[SecurityAttributes | None] = relationship(
        "SecurityAttributes", back_populates="user", uselist=False, lazy="selectin"
    )
    preferences: Mapped[UserPreferences | None] = relationship(
        "UserPreferences", back_populates="user", uselist=False, lazy="selectin"
    )
    locations: Mapped[list[UserLocation]] = relationship(
        "UserLocation", back_populates="user", lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username}>"
