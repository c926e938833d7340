"""UserLocation model: coarse location resolved from the sign-up IP."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketzetu.models.base import Base, TimestampMixin, UTCDateTime

if TYPE_CHECKING:
    from ticketzetu.models.user import User


class UserLocation(TimestampMixin, Base):
    """Country/region/city for a user, as reported by the geolocation lookup."""

    __tablename__ = "user_locations"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("user_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    country: Mapped[str | None] = mapped_column(String(100), index=True)
    state: Mapped[str | None] = mapped_column(String(100))
    state_name: Mapped[str | None] = mapped_column(String(100))
    continent: Mapped[str | None] = mapped_column(String(50))
    city: Mapped[str | None] = mapped_column(String(100), index=True)
    zip: Mapped[str | None] = mapped_column(String(20))
    timezone: Mapped[str] = mapped_column(String(50), default="UTC")
    last_active: Mapped[datetime | None] = mapped_column(UTCDateTime)

    user: Mapped[User] = relationship("User", back_populates="locations")
