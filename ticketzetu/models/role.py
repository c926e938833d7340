"""Role model: authorization role assigned to each user profile."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Integer, String, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketzetu.models.base import Base, TimestampMixin, UTCDateTime

if TYPE_CHECKING:
    from ticketzetu.models.user import User

logger = logging.getLogger(__name__)

GUEST_ROLE = "guest"

# Roles every deployment needs; sign-up assigns GUEST_ROLE
DEFAULT_ROLES: dict[str, str] = {
    GUEST_ROLE: "Default role for newly registered users",
}


class Role(TimestampMixin, Base):
    """A named role with an access level."""

    __tablename__ = "roles"

    role_name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(String(255))
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)
    is_system_role: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    users: Mapped[list[User]] = relationship("User", back_populates="role")

    def __repr__(self) -> str:
        return f"<Role name={self.role_name} level={self.level}>"


async def ensure_default_roles(db: AsyncSession) -> None:
    """Insert any missing DEFAULT_ROLES. Caller commits."""
    result = await db.execute(select(Role.role_name).where(Role.role_name.in_(DEFAULT_ROLES)))
    existing = set(result.scalars().all())
    for name, description in DEFAULT_ROLES.items():
        if name in existing:
            continue
        db.add(Role(role_name=name, description=description, is_system_role=True))
        logger.info("Seeded default role %s", name)
    await db.flush()
