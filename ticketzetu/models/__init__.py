"""SQLAlchemy ORM models for ticketzetu.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from ticketzetu.models.base import Base
from ticketzetu.models.enums import (
    AuthType,
    DeviceType,
    EmailKind,
    LogLevel,
    ResponseStatus,
    WarningType,
)
from ticketzetu.models.location import UserLocation
from ticketzetu.models.log import Log
from ticketzetu.models.preferences import UserPreferences
from ticketzetu.models.role import Role
from ticketzetu.models.security import SecurityAttributes
from ticketzetu.models.user import User
from ticketzetu.models.user_session import UserSession

__all__ = [
    # Base
    "Base",
    # Models
    "Log",
    "Role",
    "User",
    "SecurityAttributes",
    "UserSession",
    "UserPreferences",
    "UserLocation",
    # Enums
    "AuthType",
    "DeviceType",
    "EmailKind",
    "LogLevel",
    "ResponseStatus",
    "WarningType",
]
