"""Log model: one persisted application log record.

Repeated records from the same (ip_address, route, message) inside the
dedup window are coalesced into a single row; `occurrences` counts them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ticketzetu.models.base import Base, JSONType, UTCDateTime, utcnow
from ticketzetu.models.enums import LogLevel

# Fields a coalesced record may overwrite when the newer entry supplies a value
MERGEABLE_FIELDS: tuple[str, ...] = (
    "context",
    "stack",
    "status_code",
    "method",
    "user_agent",
    "file",
    "line",
    "level",
)


class Log(Base):
    """An application log record written by the log pipeline."""

    __tablename__ = "logs"
    __table_args__ = (
        Index("ix_logs_dedup_key", "ip_address", "route", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    level: Mapped[str] = mapped_column(String(20), default=LogLevel.INFO.value, nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    stack: Mapped[str | None] = mapped_column(Text)
    context: Mapped[Any | None] = mapped_column(JSONType, comment="query, body, params, headers")

    # Request context
    route: Mapped[str | None] = mapped_column(String(255))
    method: Mapped[str | None] = mapped_column(String(10))
    status_code: Mapped[int | None] = mapped_column(Integer)
    user_id: Mapped[str | None] = mapped_column(String(36))
    ip_address: Mapped[str | None] = mapped_column(String(100))
    user_agent: Mapped[str | None] = mapped_column(String(255))

    # Source position
    file: Mapped[str | None] = mapped_column(String(255))
    line: Mapped[int | None] = mapped_column(Integer)
    environment: Mapped[str | None] = mapped_column(String(255))

    occurrences: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    def merge_from(self, other: Log, now: datetime) -> None:
        """Fold a newer duplicate into this record.

        Only non-empty values on `other` replace ours.
        """
        self.occurrences = (self.occurrences or 1) + 1
        for field in MERGEABLE_FIELDS:
            value = getattr(other, field)
            if value is None or value == "":
                continue
            setattr(self, field, value)
        self.updated_at = now

    @property
    def dedup_key(self) -> tuple[str, str, str] | None:
        """(ip_address, route, message) or None when ip or route is missing."""
        if not self.ip_address or not self.route:
            return None
        return (self.ip_address, self.route, self.message)

    def __repr__(self) -> str:
        return f"<Log id={self.id} level={self.level} occurrences={self.occurrences}>"
