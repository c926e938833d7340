"""Pydantic schemas for application log records.

LogEntry is what request handlers hand to the pipeline; LogOut is what
the /logs endpoint returns.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ticketzetu.models.enums import LogLevel


class LogEntry(BaseModel):
    """A log record submitted to the pipeline.

    Immutable once created. `created_at` and `environment` are filled in by
    the pipeline at submit time when the caller leaves them empty.
    """

    level: LogLevel = LogLevel.INFO
    message: str

    # Request context
    route: str | None = None
    method: str | None = None
    status_code: int | None = None
    user_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    context: Any | None = Field(default=None, description="query, body, path params, headers")

    # Source position
    file: str | None = None
    line: int | None = None
    stack: str | None = None

    environment: str | None = None
    created_at: datetime | None = None

    model_config = {"frozen": True}

    @field_validator("message")
    @classmethod
    def message_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            msg = "log message must not be empty"
            raise ValueError(msg)
        return v

    @field_validator("created_at")
    @classmethod
    def created_at_utc(cls, v: datetime | None) -> datetime | None:
        """Naive timestamps are taken as UTC; aware ones are converted to it."""
        if v is None:
            return v
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v.astimezone(UTC)


class LogOut(BaseModel):
    """A persisted log row as returned by GET /logs."""

    id: int
    level: str
    message: str
    stack: str | None = None
    context: Any | None = None
    route: str | None = None
    method: str | None = None
    status_code: int | None = None
    user_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    file: str | None = None
    line: int | None = None
    environment: str | None = None
    occurrences: int
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}
