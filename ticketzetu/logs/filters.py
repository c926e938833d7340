"""Typed filters for querying and deleting log records.

Each filter is a small frozen dataclass that knows how to express itself
as a SQLAlchemy clause. A list of filters is combined conjunctively.

Usage:
    filters = parse_log_filters(level="error", month="2025-03")
    rows = await pipeline.query(filters, limit=50)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import ColumnElement, and_, true

from ticketzetu.errors import InvalidInput
from ticketzetu.models.enums import LogLevel
from ticketzetu.models.log import Log


@dataclass(frozen=True)
class IPEquals:
    value: str

    def clause(self) -> ColumnElement[bool]:
        return Log.ip_address == self.value


@dataclass(frozen=True)
class RouteEquals:
    value: str

    def clause(self) -> ColumnElement[bool]:
        return Log.route == self.value


@dataclass(frozen=True)
class MessageContains:
    value: str

    def clause(self) -> ColumnElement[bool]:
        # Bound parameter; wildcard characters in the value are matched literally
        return Log.message.contains(self.value, autoescape=True)


@dataclass(frozen=True)
class LevelEquals:
    value: str

    def clause(self) -> ColumnElement[bool]:
        return Log.level == self.value


@dataclass(frozen=True)
class DateRange:
    """Half-open interval [start, end) on created_at."""

    start: datetime
    end: datetime

    def clause(self) -> ColumnElement[bool]:
        return and_(Log.created_at >= self.start, Log.created_at < self.end)


LogFilter = IPEquals | RouteEquals | MessageContains | LevelEquals | DateRange


def combine(filters: Sequence[LogFilter]) -> ColumnElement[bool]:
    """AND all filters together; an empty list matches every row."""
    if not filters:
        return true()
    return and_(*(f.clause() for f in filters))


# ── Query-string parsing ─────────────────────────────────────────────


def day_range(value: str) -> DateRange:
    """YYYY-MM-DD → the UTC day it names."""
    try:
        start = datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=UTC)
    except ValueError as exc:
        raise InvalidInput("invalid date format, expected YYYY-MM-DD") from exc
    return DateRange(start, start + timedelta(days=1))


def month_range(value: str) -> DateRange:
    """YYYY-MM → the UTC calendar month it names."""
    try:
        start = datetime.strptime(value, "%Y-%m").replace(tzinfo=UTC)
    except ValueError as exc:
        raise InvalidInput("invalid month format, expected YYYY-MM") from exc
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return DateRange(start, end)


def parse_log_filters(
    ip_address: str | None = None,
    route: str | None = None,
    message: str | None = None,
    level: str | None = None,
    date: str | None = None,
    month: str | None = None,
) -> list[LogFilter]:
    """Build filters from optional query parameters; blanks are ignored."""
    filters: list[LogFilter] = []
    if ip_address:
        filters.append(IPEquals(ip_address))
    if route:
        filters.append(RouteEquals(route))
    if message:
        filters.append(MessageContains(message))
    if level:
        normalized = level.lower()
        if normalized not in {lvl.value for lvl in LogLevel}:
            raise InvalidInput(f"invalid level: {level}")
        filters.append(LevelEquals(normalized))
    if date:
        filters.append(day_range(date))
    if month:
        filters.append(month_range(month))
    return filters
