"""Asynchronous log ingest pipeline with dedup and batched persistence.

Request handlers call `submit()`, which never blocks: entries go onto a
bounded asyncio queue and are dropped (with a warning on the process
logger) when it is full. A single background task drains the queue,
coalesces repeats of the same (ip_address, route, message) inside the
dedup window into one row, and inserts everything else in batches.

Usage:
    pipeline = LogPipeline(async_session_factory)
    await pipeline.start()
    pipeline.submit(LogEntry(level=LogLevel.ERROR, message="boom", ...))
    ...
    await pipeline.shutdown()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ticketzetu.errors import InvalidInput
from ticketzetu.logs.filters import LogFilter, combine
from ticketzetu.models.base import utcnow
from ticketzetu.models.log import Log
from ticketzetu.schemas.logs import LogEntry

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 100
DEFAULT_FLUSH_PERIOD = 5.0
DEFAULT_DEDUP_WINDOW = timedelta(hours=1)
DEFAULT_QUERY_LIMIT = 100

# Wakes the drain task on shutdown
_SHUTDOWN = object()


class LogPipeline:
    """Bounded queue + single drainer writing to the `logs` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        flush_period: float = DEFAULT_FLUSH_PERIOD,
        dedup_window: timedelta = DEFAULT_DEDUP_WINDOW,
        environment: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._buffer_size = buffer_size
        self._flush_period = flush_period
        self._dedup_window = dedup_window
        self._environment = environment
        self._clock = clock
        self._queue: asyncio.Queue[LogEntry | object] = asyncio.Queue(maxsize=buffer_size)
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    # ── Ingest ───────────────────────────────────────────────────────

    def submit(self, entry: LogEntry) -> bool:
        """Queue an entry without waiting. Returns False if it was dropped."""
        if self._closed:
            self.dropped += 1
            logger.warning("Log pipeline closed, dropped entry: %s", entry.message)
            return False

        updates: dict[str, object] = {}
        if entry.created_at is None:
            updates["created_at"] = self._clock()
        if entry.environment is None and self._environment:
            updates["environment"] = self._environment
        if updates:
            entry = entry.model_copy(update=updates)

        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Log queue full, dropped entry: %s", entry.message)
            return False
        return True

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the background drain task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._drain(), name="log-pipeline-drain")
            logger.info(
                "Log pipeline started (buffer=%d, flush_period=%.1fs)",
                self._buffer_size,
                self._flush_period,
            )

    async def shutdown(self) -> None:
        """Stop accepting entries, persist everything already queued, stop the drain."""
        if self._closed:
            return
        self._closed = True

        # Full queue means the drain is busy and will see `_closed` on its own
        with contextlib.suppress(asyncio.QueueFull):
            self._queue.put_nowait(_SHUTDOWN)

        if self._task is not None:
            await self._task
            self._task = None
        else:
            await self._finish([])
        logger.info("Log pipeline stopped (dropped=%d)", self.dropped)

    # ── Drain ────────────────────────────────────────────────────────

    async def _drain(self) -> None:
        loop = asyncio.get_running_loop()
        batch: list[Log] = []
        next_tick = loop.time() + self._flush_period

        while True:
            item: LogEntry | object | None = None
            timeout = next_tick - loop.time()
            if timeout > 0:
                try:
                    item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
                except TimeoutError:
                    item = None

            if item is _SHUTDOWN:
                break
            if isinstance(item, LogEntry):
                await self._accept(item, batch)

            if len(batch) >= self._buffer_size:
                await self._flush(batch)
                batch.clear()

            if loop.time() >= next_tick:
                if batch:
                    await self._flush(batch)
                    batch.clear()
                next_tick = loop.time() + self._flush_period

            if self._closed:
                break

        await self._finish(batch)

    async def _finish(self, batch: list[Log]) -> None:
        """Process whatever is still queued, then flush."""
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if isinstance(item, LogEntry):
                await self._accept(item, batch)
                if len(batch) >= self._buffer_size:
                    await self._flush(batch)
                    batch.clear()
        if batch:
            await self._flush(batch)
            batch.clear()

    async def _accept(self, entry: LogEntry, batch: list[Log]) -> None:
        """Coalesce `entry` into a recent duplicate or append it to the batch."""
        try:
            record = self._to_record(entry)
            if record.dedup_key is not None:
                if self._merge_pending(record, batch):
                    return
                if await self._merge_stored(record):
                    return
            batch.append(record)
        except Exception:
            logger.exception("Error processing log entry: %s", entry.message)

    def _to_record(self, entry: LogEntry) -> Log:
        data = entry.model_dump(exclude={"created_at", "level"})
        created_at = entry.created_at or self._clock()
        return Log(
            **data,
            level=entry.level.value,
            occurrences=1,
            created_at=created_at,
            updated_at=created_at,
        )

    def _merge_pending(self, record: Log, batch: list[Log]) -> bool:
        """Fold into the newest unflushed record with the same key, if recent."""
        cutoff = record.created_at - self._dedup_window
        key = record.dedup_key
        for pending in reversed(batch):
            if pending.dedup_key == key and pending.created_at >= cutoff:
                pending.merge_from(record, record.created_at)
                return True
        return False

    async def _merge_stored(self, record: Log) -> bool:
        """Increment the newest stored duplicate inside the window.

        Any database error is treated as "no duplicate" so the entry is
        still written as a fresh row.
        """
        cutoff = record.created_at - self._dedup_window
        stmt = (
            select(Log)
            .where(
                Log.ip_address == record.ip_address,
                Log.route == record.route,
                Log.message == record.message,
                Log.created_at >= cutoff,
            )
            .order_by(Log.created_at.desc(), Log.id.desc())
            .limit(1)
            .with_for_update()
        )
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    existing = (await db.execute(stmt)).scalar_one_or_none()
                    if existing is None:
                        return False
                    existing.merge_from(record, record.created_at)
        except Exception:
            logger.exception("Log dedup lookup failed for %s %s", record.route, record.message)
            return False
        return True

    async def _flush(self, batch: Sequence[Log]) -> None:
        """Insert a batch in one transaction; on failure the batch is lost."""
        records = list(batch)
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    db.add_all(records)
            logger.debug("Flushed %d log records", len(records))
        except Exception:
            logger.exception("Failed to persist %d log records, batch dropped", len(records))

    # ── Read / delete ────────────────────────────────────────────────

    async def query(
        self,
        filters: Sequence[LogFilter] = (),
        limit: int = DEFAULT_QUERY_LIMIT,
        offset: int = 0,
    ) -> list[Log]:
        """Matching records, newest first, soft-deleted rows included."""
        if limit <= 0 or offset < 0:
            raise InvalidInput("limit must be positive and offset non-negative")
        stmt = (
            select(Log)
            .where(combine(filters))
            .order_by(Log.created_at.desc(), Log.id.desc())
            .limit(limit)
            .offset(offset)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def delete(self, filters: Sequence[LogFilter]) -> int:
        """Hard-delete matching records and return how many were removed."""
        if not filters:
            raise InvalidInput("at least one filter is required to delete logs")
        stmt = delete(Log).where(combine(filters)).execution_options(synchronize_session=False)
        async with self._session_factory() as db:
            async with db.begin():
                result = await db.execute(stmt)
        deleted = result.rowcount or 0
        logger.info("Deleted %d log records", deleted)
        return deleted
