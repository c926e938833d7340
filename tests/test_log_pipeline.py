"""Tests for the log ingest pipeline.

Covers:
- LogEntry timestamps normalised to UTC, empty messages rejected
- Dedup inside the window coalesces into one row (occurrences, timestamps)
- Dedup across the window starts a new row
- Entries without ip or route are never coalesced
- Non-empty fields of a later duplicate overwrite the stored ones
- Non-blocking submit: full queue and closed pipeline drop entries
- Shutdown persists everything already queued
- Flush failures stay inside the pipeline
- Query and delete with typed filters
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select

from ticketzetu.errors import InvalidInput
from ticketzetu.logs.filters import IPEquals, LevelEquals, MessageContains, RouteEquals
from ticketzetu.logs.pipeline import LogPipeline
from ticketzetu.models.base import utcnow
from ticketzetu.models.enums import LogLevel
from ticketzetu.models.log import Log
from ticketzetu.schemas.logs import LogEntry

# ── Helpers ──────────────────────────────────────────────────────────


def _entry(**overrides) -> LogEntry:
    fields = {
        "level": LogLevel.ERROR,
        "message": "not found",
        "ip_address": "203.0.113.9",
        "route": "/api/v1/events",
        "method": "GET",
        "status_code": 404,
    }
    fields.update(overrides)
    return LogEntry(**fields)


async def _rows(factory) -> list[Log]:
    async with factory() as db:
        result = await db.execute(select(Log).order_by(Log.id))
        return list(result.scalars().all())


# ── Entries ──────────────────────────────────────────────────────────


class TestLogEntry:
    def test_naive_created_at_is_utc(self):
        entry = _entry(created_at=datetime(2026, 3, 1, 12, 30))
        assert entry.created_at == datetime(2026, 3, 1, 12, 30, tzinfo=UTC)

    def test_offset_created_at_converted(self):
        eat = timezone(timedelta(hours=3))
        entry = _entry(created_at=datetime(2026, 3, 1, 15, 30, tzinfo=eat))
        assert entry.created_at == datetime(2026, 3, 1, 12, 30, tzinfo=UTC)
        assert entry.created_at.utcoffset() == timedelta(0)

    def test_blank_message_rejected(self):
        with pytest.raises(ValidationError):
            _entry(message="   ")


# ── Dedup ────────────────────────────────────────────────────────────


class TestDedupWithinWindow:
    @pytest.mark.asyncio()
    async def test_three_repeats_become_one_row(self, session_factory):
        t = utcnow()
        pipeline = LogPipeline(session_factory, flush_period=60)
        await pipeline.start()

        for offset in (0, 1, 2):
            assert pipeline.submit(_entry(created_at=t + timedelta(seconds=offset)))
        await pipeline.shutdown()

        rows = await _rows(session_factory)
        assert len(rows) == 1
        assert rows[0].occurrences == 3
        assert rows[0].created_at == t
        assert rows[0].updated_at == t + timedelta(seconds=2)

    @pytest.mark.asyncio()
    async def test_repeat_merges_into_stored_row(self, session_factory):
        t = utcnow()
        first = LogPipeline(session_factory)
        first.submit(_entry(created_at=t))
        await first.shutdown()

        second = LogPipeline(session_factory)
        second.submit(_entry(created_at=t + timedelta(minutes=10)))
        await second.shutdown()

        rows = await _rows(session_factory)
        assert len(rows) == 1
        assert rows[0].occurrences == 2
        assert rows[0].updated_at == t + timedelta(minutes=10)

    @pytest.mark.asyncio()
    async def test_naive_timestamps_coalesce_as_utc(self, session_factory):
        t = utcnow()
        naive = t.replace(tzinfo=None)
        pipeline = LogPipeline(session_factory, flush_period=60)
        await pipeline.start()

        assert pipeline.submit(_entry(created_at=t))
        assert pipeline.submit(_entry(created_at=naive + timedelta(seconds=1)))
        assert pipeline.submit(_entry(created_at=naive + timedelta(seconds=2)))
        await pipeline.shutdown()

        rows = await _rows(session_factory)
        assert len(rows) == 1
        assert rows[0].occurrences == 3
        assert rows[0].updated_at == t + timedelta(seconds=2)


class TestDedupAcrossWindow:
    @pytest.mark.asyncio()
    async def test_submission_after_window_starts_new_row(self, session_factory):
        t = utcnow()
        pipeline = LogPipeline(session_factory, flush_period=60)
        await pipeline.start()

        pipeline.submit(_entry(created_at=t))
        pipeline.submit(_entry(created_at=t + timedelta(seconds=1)))
        pipeline.submit(_entry(created_at=t + timedelta(seconds=3700)))
        await pipeline.shutdown()

        rows = await _rows(session_factory)
        assert [r.occurrences for r in rows] == [2, 1]

    @pytest.mark.asyncio()
    async def test_across_window_against_stored_row(self, session_factory):
        t = utcnow()
        first = LogPipeline(session_factory)
        first.submit(_entry(created_at=t))
        await first.shutdown()

        second = LogPipeline(session_factory)
        second.submit(_entry(created_at=t + timedelta(hours=2)))
        await second.shutdown()

        rows = await _rows(session_factory)
        assert [r.occurrences for r in rows] == [1, 1]


class TestDedupKey:
    @pytest.mark.asyncio()
    async def test_missing_ip_is_never_coalesced(self, session_factory):
        pipeline = LogPipeline(session_factory)
        pipeline.submit(_entry(ip_address=None))
        pipeline.submit(_entry(ip_address=None))
        await pipeline.shutdown()

        rows = await _rows(session_factory)
        assert len(rows) == 2
        assert all(r.occurrences == 1 for r in rows)

    @pytest.mark.asyncio()
    async def test_different_message_is_separate(self, session_factory):
        pipeline = LogPipeline(session_factory)
        pipeline.submit(_entry(message="not found"))
        pipeline.submit(_entry(message="forbidden"))
        await pipeline.shutdown()

        assert len(await _rows(session_factory)) == 2


class TestIncrementalFields:
    def test_merge_overwrites_only_supplied_fields(self):
        t = utcnow()
        stored = Log(
            message="boom", level="error", occurrences=1, stack="old stack",
            user_agent="curl/8", status_code=500, created_at=t, updated_at=t,
        )
        newer = Log(message="boom", level="error", stack="", user_agent=None, status_code=502)

        stored.merge_from(newer, t + timedelta(seconds=5))

        assert stored.occurrences == 2
        assert stored.stack == "old stack"
        assert stored.user_agent == "curl/8"
        assert stored.status_code == 502
        assert stored.created_at == t
        assert stored.updated_at == t + timedelta(seconds=5)

    def test_dedup_key_requires_ip_and_route(self):
        assert Log(message="m", ip_address="1.2.3.4", route="").dedup_key is None
        assert Log(message="m", ip_address="1.2.3.4", route="/x").dedup_key == ("1.2.3.4", "/x", "m")


# ── Drop policy ──────────────────────────────────────────────────────


class TestSubmitNeverBlocks:
    @pytest.mark.asyncio()
    async def test_full_queue_drops_entry(self, session_factory):
        pipeline = LogPipeline(session_factory, buffer_size=2)

        assert pipeline.submit(_entry(message="a")) is True
        assert pipeline.submit(_entry(message="b")) is True
        assert pipeline.submit(_entry(message="c")) is False
        assert pipeline.dropped == 1

        await pipeline.shutdown()
        assert sorted(r.message for r in await _rows(session_factory)) == ["a", "b"]

    @pytest.mark.asyncio()
    async def test_submit_after_shutdown_is_dropped(self, session_factory):
        pipeline = LogPipeline(session_factory)
        await pipeline.start()
        await pipeline.shutdown()

        assert pipeline.closed is True
        assert pipeline.submit(_entry()) is False
        assert pipeline.dropped == 1

    @pytest.mark.asyncio()
    async def test_submit_fills_environment_and_timestamp(self, session_factory):
        pipeline = LogPipeline(session_factory, environment="staging")
        pipeline.submit(_entry())
        await pipeline.shutdown()

        (row,) = await _rows(session_factory)
        assert row.environment == "staging"
        assert row.created_at is not None


# ── Shutdown ─────────────────────────────────────────────────────────


class TestGracefulShutdown:
    @pytest.mark.asyncio()
    async def test_fifty_distinct_entries_persisted(self, session_factory):
        pipeline = LogPipeline(session_factory, flush_period=60)
        await pipeline.start()

        for i in range(50):
            pipeline.submit(_entry(ip_address=f"198.51.100.{i}", route=f"/r/{i}", message=f"m{i}"))
        await pipeline.shutdown()

        async with session_factory() as db:
            count = await db.scalar(select(func.count()).select_from(Log))
        assert count == 50

    @pytest.mark.asyncio()
    async def test_batch_size_triggers_flush(self, session_factory):
        pipeline = LogPipeline(session_factory, buffer_size=5, flush_period=60)
        await pipeline.start()

        for i in range(5):
            pipeline.submit(_entry(message=f"m{i}"))
        for _ in range(50):
            if len(await _rows(session_factory)) == 5:
                break
            await asyncio.sleep(0.01)
        assert len(await _rows(session_factory)) == 5
        await pipeline.shutdown()

    @pytest.mark.asyncio()
    async def test_shutdown_twice_is_noop(self, session_factory):
        pipeline = LogPipeline(session_factory)
        await pipeline.start()
        await pipeline.shutdown()
        await pipeline.shutdown()


# ── Failure isolation ────────────────────────────────────────────────


class TestFlushFailure:
    @pytest.mark.asyncio()
    async def test_store_error_does_not_escape(self):
        broken = MagicMock(side_effect=RuntimeError("database unavailable"))
        pipeline = LogPipeline(broken)
        pipeline.submit(_entry())

        await pipeline.shutdown()

        assert broken.called


# ── Query / delete ───────────────────────────────────────────────────


class TestQuery:
    @pytest.mark.asyncio()
    async def test_filters_are_conjunctive(self, session_factory):
        pipeline = LogPipeline(session_factory)
        pipeline.submit(_entry(message="payment failed", level=LogLevel.ERROR, route="/pay"))
        pipeline.submit(_entry(message="payment retried", level=LogLevel.WARNING, route="/pay"))
        pipeline.submit(_entry(message="login ok", level=LogLevel.INFO, route="/login"))
        await pipeline.shutdown()

        rows = await pipeline.query([MessageContains("payment"), LevelEquals("error")])
        assert [r.message for r in rows] == ["payment failed"]

        rows = await pipeline.query([RouteEquals("/pay")])
        assert {r.message for r in rows} == {"payment failed", "payment retried"}

    @pytest.mark.asyncio()
    async def test_newest_first_with_paging(self, session_factory):
        t = utcnow()
        pipeline = LogPipeline(session_factory)
        for i in range(3):
            pipeline.submit(_entry(message=f"m{i}", created_at=t + timedelta(seconds=i)))
        await pipeline.shutdown()

        rows = await pipeline.query(limit=2)
        assert [r.message for r in rows] == ["m2", "m1"]
        rows = await pipeline.query(limit=2, offset=2)
        assert [r.message for r in rows] == ["m0"]

    @pytest.mark.asyncio()
    async def test_message_wildcards_are_literal(self, session_factory):
        pipeline = LogPipeline(session_factory)
        pipeline.submit(_entry(message="100% done"))
        pipeline.submit(_entry(message="1000 done"))
        await pipeline.shutdown()

        rows = await pipeline.query([MessageContains("100%")])
        assert [r.message for r in rows] == ["100% done"]

    @pytest.mark.asyncio()
    async def test_invalid_paging_rejected(self, session_factory):
        pipeline = LogPipeline(session_factory)
        with pytest.raises(InvalidInput):
            await pipeline.query(limit=0)


class TestDelete:
    @pytest.mark.asyncio()
    async def test_delete_matching_rows(self, session_factory):
        pipeline = LogPipeline(session_factory)
        pipeline.submit(_entry(ip_address="10.9.9.1", message="a"))
        pipeline.submit(_entry(ip_address="10.9.9.2", message="b"))
        await pipeline.shutdown()

        deleted = await pipeline.delete([IPEquals("10.9.9.1")])

        assert deleted == 1
        assert [r.message for r in await _rows(session_factory)] == ["b"]

    @pytest.mark.asyncio()
    async def test_delete_requires_a_filter(self, session_factory):
        pipeline = LogPipeline(session_factory)
        with pytest.raises(InvalidInput):
            await pipeline.delete([])
