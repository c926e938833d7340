"""Tests for the bounded email job queue.

Covers:
- Jobs run on workers and are counted
- Backpressure: a full queue rejects within the submit timeout
- 1001 concurrent submits against capacity 1000
- Failed jobs are reported to the log pipeline, not retried
- Shutdown lets the running job finish and abandons queued ones
- Shutdown with more workers than queue capacity
"""

from __future__ import annotations

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from ticketzetu.errors import QueueSaturated
from ticketzetu.mail.queue import EmailJob, EmailQueue
from ticketzetu.models.enums import EmailKind, LogLevel

# ── Helpers ──────────────────────────────────────────────────────────


def _job(run=None, email: str = "alice@example.com") -> EmailJob:
    return EmailJob(kind=EmailKind.VERIFICATION, payload={"email": email}, run=run or AsyncMock())


# ── Execution ────────────────────────────────────────────────────────


class TestWorkers:
    @pytest.mark.asyncio()
    async def test_job_runs_once(self):
        done = asyncio.Event()

        async def run() -> None:
            done.set()

        queue = EmailQueue(capacity=10, workers=2)
        await queue.start()
        await queue.submit(_job(run))
        await asyncio.wait_for(done.wait(), timeout=1)
        await queue.shutdown()

        assert queue.processed == 1
        assert queue.failed == 0

    @pytest.mark.asyncio()
    async def test_failure_reported_to_pipeline(self):
        pipeline = MagicMock()
        finished = asyncio.Event()

        async def run() -> None:
            finished.set()
            raise ConnectionError("smtp refused")

        queue = EmailQueue(capacity=10, workers=1, log_pipeline=pipeline)
        await queue.start()
        await queue.submit(_job(run, email="bob@example.com"))
        await asyncio.wait_for(finished.wait(), timeout=1)
        await asyncio.sleep(0)
        await queue.shutdown()

        assert queue.failed == 1
        entry = pipeline.submit.call_args.args[0]
        assert entry.level is LogLevel.ERROR
        assert "smtp refused" in entry.message
        assert entry.context["recipient"] == "bob@example.com"


# ── Backpressure ─────────────────────────────────────────────────────


class TestBackpressure:
    @pytest.mark.asyncio()
    async def test_full_queue_rejects_within_timeout(self):
        queue = EmailQueue(capacity=2, workers=1, submit_timeout=0.1)
        await queue.submit(_job())
        await queue.submit(_job())

        started = time.monotonic()
        with pytest.raises(QueueSaturated):
            await queue.submit(_job())
        assert time.monotonic() - started < 0.5
        assert queue.pending == 2

    @pytest.mark.asyncio()
    async def test_concurrent_overflow(self):
        queue = EmailQueue(capacity=1000, workers=5, submit_timeout=0.1)

        results = await asyncio.gather(
            *(queue.submit(_job()) for _ in range(1001)),
            return_exceptions=True,
        )

        rejected = [r for r in results if isinstance(r, QueueSaturated)]
        accepted = [r for r in results if r is None]
        assert len(accepted) <= 1000
        assert len(rejected) >= 1
        assert queue.pending == len(accepted)

    @pytest.mark.asyncio()
    async def test_submit_after_shutdown(self):
        queue = EmailQueue(capacity=10, workers=1)
        await queue.start()
        await queue.shutdown()

        with pytest.raises(QueueSaturated, match="shut down"):
            await queue.submit(_job())


# ── Shutdown ─────────────────────────────────────────────────────────


class TestShutdown:
    @pytest.mark.asyncio()
    async def test_running_job_finishes_queued_job_abandoned(self):
        started = asyncio.Event()
        release = asyncio.Event()
        second = AsyncMock()

        async def slow() -> None:
            started.set()
            await release.wait()

        queue = EmailQueue(capacity=10, workers=1)
        await queue.start()
        await queue.submit(_job(slow))
        await asyncio.wait_for(started.wait(), timeout=1)
        await queue.submit(_job(second))

        stopping = asyncio.create_task(queue.shutdown())
        await asyncio.sleep(0)
        release.set()
        await asyncio.wait_for(stopping, timeout=1)

        assert queue.processed == 1
        second.assert_not_awaited()
        assert queue.pending == 0

    @pytest.mark.asyncio()
    async def test_more_workers_than_capacity(self):
        queue = EmailQueue(capacity=2, workers=5)
        await queue.start()

        await asyncio.wait_for(queue.shutdown(), timeout=1)

        assert queue.pending == 0
        with pytest.raises(QueueSaturated, match="shut down"):
            await queue.submit(_job())

    @pytest.mark.asyncio()
    async def test_busy_workers_finish_idle_ones_stop(self):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow() -> None:
            started.set()
            await release.wait()

        queue = EmailQueue(capacity=1, workers=3)
        await queue.start()
        await queue.submit(_job(slow))
        await asyncio.wait_for(started.wait(), timeout=1)

        stopping = asyncio.create_task(queue.shutdown())
        await asyncio.sleep(0)
        assert not stopping.done()
        release.set()
        await asyncio.wait_for(stopping, timeout=1)

        assert queue.processed == 1
