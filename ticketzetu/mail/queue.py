"""Bounded email job queue drained by a fixed pool of workers.

`submit()` waits at most `submit_timeout` (100 ms by default) for space and
raises QueueSaturated otherwise. Workers run each job once; failures are
reported to the process logger and the log pipeline, never retried.

Usage:
    queue = EmailQueue(log_pipeline=pipeline)
    await queue.start()
    await queue.submit(EmailJob(kind=EmailKind.VERIFICATION, payload={...}, run=send))
    ...
    await queue.shutdown()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ticketzetu.errors import QueueSaturated
from ticketzetu.models.base import utcnow
from ticketzetu.models.enums import EmailKind, LogLevel
from ticketzetu.schemas.logs import LogEntry

if TYPE_CHECKING:
    from ticketzetu.logs.pipeline import LogPipeline

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000
DEFAULT_WORKERS = 5
DEFAULT_SUBMIT_TIMEOUT = 0.1


@dataclass
class EmailJob:
    """One unit of email work; `run` performs the delivery."""

    kind: EmailKind
    payload: dict[str, Any]
    run: Callable[[], Awaitable[None]]
    submitted_at: datetime = field(default_factory=utcnow)


class EmailQueue:
    """Fixed worker pool over a bounded FIFO of EmailJobs."""

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        workers: int = DEFAULT_WORKERS,
        submit_timeout: float = DEFAULT_SUBMIT_TIMEOUT,
        log_pipeline: LogPipeline | None = None,
    ) -> None:
        self._queue: asyncio.Queue[EmailJob] = asyncio.Queue(maxsize=capacity)
        self._worker_count = workers
        self._submit_timeout = submit_timeout
        self._log_pipeline = log_pipeline
        self._workers: list[asyncio.Task[None]] = []
        self._busy: set[int] = set()
        self._closed = False
        self.processed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # ── Public API ───────────────────────────────────────────────────

    async def submit(self, job: EmailJob) -> None:
        """Enqueue a job, waiting briefly for space.

        Raises:
            QueueSaturated: the queue stayed full for `submit_timeout`
                seconds, or the queue has been shut down.
        """
        if self._closed:
            raise QueueSaturated("email queue is shut down")
        try:
            await asyncio.wait_for(self._queue.put(job), timeout=self._submit_timeout)
        except TimeoutError:
            logger.warning("Email queue saturated, rejected %s job", job.kind.value)
            raise QueueSaturated() from None
        logger.debug("Email job queued: %s (pending=%d)", job.kind.value, self._queue.qsize())

    # ── Workers ──────────────────────────────────────────────────────

    async def start(self) -> None:
        """Spawn the worker pool."""
        if self._workers:
            return
        self._closed = False
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"email-worker-{i}")
            for i in range(self._worker_count)
        ]
        logger.info("Email queue started with %d workers", self._worker_count)

    async def _worker(self, worker_id: int) -> None:
        while not self._closed:
            job = await self._queue.get()
            self._busy.add(worker_id)
            try:
                await self._execute(worker_id, job)
            finally:
                self._busy.discard(worker_id)
        logger.debug("Email worker %d stopped", worker_id)

    async def _execute(self, worker_id: int, job: EmailJob) -> None:
        try:
            await job.run()
            self.processed += 1
        except Exception as exc:
            self.failed += 1
            logger.exception("Email worker %d failed %s job", worker_id, job.kind.value)
            self._report_failure(job, exc)

    def _report_failure(self, job: EmailJob, exc: Exception) -> None:
        if self._log_pipeline is None:
            return
        self._log_pipeline.submit(LogEntry(
            level=LogLevel.ERROR,
            message=f"email job {job.kind.value} failed: {exc}",
            context={
                "kind": job.kind.value,
                "recipient": job.payload.get("email"),
                "submitted_at": job.submitted_at.isoformat(),
            },
        ))

    # ── Lifecycle ────────────────────────────────────────────────────

    async def shutdown(self) -> None:
        """Stop the workers after their current job; queued jobs are abandoned.

        Idle workers are cancelled while waiting for a job. A worker running
        a job exits once the job returns.
        """
        self._closed = True
        abandoned = self._drain()

        for worker_id, task in enumerate(self._workers):
            if worker_id not in self._busy:
                task.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        # Submits already waiting for space may have landed after the first drain
        abandoned += self._drain()
        if abandoned:
            logger.warning("Email queue shutdown abandoned %d queued jobs", abandoned)
        logger.info(
            "Email queue stopped (processed=%d, failed=%d)", self.processed, self.failed
        )

    def _drain(self) -> int:
        drained = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return drained
            drained += 1
