"""FIFO queue that runs synthesis jobs strictly one at a time.

Jobs are zero-argument coroutine functions. submit() returns a future bound
to the job; a single drain task works through the pending list in
submission order and never runs two jobs concurrently.

Typical usage:
    queue = SynthesisQueue()
    path = await queue.submit(lambda: retry.run(attempt))
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from voicepeak_broker.errors import QueueCancelled

logger = logging.getLogger(__name__)


@dataclass
class Job:
    """One queued unit of work and the future its caller awaits."""

    execute: Callable[[], Awaitable[Any]]
    future: asyncio.Future


@dataclass(frozen=True)
class QueueStatus:
    """Snapshot of the queue state.

    Attributes:
        pending_count: Jobs waiting to start (excludes a running job).
        is_draining: True while the drain task is active.
    """

    pending_count: int
    is_draining: bool


class SynthesisQueue:
    """Serializes jobs into a single logical executor."""

    def __init__(self) -> None:
        self._pending: deque[Job] = deque()
        self._draining = False
        self._drain_task: asyncio.Task | None = None

    def submit(self, execute: Callable[[], Awaitable[Any]]) -> asyncio.Future:
        """Append a job and return the future for its result.

        Must be called from a running event loop. Submitting while a drain is
        in progress only appends; the ongoing drain picks the job up.
        """
        loop = asyncio.get_running_loop()
        job = Job(execute=execute, future=loop.create_future())
        self._pending.append(job)
        logger.debug("Job queued (pending=%d)", len(self._pending))

        if not self._draining:
            self._draining = True
            self._drain_task = loop.create_task(self._drain())
        return job.future

    def status(self) -> QueueStatus:
        """Get queue status."""
        return QueueStatus(pending_count=len(self._pending), is_draining=self._draining)

    def clear(self) -> int:
        """Fail every job that has not started yet with QueueCancelled.

        A job already executing is unaffected.

        Returns:
            Number of jobs cancelled.
        """
        cancelled = 0
        while self._pending:
            job = self._pending.popleft()
            if not job.future.done():
                job.future.set_exception(QueueCancelled())
                cancelled += 1
        if cancelled:
            logger.info("Queue cleared: %d pending job(s) cancelled", cancelled)
        return cancelled

    async def _drain(self) -> None:
        try:
            while self._pending:
                job = self._pending.popleft()
                if job.future.done():
                    # Caller gave up before the job started.
                    continue
                await self._run_job(job)
        finally:
            self._draining = False
            self._drain_task = None

    @staticmethod
    async def _run_job(job: Job) -> None:
        try:
            result = await job.execute()
        except asyncio.CancelledError:
            job.future.cancel()
            drain = asyncio.current_task()
            if drain is not None and drain.cancelling():
                raise
            logger.debug("Job cancelled itself")
        except Exception as e:
            logger.debug("Job failed: %s", e)
            if not job.future.done():
                job.future.set_exception(e)
        else:
            if not job.future.done():
                job.future.set_result(result)
