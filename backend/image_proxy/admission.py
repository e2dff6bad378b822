"""
Admission Queue

Bounds how many image pipelines (fetch + transcode) run at once.

- Up to `max_active` jobs run concurrently
- Further jobs wait in a FIFO queue of at most `max_queued`
- Anything beyond that is rejected at submission with QueueFullError (429)

Every transition (submit, release, promote) is a plain synchronous method
executed on the event loop, so no two transitions ever interleave. Each
dispatched job's `result` future is resolved exactly once, with the
pipeline's bytes or its exception.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

from gateway.errors import ResourceLimitError
from gateway.logging_config import request_id_var

logger = logging.getLogger(__name__)

MAX_ACTIVE_PIPELINES = 5
MAX_QUEUED_JOBS = 50


class QueueFullError(ResourceLimitError):
    status_code = 429


@dataclass
class ImageJob:
    """One proxy request waiting for, or running through, the pipeline."""

    source_url: str
    width: int = 600
    quality: int = 50

    # Resolved exactly once with bytes or an exception
    result: asyncio.Future = field(default=None, repr=False)

    request_id: str = field(default_factory=request_id_var.get)
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None

    def __post_init__(self):
        if self.result is None:
            self.result = asyncio.get_running_loop().create_future()

    @property
    def abandoned(self) -> bool:
        """The caller stopped waiting (request deadline hit)."""
        return self.result.done()

    def get_wait_time(self) -> Optional[float]:
        if self.started_at is None:
            return None
        return (self.started_at - self.created_at).total_seconds()


Pipeline = Callable[[ImageJob], Awaitable[bytes]]


class AdmissionQueue:
    """
    Single owner of the admission state.

    Usage:
        queue = AdmissionQueue(pipeline)
        job = ImageJob(url, width=100)
        queue.submit(job)          # may raise QueueFullError
        data = await job.result
    """

    def __init__(
        self,
        pipeline: Pipeline,
        max_active: int = MAX_ACTIVE_PIPELINES,
        max_queued: int = MAX_QUEUED_JOBS,
    ):
        if max_active < 1 or max_queued < 0:
            raise ValueError("max_active must be >= 1 and max_queued >= 0")

        self._pipeline = pipeline
        self.max_active = max_active
        self.max_queued = max_queued

        self._active_count = 0
        self._queue: Deque[ImageJob] = deque()
        self._running: Dict[asyncio.Task, ImageJob] = {}

        self._stats = {
            "dispatched": 0,
            "completed": 0,
            "failed": 0,
            "rejected": 0,
            "abandoned": 0,
        }

        logger.info(
            f"[Admission] Initialized: max_active={max_active}, max_queued={max_queued}"
        )

    @property
    def active_count(self) -> int:
        return self._active_count

    @property
    def queued_count(self) -> int:
        return len(self._queue)

    def submit(self, job: ImageJob) -> bool:
        """
        Admit a job.

        Returns:
            True if the job started immediately, False if it was queued.

        Raises:
            QueueFullError: the waiting queue is at capacity; the job is
                neither queued nor run.
        """
        # A free slot implies an empty queue: release always promotes first
        if self._active_count < self.max_active:
            self._dispatch(job)
            return True

        if len(self._queue) >= self.max_queued:
            self._stats["rejected"] += 1
            logger.warning(
                f"[Admission] Queue full ({len(self._queue)}/{self.max_queued}), "
                f"rejecting: {job.source_url[:60]}"
            )
            raise QueueFullError("Too many image requests, try again later")

        self._queue.append(job)
        logger.debug(
            f"[Admission] Queued at position {len(self._queue)}: {job.source_url[:60]}"
        )
        return False

    def _dispatch(self, job: ImageJob) -> None:
        self._active_count += 1
        self._stats["dispatched"] += 1
        job.started_at = datetime.now()

        task = asyncio.create_task(self._run(job))
        self._running[task] = job
        task.add_done_callback(self._on_done)

        logger.debug(
            f"[Admission] Dispatched (active={self._active_count}/{self.max_active}, "
            f"wait={job.get_wait_time():.2f}s): {job.source_url[:60]}"
        )

    async def _run(self, job: ImageJob) -> None:
        token = request_id_var.set(job.request_id)
        try:
            data = await self._pipeline(job)
        except Exception as e:
            self._stats["failed"] += 1
            if not job.result.done():
                job.result.set_exception(e)
        else:
            self._stats["completed"] += 1
            if not job.result.done():
                job.result.set_result(data)
        finally:
            request_id_var.reset(token)

    def _on_done(self, task: asyncio.Task) -> None:
        # Runs once per dispatched task, including tasks cancelled before they started
        job = self._running.pop(task)
        if task.cancelled():
            job.result.cancel()
        self._release()

    def _release(self) -> None:
        """Free one slot and promote the next live queued job, if any."""
        self._active_count -= 1

        while self._queue:
            job = self._queue.popleft()
            if job.abandoned:
                self._stats["abandoned"] += 1
                logger.info(f"[Admission] Skipping abandoned job: {job.source_url[:60]}")
                continue
            self._dispatch(job)
            break

    async def drain(self) -> None:
        """Cancel queued and running jobs (used on shutdown)."""
        while self._queue:
            self._queue.popleft().result.cancel()

        running = list(self._running)
        for task in running:
            task.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)

        logger.info(f"[Admission] Drained {len(running)} running pipelines")

    def stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "active": self._active_count,
            "queued": len(self._queue),
            "max_active": self.max_active,
            "max_queued": self.max_queued,
        }

    def __repr__(self) -> str:
        return (
            f"AdmissionQueue("
            f"active={self._active_count}/{self.max_active}, "
            f"queued={len(self._queue)}/{self.max_queued})"
        )
