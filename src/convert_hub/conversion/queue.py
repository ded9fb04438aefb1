"""Bounded-concurrency conversion queue.

A single dispatcher task owns the pending deque and is the only code that
moves jobs from pending to active. ``submit`` and job completion merely
wake it up, so the ``0 <= active <= ceiling`` invariant holds by
construction rather than by a re-entrancy flag.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Optional

from convert_hub.core.logging import JobLoggerAdapter

from .models import Artifact, ConversionJob

DEFAULT_MAX_CONCURRENT = 2

JobRunner = Callable[[ConversionJob], Awaitable[Artifact]]


class ConversionQueue:
    """FIFO admission into at most ``max_concurrent`` running jobs.

    A job's failure rejects only that job's future; the queue keeps
    draining. There is no mid-flight cancellation: :meth:`clear` drops
    jobs that have not started yet and leaves running ones alone.
    """

    def __init__(
        self,
        runner: JobRunner,
        *,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1.")
        self._runner = runner
        self._max_concurrent = max_concurrent
        self._logger = logger or logging.getLogger(__name__)
        self._pending: deque[ConversionJob] = deque()
        self._active = 0
        self._peak_active = 0
        self._running: set[asyncio.Task[None]] = set()
        self._wakeup: Optional[asyncio.Event] = None
        self._dispatcher: Optional[asyncio.Task[None]] = None
        self._closed = False

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def peak_active(self) -> int:
        """Highest active count observed since construction."""

        return self._peak_active

    def pending_count(self) -> int:
        return len(self._pending)

    def active_count(self) -> int:
        return self._active

    def submit(self, job: ConversionJob) -> "asyncio.Future[Artifact]":
        """Admit ``job`` and return the future that resolves with its result.

        Must be called from a running event loop.
        """

        if self._closed:
            raise RuntimeError("ConversionQueue is closed.")
        loop = asyncio.get_running_loop()
        wakeup = self._ensure_dispatcher(loop)

        future: asyncio.Future[Artifact] = loop.create_future()
        job.result = future
        self._pending.append(job)
        self._job_logger(job).debug(
            "Admitted conversion job",
            extra={"pending": len(self._pending), "active": self._active},
        )
        wakeup.set()
        return future

    def clear(self) -> int:
        """Drop every not-yet-started job and cancel its future."""

        dropped = list(self._pending)
        self._pending.clear()
        for job in dropped:
            job.progress.fail()
            if job.result is not None and not job.result.done():
                job.result.cancel()
        if dropped:
            self._logger.info(
                "Cleared pending conversion jobs",
                extra={"dropped": len(dropped)},
            )
        return len(dropped)

    async def aclose(self) -> None:
        """Stop admitting, drop pending jobs and wait for running ones."""

        self._closed = True
        self.clear()
        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            await asyncio.gather(self._dispatcher, return_exceptions=True)
            self._dispatcher = None

    def _ensure_dispatcher(
        self, loop: asyncio.AbstractEventLoop
    ) -> asyncio.Event:
        dispatcher = self._dispatcher
        if (
            dispatcher is None
            or dispatcher.done()
            or dispatcher.get_loop() is not loop
            or self._wakeup is None
        ):
            self._wakeup = asyncio.Event()
            self._dispatcher = loop.create_task(
                self._dispatch(self._wakeup), name="conversion-queue"
            )
        return self._wakeup

    async def _dispatch(self, wakeup: asyncio.Event) -> None:
        while True:
            await wakeup.wait()
            wakeup.clear()
            self._drain()

    def _drain(self) -> None:
        loop = asyncio.get_running_loop()
        while self._pending and self._active < self._max_concurrent:
            job = self._pending.popleft()
            if job.result is not None and job.result.done():
                # Cancelled by its submitter while still pending.
                continue
            self._active += 1
            self._peak_active = max(self._peak_active, self._active)
            task = loop.create_task(self._run(job), name=f"convert:{job.key}")
            self._running.add(task)
            task.add_done_callback(self._running.discard)

    async def _run(self, job: ConversionJob) -> None:
        log = self._job_logger(job)
        future = job.result
        log.info("Started conversion job", extra={"active": self._active})
        try:
            artifact = await self._runner(job)
        except asyncio.CancelledError:
            if future is not None and not future.done():
                future.cancel()
            raise
        except Exception as exc:
            log.error(
                "Conversion job failed",
                extra={"reason": str(exc), "error_type": type(exc).__name__},
            )
            if future is not None and not future.done():
                future.set_exception(exc)
        else:
            log.info(
                "Conversion job finished",
                extra={"output": artifact.filename, "size": len(artifact.data)},
            )
            if future is not None and not future.done():
                future.set_result(artifact)
        finally:
            self._active -= 1
            if self._wakeup is not None:
                self._wakeup.set()

    def _job_logger(self, job: ConversionJob) -> JobLoggerAdapter:
        return JobLoggerAdapter(
            self._logger,
            {
                "job": job.key,
                "source_format": job.source_format,
                "target_format": job.target_format,
            },
        )


__all__ = ["ConversionQueue", "DEFAULT_MAX_CONCURRENT", "JobRunner"]
