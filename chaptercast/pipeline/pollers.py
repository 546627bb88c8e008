"""Render status pollers.

Responsibilities:
- Run at most one polling task per render job id.
- Poll on a fixed interval up to an attempt ceiling, handing every report
  to the owner for persistence and stopping on a terminal status.
- Retry transient poll errors; force a give-up callback once the ceiling is
  reached or a non-retryable error occurs.
- Cancel every outstanding task on shutdown.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from ..errors import PipelineStageError
from ..models.datatypes import StatusReport
from ..telemetry.logger import log_event

PollOnce = Callable[[str], Awaitable[StatusReport]]
ReportHandler = Callable[[str, StatusReport, int], Awaitable[None]]
GiveUpHandler = Callable[[str, str], Awaitable[None]]
Sleeper = Callable[[float], Awaitable[object]]


class PollerRegistry:
    """Own the polling tasks of one orchestrator instance, keyed by render job id."""

    def __init__(
        self,
        *,
        poll_once: PollOnce,
        on_report: ReportHandler,
        on_give_up: GiveUpHandler,
        interval_seconds: float = 5.0,
        max_attempts: int = 240,
        sleeper: Sleeper = asyncio.sleep,
    ) -> None:
        """Initialize callbacks and polling limits."""

        if max_attempts <= 0:
            raise ValueError("`max_attempts` must be a positive integer.")
        self._poll_once = poll_once
        self._on_report = on_report
        self._on_give_up = on_give_up
        self.interval_seconds = interval_seconds
        self.max_attempts = max_attempts
        self._sleeper = sleeper
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def is_active(self, job_id: str) -> bool:
        """Return whether a poller is running for `job_id`."""

        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    @property
    def active_job_ids(self) -> tuple[str, ...]:
        """Return ids of jobs with a running poller, sorted."""

        return tuple(sorted(job_id for job_id in self._tasks if self.is_active(job_id)))

    def start(self, job_id: str, external_job_id: str) -> bool:
        """Start polling `job_id`; return `False` when a poller already runs.

        Must be called from within a running event loop.
        """

        if self.is_active(job_id):
            return False
        task = asyncio.get_running_loop().create_task(
            self._run(job_id, external_job_id), name=f"poll-{job_id}"
        )
        self._tasks[job_id] = task
        task.add_done_callback(lambda finished, key=job_id: self._forget(key, finished))
        return True

    def stop(self, job_id: str) -> bool:
        """Cancel the poller for `job_id`; return whether one was running."""

        task = self._tasks.pop(job_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def stop_all(self) -> None:
        """Cancel every poller and wait for the cancellations to settle."""

        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def wait_idle(self) -> None:
        """Wait until every poller, including ones started meanwhile, has finished."""

        while True:
            tasks = [task for task in self._tasks.values() if not task.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    def _forget(self, job_id: str, task: asyncio.Task[None]) -> None:
        """Drop a finished task unless a newer poller replaced it."""

        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
        if not task.cancelled() and task.exception() is not None:
            log_event(
                "ERROR",
                "poller",
                "crashed",
                job_id=job_id,
                error_type=type(task.exception()).__name__,
            )

    async def _run(self, job_id: str, external_job_id: str) -> None:
        """Poll until a terminal status, a non-retryable error, or the ceiling."""

        for attempt in range(1, self.max_attempts + 1):
            await self._sleeper(self.interval_seconds)
            try:
                report = await self._poll_once(external_job_id)
            except PipelineStageError as exc:
                log_event(
                    "WARNING",
                    "poller",
                    "poll_error",
                    job_id=job_id,
                    attempt=attempt,
                    error_type=type(exc).__name__,
                )
                if not exc.retryable:
                    await self._on_give_up(job_id, "error")
                    return
                continue
            await self._on_report(job_id, report, attempt)
            if report.status.is_terminal:
                return
        log_event("WARNING", "poller", "gave_up", job_id=job_id, attempts=self.max_attempts)
        await self._on_give_up(job_id, "exhausted")
