"""Unit tests for per-job render status pollers."""

from __future__ import annotations

import asyncio

import pytest

from chaptercast.errors import ProviderError
from chaptercast.models.datatypes import RenderStatus, StatusReport
from chaptercast.pipeline.pollers import PollerRegistry
from tests.fakes import no_sleep, transient_poll_error


class _Recorder:
    """Collect poller callbacks and serve scripted poll answers."""

    def __init__(self, answers: list[StatusReport | Exception]) -> None:
        self.answers = list(answers)
        self.polls: list[str] = []
        self.reports: list[tuple[str, RenderStatus, int]] = []
        self.give_ups: list[tuple[str, str]] = []

    async def poll_once(self, external_job_id: str) -> StatusReport:
        self.polls.append(external_job_id)
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def on_report(self, job_id: str, report: StatusReport, attempt: int) -> None:
        self.reports.append((job_id, report.status, attempt))

    async def on_give_up(self, job_id: str, reason: str) -> None:
        self.give_ups.append((job_id, reason))

    def registry(self, max_attempts: int = 240) -> PollerRegistry:
        return PollerRegistry(
            poll_once=self.poll_once,
            on_report=self.on_report,
            on_give_up=self.on_give_up,
            interval_seconds=0.0,
            max_attempts=max_attempts,
            sleeper=no_sleep,
        )


def test_poller_stops_on_terminal_status() -> None:
    """Three waiting answers then completed should produce exactly four reports."""

    recorder = _Recorder(
        [StatusReport(RenderStatus.PENDING)] * 3
        + [StatusReport(RenderStatus.COMPLETED, "https://cdn/video.mp4")]
    )

    async def _scenario() -> None:
        registry = recorder.registry()
        assert registry.start("job-1", "video-1") is True
        await registry.wait_idle()
        assert registry.active_job_ids == ()

    asyncio.run(_scenario())

    assert recorder.polls == ["video-1"] * 4
    assert [status for _job, status, _attempt in recorder.reports] == [
        RenderStatus.PENDING,
        RenderStatus.PENDING,
        RenderStatus.PENDING,
        RenderStatus.COMPLETED,
    ]
    assert [attempt for _job, _status, attempt in recorder.reports] == [1, 2, 3, 4]
    assert recorder.give_ups == []


def test_poller_gives_up_after_attempt_ceiling() -> None:
    recorder = _Recorder([StatusReport(RenderStatus.PROCESSING)])

    async def _scenario() -> None:
        registry = recorder.registry(max_attempts=3)
        registry.start("job-1", "video-1")
        await registry.wait_idle()

    asyncio.run(_scenario())

    assert len(recorder.polls) == 3
    assert recorder.give_ups == [("job-1", "exhausted")]


def test_poller_retries_transient_errors_and_stops_on_fatal_ones() -> None:
    transient = _Recorder(
        [transient_poll_error(), StatusReport(RenderStatus.COMPLETED, "https://cdn/v.mp4")]
    )
    fatal = _Recorder(
        [ProviderError(stage="render-status", detail="bad id", provider="heygen", status_code=404)]
    )

    async def _scenario() -> None:
        first = transient.registry()
        second = fatal.registry()
        first.start("job-1", "video-1")
        second.start("job-2", "video-2")
        await first.wait_idle()
        await second.wait_idle()

    asyncio.run(_scenario())

    assert len(transient.polls) == 2
    assert transient.reports[-1][1] is RenderStatus.COMPLETED
    assert transient.give_ups == []
    assert len(fatal.polls) == 1
    assert fatal.give_ups == [("job-2", "error")]


def test_start_is_idempotent_per_job_id() -> None:
    """A second start for the same job should not spawn a second task."""

    recorder = _Recorder([StatusReport(RenderStatus.PROCESSING)])
    async def _scenario() -> None:
        release = asyncio.Event()

        async def _blocking_sleep(_seconds: float) -> None:
            await release.wait()

        registry = PollerRegistry(
            poll_once=recorder.poll_once,
            on_report=recorder.on_report,
            on_give_up=recorder.on_give_up,
            max_attempts=1,
            sleeper=_blocking_sleep,
        )
        assert registry.start("job-1", "video-1") is True
        assert registry.start("job-1", "video-1") is False
        assert registry.active_job_ids == ("job-1",)
        release.set()
        await registry.wait_idle()

    asyncio.run(_scenario())

    assert recorder.polls == ["video-1"]


def test_stop_all_cancels_outstanding_pollers() -> None:
    recorder = _Recorder([StatusReport(RenderStatus.PROCESSING)])

    async def _scenario() -> None:
        async def _forever(_seconds: float) -> None:
            await asyncio.Event().wait()

        registry = PollerRegistry(
            poll_once=recorder.poll_once,
            on_report=recorder.on_report,
            on_give_up=recorder.on_give_up,
            sleeper=_forever,
        )
        registry.start("job-1", "video-1")
        registry.start("job-2", "video-2")
        await asyncio.sleep(0)
        assert registry.stop("job-1") is True
        assert registry.stop("job-1") is False
        await registry.stop_all()
        assert registry.active_job_ids == ()

    asyncio.run(_scenario())

    assert recorder.polls == []
    assert recorder.give_ups == []


def test_registry_rejects_non_positive_ceiling() -> None:
    recorder = _Recorder([StatusReport(RenderStatus.PROCESSING)])

    with pytest.raises(ValueError):
        recorder.registry(max_attempts=0)
