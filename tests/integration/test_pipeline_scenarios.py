"""End-to-end pipeline scenarios against in-memory providers."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from chaptercast.errors import ProviderError, UploadRelayError, ValidationError
from chaptercast.models.datatypes import RenderStatus, StatusReport
from chaptercast.pipeline import ChapterStage
from chaptercast.providers import heygen as heygen_module
from chaptercast.providers.heygen import HeyGenClient
from chaptercast.relay.hosts import UploadHostError
from chaptercast.store.artifacts import ArtifactStore
from chaptercast.store.backends import LocalStore
from tests.fakes import (
    CountingLocalStore,
    FakeAvatarProvider,
    FakeScriptProvider,
    FakeSpeechProvider,
    FakeUploadHost,
    MockRequestsResponse,
    build_pipeline,
    transient_poll_error,
)


def test_single_angle_chapter_ends_with_one_completed_job() -> None:
    """One configured angle should yield exactly one completed render job."""

    avatar = FakeAvatarProvider(
        poll_reports=[
            StatusReport(RenderStatus.PROCESSING),
            StatusReport(RenderStatus.COMPLETED, "https://cdn.example/loomings.mp4"),
        ]
    )
    speech = FakeSpeechProvider()
    host = FakeUploadHost("host-a", url="https://host-a/loomings.mp3")
    pipeline = build_pipeline(avatar_provider=avatar, speech_provider=speech, hosts=[host])

    async def _scenario() -> None:
        await pipeline.load()
        project = pipeline.create_project(
            "Moby Dick",
            author="Herman Melville",
            voice_id="voice-1",
            system_prompt="Narrate as Ishmael.",
            image_keys=("image-1", None, None),
        )
        session = pipeline.open_chapter(project.id, 1, "Loomings")
        await pipeline.generate_script(session)
        await pipeline.generate_audio(session)
        result = await pipeline.generate_video(session)
        assert result.skipped_angles == (2, 3)
        assert result.audio_url == "https://host-a/loomings.mp3"
        assert session.stage is ChapterStage.VIDEO_SUBMITTED
        await pipeline.wait_for_renders()

    asyncio.run(_scenario())

    jobs = pipeline.list_render_jobs()
    assert len(jobs) == 1
    job = jobs[0]
    assert job.status is RenderStatus.COMPLETED
    assert job.video_url == "https://cdn.example/loomings.mp4"
    assert job.audio_url == "https://host-a/loomings.mp3"
    assert job.script == "Tagged narration script."
    assert avatar.render_calls[0]["image_key"] == "image-1"
    assert avatar.render_calls[0]["audio_url"] == "https://host-a/loomings.mp3"
    assert speech.calls == [("Tagged narration script.", "voice-1")]
    assert len(host.calls) == 1

    stored = pipeline.store.list_render_jobs()
    assert [(row.id, row.status) for row in stored] == [(job.id, RenderStatus.COMPLETED)]


def test_project_without_images_fails_before_any_render_request() -> None:
    """Video generation should be rejected before the avatar provider is called."""

    avatar = FakeAvatarProvider()
    pipeline = build_pipeline(avatar_provider=avatar)

    async def _scenario() -> None:
        await pipeline.load()
        project = pipeline.create_project("Book", voice_id="voice-1", system_prompt="Narrate.")
        session = pipeline.open_chapter(project.id, 1, "One")
        await pipeline.generate_script(session)
        await pipeline.generate_audio(session)
        with pytest.raises(ValidationError) as exc_info:
            await pipeline.generate_video(session)
        assert exc_info.value.stage == "video"
        assert session.stage is ChapterStage.AUDIO_READY

    asyncio.run(_scenario())

    assert avatar.render_calls == []
    assert pipeline.generated_chapters(pipeline.list_projects()[0].id) == []


def test_resumed_processing_job_is_updated_once_per_poll() -> None:
    """Three waiting polls then completed should write four updates and poll no more."""

    backend = CountingLocalStore()
    store = ArtifactStore(backend)
    project = store.create_project({"name": "Book", "image_key_1": "image-1"})
    job = store.create_render_job(
        {
            "project_id": project.id,
            "chapter_number": 1,
            "chapter_title": "One",
            "angle": 1,
            "script": "Script.",
            "audio_url": "https://host/audio.mp3",
            "external_job_id": "video-77",
            "status": RenderStatus.PROCESSING,
        }
    )
    avatar = FakeAvatarProvider(
        poll_reports=[StatusReport(RenderStatus.PENDING)] * 3
        + [StatusReport(RenderStatus.COMPLETED, "https://cdn.example/one.mp4")]
    )
    pipeline = build_pipeline(backend=backend, avatar_provider=avatar)

    async def _scenario() -> None:
        await pipeline.load()
        await pipeline.wait_for_renders()

    asyncio.run(_scenario())

    assert backend.update_count() == 4
    assert avatar.poll_calls == ["video-77"] * 4
    final = pipeline.get_render_job(job.id)
    assert final.status is RenderStatus.COMPLETED
    assert final.video_url == "https://cdn.example/one.mp4"


def test_raw_heygen_statuses_are_normalized_while_polling(monkeypatch: pytest.MonkeyPatch) -> None:
    """Raw `waiting` x3 then `success` responses should drive the same four updates."""

    payloads = iter(
        [{"code": 100, "data": {"status": "waiting"}}] * 3
        + [{"code": 100, "data": {"status": "success", "video_url": "https://cdn.example/one.mp4"}}]
    )
    requested: list[dict[str, Any]] = []

    def _fake_get(url: str, **kwargs: Any) -> MockRequestsResponse:
        requested.append({"url": url, **kwargs})
        return MockRequestsResponse(payload=next(payloads))

    monkeypatch.setattr(heygen_module.requests, "get", _fake_get)
    backend = CountingLocalStore()
    store = ArtifactStore(backend)
    project = store.create_project({"name": "Book", "image_key_1": "image-1"})
    job = store.create_render_job(
        {
            "project_id": project.id,
            "chapter_number": 1,
            "chapter_title": "One",
            "angle": 1,
            "script": "Script.",
            "audio_url": "https://host/audio.mp3",
            "external_job_id": "video-77",
            "status": RenderStatus.PROCESSING,
        }
    )
    pipeline = build_pipeline(backend=backend, avatar_provider=HeyGenClient(api_key="hg-key"))

    async def _scenario() -> None:
        await pipeline.load()
        await pipeline.wait_for_renders()

    asyncio.run(_scenario())

    assert backend.update_count() == 4
    assert [call["params"] for call in requested] == [{"video_id": "video-77"}] * 4
    final = pipeline.get_render_job(job.id)
    assert final.status is RenderStatus.COMPLETED
    assert final.video_url == "https://cdn.example/one.mp4"


def test_all_angles_share_one_published_audio_url() -> None:
    """Audio should be published once and reused by every angle in angle order."""

    avatar = FakeAvatarProvider()
    host = FakeUploadHost("host-a")
    pipeline = build_pipeline(avatar_provider=avatar, hosts=[host])

    async def _scenario() -> None:
        await pipeline.load()
        project = pipeline.create_project(
            "Book",
            voice_id="voice-1",
            system_prompt="Narrate.",
            image_keys=("image-1", "image-2", "image-3"),
        )
        session = pipeline.open_chapter(project.id, 3, "Three")
        await pipeline.generate_script(session)
        await pipeline.generate_audio(session)
        result = await pipeline.generate_video(session)
        assert [job.angle for job in result.jobs] == [1, 2, 3]
        assert result.skipped_angles == ()
        await pipeline.wait_for_renders()

    asyncio.run(_scenario())

    assert len(host.calls) == 1
    assert [call["image_key"] for call in avatar.render_calls] == ["image-1", "image-2", "image-3"]
    assert {call["audio_url"] for call in avatar.render_calls} == {"https://host-a/audio.mp3"}
    assert avatar.render_calls[0]["title"] == "Book - Chapter 3: Three (Angle 1)"
    assert len(pipeline.list_render_jobs()) == 3
    assert all(job.status is RenderStatus.COMPLETED for job in pipeline.list_render_jobs())


def test_transient_poll_errors_are_retried_and_ceiling_forces_failure() -> None:
    avatar = FakeAvatarProvider(
        poll_reports=[transient_poll_error(), StatusReport(RenderStatus.PROCESSING)]
    )
    pipeline = build_pipeline(avatar_provider=avatar, poll_max_attempts=3)

    async def _scenario() -> None:
        await pipeline.load()
        project = pipeline.create_project(
            "Book", voice_id="voice-1", system_prompt="Narrate.", image_keys=("image-1", None, None)
        )
        session = pipeline.open_chapter(project.id, 1, "One")
        await pipeline.generate_script(session)
        await pipeline.generate_audio(session)
        await pipeline.generate_video(session)
        await pipeline.wait_for_renders()

    asyncio.run(_scenario())

    assert len(avatar.poll_calls) == 3
    assert pipeline.list_render_jobs()[0].status is RenderStatus.FAILED


def test_unpublishable_audio_keeps_local_handle_and_blocks_video() -> None:
    """Relay failure during audio is not fatal, but video needs a public URL."""

    hosts = [
        FakeUploadHost("host-a", error=UploadHostError("503 busy")),
        FakeUploadHost("host-b", error=UploadHostError("413 too large")),
    ]
    avatar = FakeAvatarProvider()
    pipeline = build_pipeline(avatar_provider=avatar, hosts=hosts)

    async def _scenario() -> None:
        await pipeline.load()
        project = pipeline.create_project(
            "Book", voice_id="voice-1", system_prompt="Narrate.", image_keys=("image-1", None, None)
        )
        session = pipeline.open_chapter(project.id, 1, "One")
        await pipeline.generate_script(session)
        speech = await pipeline.generate_audio(session)
        assert session.stage is ChapterStage.AUDIO_READY
        assert session.audio_url is None
        assert session.local_audio_url == speech.local_url
        assert session.audio_durable is False

        with pytest.raises(UploadRelayError) as exc_info:
            await pipeline.generate_video(session)
        assert "host-a: 503 busy; host-b: 413 too large" in exc_info.value.detail
        assert session.stage is ChapterStage.AUDIO_READY

    asyncio.run(_scenario())

    assert avatar.render_calls == []
    assert len(hosts[0].calls) == 2


def test_unpublished_audio_reason_survives_for_later_sessions() -> None:
    """A relay failure is stored so a reopened chapter can report it."""

    host = FakeUploadHost("host-a", error=UploadHostError("503 busy"))
    backend = LocalStore()
    pipeline = build_pipeline(backend=backend, hosts=[host])

    async def _fail_then_recover() -> tuple[str, str | None, ChapterStage]:
        await pipeline.load()
        project = pipeline.create_project(
            "Book", voice_id="voice-1", system_prompt="Narrate.", image_keys=("image-1", None, None)
        )
        session = pipeline.open_chapter(project.id, 1, "One")
        await pipeline.generate_script(session)
        await pipeline.generate_audio(session)
        return project.id, session.audio_error, session.stage

    project_id, audio_error, stage = asyncio.run(_fail_then_recover())

    assert stage is ChapterStage.AUDIO_READY
    assert audio_error == "Failed to upload audio to any hosting service. Errors: host-a: 503 busy"

    restarted = build_pipeline(backend=backend, hosts=[host])
    asyncio.run(restarted.load())
    reopened = restarted.open_chapter(project_id, 1, "One")
    assert reopened.stage is ChapterStage.SCRIPT_READY
    assert reopened.has_audio is False
    assert reopened.audio_error == audio_error

    host.error = None
    asyncio.run(restarted.generate_audio(reopened))

    assert reopened.audio_error is None
    [placeholder] = restarted.list_render_jobs(project_id)
    assert placeholder.audio_url == "https://host-a/audio.mp3"
    assert placeholder.audio_error is None


def test_submission_failure_on_later_angle_keeps_earlier_submission() -> None:
    avatar = FakeAvatarProvider(
        submit_errors={
            2: ProviderError(
                stage="video", detail="HeyGen server error (HTTP 500).", provider="heygen", status_code=500
            )
        }
    )
    pipeline = build_pipeline(avatar_provider=avatar)

    async def _scenario() -> None:
        await pipeline.load()
        project = pipeline.create_project(
            "Book",
            voice_id="voice-1",
            system_prompt="Narrate.",
            image_keys=("image-1", "image-2", None),
        )
        session = pipeline.open_chapter(project.id, 1, "One")
        await pipeline.generate_script(session)
        await pipeline.generate_audio(session)
        with pytest.raises(ProviderError):
            await pipeline.generate_video(session)
        await pipeline.wait_for_renders()

    asyncio.run(_scenario())

    jobs = pipeline.list_render_jobs()
    assert [(job.angle, job.status) for job in jobs] == [(1, RenderStatus.COMPLETED)]


def test_script_failure_restores_stage_and_persists_nothing() -> None:
    script_provider = FakeScriptProvider(
        error=ProviderError(stage="script", detail="boom", provider="openai", status_code=500)
    )
    pipeline = build_pipeline(script_provider=script_provider)

    async def _scenario() -> None:
        await pipeline.load()
        project = pipeline.create_project("Book", system_prompt="Narrate.")
        session = pipeline.open_chapter(project.id, 1, "One")
        with pytest.raises(ProviderError):
            await pipeline.generate_script(session)
        assert session.stage is ChapterStage.INPUT

    asyncio.run(_scenario())

    assert pipeline.list_render_jobs() == []


def test_project_operations_validate_and_cascade() -> None:
    pipeline = build_pipeline()

    async def _scenario() -> None:
        await pipeline.load()
        with pytest.raises(ValidationError):
            pipeline.create_project("   ")
        project = pipeline.create_project("Book", voice_id="voice-1", system_prompt="Narrate.")
        updated = await pipeline.upload_reference_image(project.id, 2, b"img", "image/png")
        assert updated.configured_angles == (2,)
        assert updated.image_key(2) == "image-key-1"
        with pytest.raises(ValidationError):
            await pipeline.upload_reference_image(project.id, 4, b"img", "image/png")

        suggestions = await pipeline.suggest_chapters(project.id)
        assert [entry.title for entry in suggestions] == ["Loomings"]

        session = pipeline.open_chapter(project.id, 1, "One")
        await pipeline.generate_script(session)
        await pipeline.generate_audio(session)
        await pipeline.generate_video(session)
        await pipeline.wait_for_renders()

        deleted = pipeline.delete_project(project.id)
        assert len(deleted) == 1
        with pytest.raises(ValidationError):
            pipeline.get_project(project.id)
        with pytest.raises(ValidationError):
            pipeline.update_project(project.id, {"name": "Other"})

    asyncio.run(_scenario())

    assert pipeline.list_render_jobs() == []
    assert pipeline.store.list_render_jobs() == []
