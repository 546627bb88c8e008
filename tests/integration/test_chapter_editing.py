"""Integration tests for placeholder records and chapter re-editing."""

from __future__ import annotations

import asyncio

import pytest

from chaptercast.errors import ProviderError, ValidationError
from chaptercast.models.datatypes import RenderStatus
from chaptercast.pipeline import ChapterStage
from chaptercast.store.backends import LocalStore
from tests.fakes import FakeAvatarProvider, FakeScriptProvider, build_pipeline, parked_sleep


def test_placeholder_is_hidden_but_resumable() -> None:
    """A script-only chapter should not be listed, yet reopen with its script."""

    backend = LocalStore()
    first = build_pipeline(backend=backend)

    async def _write_script() -> str:
        await first.load()
        project = first.create_project(
            "Book", voice_id="voice-1", system_prompt="Narrate.", image_keys=("image-1", None, None)
        )
        session = first.open_chapter(project.id, 4, "Four")
        await first.generate_script(session)
        return project.id

    project_id = asyncio.run(_write_script())

    assert first.generated_chapters(project_id) == []
    assert first.suggest_next_chapter_number(project_id) == 5

    script_provider = FakeScriptProvider()
    second = build_pipeline(backend=backend, script_provider=script_provider)

    async def _resume() -> None:
        await second.load()
        session = second.open_chapter(project_id, 4, "Four")
        assert session.stage is ChapterStage.SCRIPT_READY
        assert session.placeholder_job_id is not None
        assert session.script == "Tagged narration script."
        await second.generate_audio(session)
        await second.generate_video(session)
        await second.wait_for_renders()

    asyncio.run(_resume())

    assert script_provider.calls == []
    jobs = second.list_render_jobs(project_id)
    assert len(jobs) == 1
    assert jobs[0].status is RenderStatus.COMPLETED
    groups = second.generated_chapters(project_id)
    assert [(group.chapter_number, group.chapter_title) for group in groups] == [(4, "Four")]


def test_audio_is_prefilled_when_placeholder_has_durable_audio() -> None:
    pipeline = build_pipeline()

    async def _scenario() -> None:
        await pipeline.load()
        project = pipeline.create_project("Book", voice_id="voice-1", system_prompt="Narrate.")
        session = pipeline.open_chapter(project.id, 1, "One")
        await pipeline.generate_script(session)
        await pipeline.generate_audio(session)

        reopened = pipeline.open_chapter(project.id, 1, "One")
        assert reopened.stage is ChapterStage.AUDIO_READY
        assert reopened.audio_url == "https://host-a/audio.mp3"
        assert reopened.placeholder_job_id == session.placeholder_job_id

    asyncio.run(_scenario())

    assert len(pipeline.list_render_jobs()) == 1


def test_script_edit_clears_audio_everywhere() -> None:
    pipeline = build_pipeline()

    async def _scenario() -> None:
        await pipeline.load()
        project = pipeline.create_project("Book", voice_id="voice-1", system_prompt="Narrate.")
        session = pipeline.open_chapter(project.id, 1, "One")
        await pipeline.generate_script(session)
        await pipeline.generate_audio(session)
        assert session.has_audio

        await pipeline.update_script(session, "Hand-edited script.")
        assert not session.has_audio
        assert session.stage is ChapterStage.SCRIPT_READY
        with pytest.raises(ValidationError):
            await pipeline.update_script(session, "   ")

    asyncio.run(_scenario())

    placeholder = pipeline.list_render_jobs()[0]
    assert placeholder.script == "Hand-edited script."
    assert placeholder.audio_url is None


def test_failed_resubmission_marks_existing_render_failed() -> None:
    avatar = FakeAvatarProvider(
        submit_errors={
            2: ProviderError(stage="video", detail="rejected", provider="heygen", status_code=400)
        }
    )
    pipeline = build_pipeline(avatar_provider=avatar)

    async def _scenario() -> str:
        await pipeline.load()
        project = pipeline.create_project(
            "Book", voice_id="voice-1", system_prompt="Narrate.", image_keys=("image-1", None, None)
        )
        session = pipeline.open_chapter(project.id, 1, "One")
        await pipeline.generate_script(session)
        await pipeline.generate_audio(session)
        await pipeline.generate_video(session)
        await pipeline.wait_for_renders()

        again = pipeline.open_chapter(project.id, 1, "One")
        with pytest.raises(ProviderError):
            await pipeline.generate_video(again)
        return project.id

    project_id = asyncio.run(_scenario())

    jobs = pipeline.list_render_jobs(project_id)
    assert len(jobs) == 1
    assert jobs[0].status is RenderStatus.FAILED


def test_delete_chapter_removes_placeholders_and_renders() -> None:
    pipeline = build_pipeline()

    async def _scenario() -> str:
        await pipeline.load()
        project = pipeline.create_project(
            "Book", voice_id="voice-1", system_prompt="Narrate.", image_keys=("image-1", None, None)
        )
        rendered = pipeline.open_chapter(project.id, 1, "One")
        await pipeline.generate_script(rendered)
        await pipeline.generate_audio(rendered)
        await pipeline.generate_video(rendered)
        await pipeline.wait_for_renders()
        draft = pipeline.open_chapter(project.id, 2, "Two")
        await pipeline.generate_script(draft)
        return project.id

    project_id = asyncio.run(_scenario())

    assert pipeline.delete_chapter(project_id, 2) == 1
    assert pipeline.delete_chapter(project_id, 1, "Not the title") == 0
    assert pipeline.delete_chapter(project_id, 1) == 1
    assert pipeline.list_render_jobs(project_id) == []


def test_delete_render_job_stops_its_poller() -> None:
    backend = LocalStore()
    pipeline = build_pipeline(backend=backend, sleeper=parked_sleep)

    async def _scenario() -> tuple[str, bool, bool]:
        await pipeline.load()
        project = pipeline.create_project(
            "Book", voice_id="voice-1", system_prompt="Narrate.", image_keys=("image-1", None, None)
        )
        session = pipeline.open_chapter(project.id, 1, "One")
        await pipeline.generate_script(session)
        await pipeline.generate_audio(session)
        result = await pipeline.generate_video(session)
        job_id = result.jobs[0].id
        was_active = pipeline.pollers.is_active(job_id)
        pipeline.delete_render_job(job_id)
        still_active = pipeline.pollers.is_active(job_id)
        await pipeline.shutdown()
        return job_id, was_active, still_active

    job_id, was_active, still_active = asyncio.run(_scenario())

    assert was_active is True
    assert still_active is False
    assert not backend.contains("render_jobs", job_id)
    assert pipeline.list_render_jobs() == []


def test_refresh_render_job_polls_once() -> None:
    avatar = FakeAvatarProvider()
    backend = LocalStore()
    pipeline = build_pipeline(backend=backend, avatar_provider=avatar)

    async def _scenario() -> None:
        await pipeline.load()
        project = pipeline.create_project(
            "Book", voice_id="voice-1", system_prompt="Narrate.", image_keys=("image-1", None, None)
        )
        session = pipeline.open_chapter(project.id, 1, "One")
        await pipeline.generate_script(session)
        with pytest.raises(ValidationError):
            await pipeline.refresh_render_job(session.placeholder_job_id or "")
        await pipeline.generate_audio(session)
        result = await pipeline.generate_video(session)
        await pipeline.shutdown()

        refreshed = await pipeline.refresh_render_job(result.jobs[0].id)
        assert refreshed.status is RenderStatus.COMPLETED
        assert refreshed.video_url == "https://cdn.example/video.mp4"

    asyncio.run(_scenario())

    with pytest.raises(ValidationError):
        pipeline.get_render_job("missing")


def test_chapters_sharing_a_number_keep_their_own_records() -> None:
    """A second title under an existing number must not reuse the first chapter's renders."""

    script_provider = FakeScriptProvider(script="Chase script.")
    avatar = FakeAvatarProvider()
    pipeline = build_pipeline(script_provider=script_provider, avatar_provider=avatar)

    async def _scenario() -> str:
        await pipeline.load()
        project = pipeline.create_project(
            "Book", voice_id="voice-1", system_prompt="Narrate.", image_keys=("image-1", None, None)
        )
        chase = pipeline.open_chapter(project.id, 3, "The Chase")
        await pipeline.generate_script(chase)
        await pipeline.generate_audio(chase)
        await pipeline.generate_video(chase)
        await pipeline.wait_for_renders()

        script_provider.script = "Storm script."
        storm = pipeline.open_chapter(project.id, 3, "The Storm")
        assert storm.editing_job_ids == {}
        assert storm.placeholder_job_id is None
        assert storm.script == ""
        await pipeline.generate_script(storm)
        await pipeline.generate_audio(storm)
        await pipeline.generate_video(storm)
        await pipeline.wait_for_renders()
        return project.id

    project_id = asyncio.run(_scenario())

    groups = pipeline.generated_chapters(project_id)
    assert [(group.chapter_title, len(group.jobs)) for group in groups] == [
        ("The Chase", 1),
        ("The Storm", 1),
    ]
    chase_job, storm_job = (group.jobs[0] for group in groups)
    assert chase_job.script == "Chase script."
    assert storm_job.script == "Storm script."
    assert chase_job.id != storm_job.id
    assert [call["title"] for call in avatar.render_calls] == [
        "Book - Chapter 3: The Chase (Angle 1)",
        "Book - Chapter 3: The Storm (Angle 1)",
    ]

    reopened = pipeline.open_chapter(project_id, 3, "The Chase")
    assert reopened.editing_job_ids == {1: chase_job.id}


def test_draft_is_only_resumed_under_its_own_title() -> None:
    script_provider = FakeScriptProvider(script="Chase script.")
    pipeline = build_pipeline(script_provider=script_provider)

    async def _scenario() -> tuple[str, str | None]:
        await pipeline.load()
        project = pipeline.create_project("Book", voice_id="voice-1", system_prompt="Narrate.")
        chase = pipeline.open_chapter(project.id, 3, "The Chase")
        await pipeline.generate_script(chase)
        return project.id, chase.placeholder_job_id

    project_id, chase_placeholder = asyncio.run(_scenario())

    other = pipeline.open_chapter(project_id, 3, "The Storm")
    assert other.script == ""
    assert other.placeholder_job_id is None
    assert other.stage is ChapterStage.INPUT

    again = pipeline.open_chapter(project_id, 3, "  The Chase ")
    assert again.placeholder_job_id == chase_placeholder
    assert again.script == "Chase script."
