"""Pipeline orchestration for Chaptercast.

Responsibilities:
- Drive one chapter through script, audio, and per-angle video stages.
- Persist progress after every stage so a restart never loses generated
  script or audio.
- Own the poller registry, including resume-on-load of in-flight renders.
- Keep an in-memory render-job cache that is authoritative between loads.

Key types:
- `ChapterPipeline`: orchestration facade used by the CLI.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

from ..errors import PipelineStageError, RecordNotFoundError, UploadRelayError, ValidationError
from ..models.datatypes import (
    ANGLES,
    ChapterEntry,
    ChapterGroup,
    Project,
    RenderJob,
    RenderStatus,
    SpeechResult,
    StatusReport,
    VideoGenerationResult,
)
from ..providers.heygen import AvatarVideoProvider
from ..providers.script_writer import ScriptProvider
from ..providers.speech import SpeechProvider
from ..relay.publisher import UploadRelay, fetch_audio_bytes
from ..store.artifacts import ArtifactStore
from ..telemetry.logger import RunLogger, log_event
from .chapters import (
    generated_chapters,
    latest_placeholder,
    rendered_jobs_by_angle,
    suggest_next_chapter_number,
)
from .pollers import PollerRegistry, Sleeper
from .sessions import ChapterSession, ChapterStage
from .telemetry import PipelineTelemetryMixin


class ChapterPipeline(PipelineTelemetryMixin):
    """Coordinate providers, upload relay, store, and pollers for chapter videos."""

    def __init__(
        self,
        store: ArtifactStore,
        script_provider: ScriptProvider,
        speech_provider: SpeechProvider,
        avatar_provider: AvatarVideoProvider,
        relay: UploadRelay,
        *,
        poll_interval_seconds: float = 5.0,
        poll_max_attempts: int = 240,
        sleeper: Sleeper = asyncio.sleep,
        run_logger: RunLogger | None = None,
        stage_progress_callback: Callable[[str, int, int], None] | None = None,
    ) -> None:
        """Wire collaborators and create the poller registry."""

        self.store = store
        self.script_provider = script_provider
        self.speech_provider = speech_provider
        self.avatar_provider = avatar_provider
        self.relay = relay
        self._run_logger = run_logger
        self._stage_progress_callback = stage_progress_callback
        self._jobs: dict[str, RenderJob] = {}
        self.pollers = PollerRegistry(
            poll_once=self._poll_once,
            on_report=self._apply_status_report,
            on_give_up=self._give_up,
            interval_seconds=poll_interval_seconds,
            max_attempts=poll_max_attempts,
            sleeper=sleeper,
        )

    @staticmethod
    async def _blocking(function: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a blocking provider or store call off the event loop."""

        return await asyncio.to_thread(function, *args, **kwargs)

    # Lifecycle

    async def load(self, resume: bool = True) -> list[RenderJob]:
        """Load all render jobs into the cache and, by default, resume polling."""

        jobs = await self._blocking(self.store.list_render_jobs)
        self._jobs = {job.id: job for job in jobs}
        if resume:
            self.resume_polling()
        return jobs

    def resume_polling(self) -> list[str]:
        """Start pollers for pending/processing jobs that have an external id.

        Jobs that already have an active poller are skipped, so calling this
        repeatedly never duplicates pollers. Returns ids of newly started pollers.
        """

        started: list[str] = []
        for job in list(self._jobs.values()):
            if job.needs_polling and self.pollers.start(job.id, job.external_job_id or ""):
                started.append(job.id)
        if started:
            log_event("INFO", "pipeline", "resumed_polling", count=len(started))
        return started

    async def wait_for_renders(self) -> None:
        """Wait until every active poller has finished."""

        await self.pollers.wait_idle()

    async def shutdown(self) -> None:
        """Cancel every outstanding poller."""

        await self.pollers.stop_all()

    # Projects

    def list_projects(self) -> list[Project]:
        """Return all projects ordered by creation time."""

        return self.store.list_projects()

    def get_project(self, project_id: str) -> Project:
        """Return one project or raise a `ValidationError` for unknown ids."""

        try:
            return self.store.get_project(project_id)
        except RecordNotFoundError as exc:
            raise ValidationError(
                stage="project",
                detail=f"Unknown project `{project_id}`.",
                hint="List projects with `chaptercast list-projects`.",
            ) from exc

    def create_project(
        self,
        name: str,
        *,
        author: str = "",
        voice_id: str = "",
        system_prompt: str = "",
        image_keys: tuple[str | None, str | None, str | None] = (None, None, None),
    ) -> Project:
        """Create a project; the name is required."""

        if not name.strip():
            raise ValidationError(stage="project", detail="Project name is required.")
        project = Project(
            id="",
            name=name.strip(),
            author=author.strip(),
            voice_id=voice_id.strip(),
            image_keys=image_keys,
            system_prompt=system_prompt,
        )
        return self.store.create_project(project.to_fields())

    def update_project(self, project_id: str, fields: Mapping[str, Any]) -> Project:
        """Apply a field-level partial update to a project."""

        self.get_project(project_id)
        return self.store.update_project(project_id, fields)

    def delete_project(self, project_id: str) -> list[str]:
        """Delete a project, stopping pollers and cascading to its render jobs."""

        for job in self.list_render_jobs(project_id):
            self.pollers.stop(job.id)
        deleted_ids = self.store.delete_project(project_id)
        for job_id in deleted_ids:
            self.pollers.stop(job_id)
            self._jobs.pop(job_id, None)
        for job_id in [job.id for job in self._jobs.values() if job.project_id == project_id]:
            self._jobs.pop(job_id, None)
        return deleted_ids

    async def upload_reference_image(
        self, project_id: str, angle: int, data: bytes, mime_type: str
    ) -> Project:
        """Upload a reference image for one angle and store its image key."""

        if angle not in ANGLES:
            raise ValidationError(stage="image-upload", detail=f"Angle must be one of {ANGLES}.")
        self.get_project(project_id)
        image_key = await self._blocking(self.avatar_provider.upload_image, data, mime_type)
        return await self._blocking(
            self.store.update_project, project_id, {f"image_key_{angle}": image_key}
        )

    async def suggest_chapters(self, project_id: str) -> list[ChapterEntry]:
        """Ask the script provider for the chapters of the project's book."""

        project = self.get_project(project_id)
        return await self._blocking(
            self.script_provider.generate_chapter_list, project.name, project.author or None
        )

    # Render jobs and chapters

    def list_render_jobs(self, project_id: str | None = None) -> list[RenderJob]:
        """Return cached render jobs ordered by creation time."""

        jobs = sorted(self._jobs.values(), key=lambda job: job.created_at)
        if project_id is None:
            return jobs
        return [job for job in jobs if job.project_id == project_id]

    def get_render_job(self, job_id: str) -> RenderJob:
        """Return one cached render job."""

        try:
            return self._jobs[job_id]
        except KeyError as exc:
            raise ValidationError(
                stage="render-job",
                detail=f"Unknown render job `{job_id}`.",
                hint="List chapters with `chaptercast list-chapters <project-id>`.",
            ) from exc

    def generated_chapters(self, project_id: str) -> list[ChapterGroup]:
        """Return chapter groups with at least one requested render."""

        return generated_chapters(self.list_render_jobs(project_id))

    def suggest_next_chapter_number(self, project_id: str) -> int:
        """Return a next-chapter-number hint; never enforced."""

        return suggest_next_chapter_number(self.list_render_jobs(project_id))

    def delete_render_job(self, job_id: str) -> None:
        """Stop polling and delete one render job."""

        self.pollers.stop(job_id)
        self.store.delete_render_job(job_id)
        self._jobs.pop(job_id, None)

    def delete_chapter(
        self, project_id: str, chapter_number: int, chapter_title: str | None = None
    ) -> int:
        """Delete every job of a chapter, placeholders included; return the count."""

        doomed = [
            job.id
            for job in self.list_render_jobs(project_id)
            if job.chapter_number == chapter_number
            and (chapter_title is None or job.chapter_title == chapter_title)
        ]
        for job_id in doomed:
            self.delete_render_job(job_id)
        return len(doomed)

    async def refresh_render_job(self, job_id: str) -> RenderJob:
        """Poll one render job once and persist the result."""

        job = self.get_render_job(job_id)
        if not job.external_job_id:
            raise ValidationError(
                stage="render-status",
                detail=f"Render job `{job_id}` has not been submitted yet.",
            )
        report = await self._poll_once(job.external_job_id)
        await self._apply_status_report(job_id, report, 0)
        return self._jobs[job_id]

    # Chapter stages

    def open_chapter(
        self, project_id: str, chapter_number: int, chapter_title: str
    ) -> ChapterSession:
        """Start or resume a chapter session from stored records.

        Existing rendered records of the same chapter number and title become
        edit targets, one per angle; otherwise the newest placeholder of that
        chapter is resumed. Chapters sharing a number under another title are
        left untouched.
        """

        self.get_project(project_id)
        if chapter_number <= 0:
            raise ValidationError(stage="chapter", detail="Chapter number must be positive.")
        if not chapter_title.strip():
            raise ValidationError(
                stage="chapter",
                detail="Chapter title is required.",
                hint="Pass `--title <chapter title>`.",
            )

        jobs = self.list_render_jobs(project_id)
        session = ChapterSession(
            project_id=project_id,
            chapter_number=chapter_number,
            chapter_title=chapter_title.strip(),
        )
        rendered = rendered_jobs_by_angle(jobs, chapter_number, session.chapter_title)
        source: RenderJob | None
        if rendered:
            session.editing_job_ids = {angle: job.id for angle, job in rendered.items()}
            source = rendered[min(rendered)]
        else:
            source = latest_placeholder(jobs, chapter_number, session.chapter_title)
            session.placeholder_job_id = source.id if source is not None else None

        if source is not None and source.script:
            session.script = source.script
            session.audio_url = source.audio_url
            session.audio_error = None if source.audio_url else source.audio_error
            session.stage = ChapterStage.AUDIO_READY if source.audio_url else ChapterStage.SCRIPT_READY
        return session

    async def generate_script(self, session: ChapterSession) -> str:
        """Generate and persist the chapter script."""

        project = self.get_project(session.project_id)
        previous_stage = session.stage
        session.stage = ChapterStage.SCRIPT_GENERATING
        try:
            script = await self._run_stage(
                "script",
                lambda: self._blocking(
                    self.script_provider.generate_script,
                    project.system_prompt,
                    session.chapter_title,
                    session.chapter_number,
                    project.name,
                ),
                chapter=session.chapter_number,
            )
        except Exception:
            session.stage = previous_stage
            raise

        session.script = script
        session.clear_audio()
        await self._persist_session(
            session, {"script": script, "audio_url": None, "audio_error": None}
        )
        session.stage = ChapterStage.SCRIPT_READY
        return script

    async def update_script(self, session: ChapterSession, script: str) -> None:
        """Persist a user-edited script; audio made for older text is dropped."""

        if not script.strip():
            raise ValidationError(stage="script", detail="Script cannot be empty.")
        if script == session.script:
            return
        session.script = script
        session.clear_audio()
        await self._persist_session(
            session, {"script": script, "audio_url": None, "audio_error": None}
        )
        session.stage = ChapterStage.SCRIPT_READY

    async def generate_audio(self, session: ChapterSession) -> SpeechResult:
        """Synthesize narration, publish it, and persist the durable URL.

        When every upload host fails the local handle is kept for playback and
        the stage still succeeds; the relay failure is stored as `audio_error`
        so a later session can say why the chapter has no published audio.
        """

        if not session.script.strip():
            raise ValidationError(
                stage="audio",
                detail="Generate or enter a script before generating audio.",
            )
        project = self.get_project(session.project_id)
        previous_stage = session.stage
        session.stage = ChapterStage.AUDIO_GENERATING
        try:
            speech: SpeechResult = await self._run_stage(
                "audio",
                lambda: self._blocking(
                    self.speech_provider.synthesize, session.script, project.voice_id
                ),
                chapter=session.chapter_number,
            )
        except Exception:
            session.stage = previous_stage
            raise

        session.audio_bytes = speech.audio_bytes
        session.local_audio_url = speech.local_url
        session.audio_url = None
        session.audio_error = None
        try:
            session.audio_url = await self._publish_audio(session, speech.mime_type)
        except UploadRelayError as exc:
            session.audio_error = exc.detail
            log_event(
                "WARNING",
                "pipeline",
                "audio_not_durable",
                chapter=session.chapter_number,
                hosts=len(exc.attempts),
            )
        await self._persist_session(
            session, {"audio_url": session.audio_url, "audio_error": session.audio_error}
        )
        session.stage = ChapterStage.AUDIO_READY
        return speech

    async def generate_video(self, session: ChapterSession) -> VideoGenerationResult:
        """Submit one render per configured angle, in angle order, and start polling."""

        project = self.get_project(session.project_id)
        configured = project.configured_angles
        if not configured:
            raise ValidationError(
                stage="video",
                detail="Project has no reference images configured.",
                hint="Upload one with `chaptercast upload-image <project-id> <file> --angle 1`.",
            )
        if not session.script.strip():
            raise ValidationError(stage="video", detail="Script is required to render a video.")
        if not session.has_audio:
            raise ValidationError(
                stage="video",
                detail="Generate audio before requesting videos.",
            )

        previous_stage = session.stage
        session.stage = ChapterStage.VIDEO_GENERATING
        try:
            audio_url = await self._resolve_audio_url(session)
            jobs = await self._run_stage(
                "video",
                lambda: self._submit_angles(session, project, configured, audio_url),
                chapter=session.chapter_number,
            )
        except Exception:
            session.stage = previous_stage
            raise

        session.stage = ChapterStage.VIDEO_SUBMITTED
        skipped = tuple(angle for angle in ANGLES if angle not in configured)
        return VideoGenerationResult(jobs=tuple(jobs), skipped_angles=skipped, audio_url=audio_url)

    # Stage internals

    async def _submit_angles(
        self,
        session: ChapterSession,
        project: Project,
        angles: tuple[int, ...],
        audio_url: str,
    ) -> list[RenderJob]:
        """Submit angles strictly in order, reusing one canonical audio URL."""

        submitted: list[RenderJob] = []
        for angle in angles:
            existing = self._edit_target(session, angle)
            image_key = project.image_key(angle) or ""
            title = (
                f"{project.name} - Chapter {session.chapter_number}: "
                f"{session.chapter_title} (Angle {angle})"
            )
            try:
                submission = await self._blocking(
                    self.avatar_provider.request_render,
                    image_key,
                    session.script,
                    audio_url,
                    title,
                )
            except PipelineStageError:
                if existing is not None and not existing.is_placeholder:
                    await self._update_job(existing.id, {"status": RenderStatus.FAILED})
                raise

            fields: dict[str, Any] = {
                "project_id": session.project_id,
                "chapter_number": session.chapter_number,
                "chapter_title": session.chapter_title,
                "angle": angle,
                "script": session.script,
                "audio_url": audio_url,
                "external_job_id": submission.external_job_id,
                "status": submission.status,
                "video_url": None,
                "audio_error": None,
            }
            if existing is not None:
                job = await self._update_job(existing.id, fields)
                if existing.id == session.placeholder_job_id:
                    session.placeholder_job_id = None
            else:
                job = await self._blocking(self.store.create_render_job, fields)
                self._jobs[job.id] = job
            session.editing_job_ids[angle] = job.id
            submitted.append(job)
            log_event(
                "INFO",
                "pipeline",
                "render_submitted",
                job_id=job.id,
                angle=angle,
                status=job.status.value,
            )
            if job.status is not RenderStatus.FAILED:
                self.pollers.start(job.id, submission.external_job_id)
        return submitted

    def _edit_target(self, session: ChapterSession, angle: int) -> RenderJob | None:
        """Return the record an angle submission should reuse, if any.

        Order: the session's record for this angle, any stored rendered record
        for (project, chapter number, chapter title, angle), then the placeholder, which is
        promoted in place by the first submitted angle.
        """

        job_id = session.editing_job_ids.get(angle)
        if job_id is not None and job_id in self._jobs:
            return self._jobs[job_id]
        rendered = rendered_jobs_by_angle(
            self.list_render_jobs(session.project_id),
            session.chapter_number,
            session.chapter_title,
        )
        if angle in rendered:
            return rendered[angle]
        if session.placeholder_job_id is not None:
            return self._jobs.get(session.placeholder_job_id)
        return None

    async def _publish_audio(self, session: ChapterSession, mime_type: str = "audio/mpeg") -> str:
        """Publish in-memory audio bytes through the upload relay."""

        data = session.audio_bytes or b""
        return await self._run_stage(
            "upload",
            lambda: self._blocking(self.relay.publish, data, mime_type),
            chapter=session.chapter_number,
        )

    async def _resolve_audio_url(self, session: ChapterSession) -> str:
        """Return a public audio URL, publishing or reconstituting bytes if needed."""

        if session.audio_url:
            return session.audio_url
        if not session.audio_bytes and session.local_audio_url:
            session.audio_bytes = await self._blocking(fetch_audio_bytes, session.local_audio_url)
        session.audio_url = await self._publish_audio(session)
        session.audio_error = None
        await self._persist_session(session, {"audio_url": session.audio_url, "audio_error": None})
        return session.audio_url

    async def _persist_session(self, session: ChapterSession, fields: Mapping[str, Any]) -> None:
        """Write session fields onto its edit targets, or onto a placeholder."""

        if session.editing_job_ids:
            for job_id in session.editing_job_ids.values():
                await self._update_job(job_id, fields)
            return
        if session.placeholder_job_id is not None:
            await self._update_job(session.placeholder_job_id, fields)
            return

        placeholder_fields: dict[str, Any] = {
            "project_id": session.project_id,
            "chapter_number": session.chapter_number,
            "chapter_title": session.chapter_title,
            "angle": 1,
            "script": session.script,
            "audio_url": session.audio_url,
            "audio_error": session.audio_error,
            "external_job_id": None,
            "status": RenderStatus.PENDING,
            "video_url": None,
            **fields,
        }
        job = await self._blocking(self.store.create_render_job, placeholder_fields)
        self._jobs[job.id] = job
        session.placeholder_job_id = job.id

    async def _update_job(self, job_id: str, fields: Mapping[str, Any]) -> RenderJob:
        """Persist a partial render-job update and refresh the cache."""

        job = await self._blocking(
            self.store.update_render_job, job_id, fields, self._jobs.get(job_id)
        )
        self._jobs[job_id] = job
        return job

    # Polling callbacks

    async def _poll_once(self, external_job_id: str) -> StatusReport:
        """Fetch one status report without blocking the event loop."""

        return await self._blocking(self.avatar_provider.poll_status, external_job_id)

    async def _apply_status_report(self, job_id: str, report: StatusReport, attempt: int) -> None:
        """Persist one poll result."""

        await self._update_job(job_id, {"status": report.status, "video_url": report.video_url})
        if self._run_logger is not None:
            self._run_logger.log_poll_update(job_id, report.status.value, attempt)

    async def _give_up(self, job_id: str, reason: str) -> None:
        """Force a job to `failed` after polling could not finish it."""

        log_event("WARNING", "pipeline", "render_failed", job_id=job_id, reason=reason)
        await self._update_job(job_id, {"status": RenderStatus.FAILED})
