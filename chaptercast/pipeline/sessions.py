"""Per-chapter session state for the generation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ChapterStage(str, Enum):
    """Stages a chapter moves through before its renders are tracked per angle."""

    INPUT = "input"
    SCRIPT_GENERATING = "script_generating"
    SCRIPT_READY = "script_ready"
    AUDIO_GENERATING = "audio_generating"
    AUDIO_READY = "audio_ready"
    VIDEO_GENERATING = "video_generating"
    VIDEO_SUBMITTED = "video_submitted"


@dataclass(slots=True)
class ChapterSession:
    """In-memory working state for one (project, chapter) pair.

    Attributes:
        project_id: Owning project id.
        chapter_number: User-assigned chapter number.
        chapter_title: Chapter title.
        stage: Current pipeline stage.
        script: Current script text.
        audio_bytes: Synthesized audio; lost on restart.
        local_audio_url: Process-local `file://` handle for the audio.
        audio_url: Durable public audio URL, once published.
        audio_error: Why the last audio could not be published, if it failed.
        placeholder_job_id: Render job persisting script/audio before any render.
        editing_job_ids: Rendered job ids by angle when re-editing a chapter.
    """

    project_id: str
    chapter_number: int
    chapter_title: str
    stage: ChapterStage = ChapterStage.INPUT
    script: str = ""
    audio_bytes: bytes | None = None
    local_audio_url: str | None = None
    audio_url: str | None = None
    audio_error: str | None = None
    placeholder_job_id: str | None = None
    editing_job_ids: dict[int, str] = field(default_factory=dict)

    @property
    def audio_durable(self) -> bool:
        """Return whether the audio has a public URL that survives a restart."""

        return bool(self.audio_url)

    @property
    def has_audio(self) -> bool:
        """Return whether any audio source (bytes, local handle, or URL) exists."""

        return bool(self.audio_bytes or self.local_audio_url or self.audio_url)

    def clear_audio(self) -> None:
        """Drop every audio source, e.g. after the script changed."""

        self.audio_bytes = None
        self.local_audio_url = None
        self.audio_url = None
        self.audio_error = None
