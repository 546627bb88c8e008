"""Core datatypes shared across Chaptercast modules.

Responsibilities:
- Represent projects and render jobs as typed records with tolerant
  conversion from and to store rows.
- Represent provider results exchanged between adapters and the orchestrator.

Key types:
- `Project`, `RenderJob`, `RenderStatus`: persisted entities.
- `ChapterEntry`, `ChapterGroup`: chapter listings.
- `RenderSubmission`, `StatusReport`, `SpeechResult`, `VideoGenerationResult`:
  provider and stage results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from ..parsing import normalize_optional_string, parse_positive_int

ANGLES: tuple[int, ...] = (1, 2, 3)


class RenderStatus(str, Enum):
    """Pipeline-level render status domain."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Return whether no further status transitions are expected."""

        return self in (RenderStatus.COMPLETED, RenderStatus.FAILED)

    @classmethod
    def from_record(cls, value: object) -> RenderStatus:
        """Parse a stored status value, treating unknown values as pending."""

        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.PENDING


@dataclass(frozen=True, slots=True)
class Project:
    """A book being converted into narrated avatar videos.

    Attributes:
        id: Immutable store identifier.
        name: Display name, also used as the book title for chapter suggestions.
        author: Book author.
        voice_id: Speech provider voice identifier.
        image_keys: Avatar asset keys per angle (index 0 is angle 1); `None`
            marks an unconfigured angle.
        system_prompt: Free-text script generation instructions.
        created_at: ISO-8601 creation timestamp.
        updated_at: ISO-8601 update timestamp.
    """

    id: str
    name: str
    author: str = ""
    voice_id: str = ""
    image_keys: tuple[str | None, str | None, str | None] = (None, None, None)
    system_prompt: str = ""
    created_at: str = ""
    updated_at: str = ""

    def image_key(self, angle: int) -> str | None:
        """Return the configured image key for a 1-based angle."""

        if angle not in ANGLES:
            raise ValueError(f"Angle must be one of {ANGLES}, got {angle}.")
        return self.image_keys[angle - 1]

    @property
    def configured_angles(self) -> tuple[int, ...]:
        """Return angles that have a reference image, in ascending order."""

        return tuple(angle for angle in ANGLES if self.image_keys[angle - 1])

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> Project:
        """Build a project from a store row, tolerating missing optional columns."""

        return cls(
            id=str(record["id"]),
            name=str(record.get("name") or ""),
            author=str(record.get("author") or ""),
            voice_id=str(record.get("voice_id") or ""),
            image_keys=(
                normalize_optional_string(record.get("image_key_1")),
                normalize_optional_string(record.get("image_key_2")),
                normalize_optional_string(record.get("image_key_3")),
            ),
            system_prompt=str(record.get("system_prompt") or ""),
            created_at=str(record.get("created_at") or ""),
            updated_at=str(record.get("updated_at") or ""),
        )

    def to_fields(self) -> dict[str, Any]:
        """Return writable store columns, excluding id and timestamps."""

        return {
            "name": self.name,
            "author": self.author,
            "voice_id": self.voice_id,
            "image_key_1": self.image_keys[0],
            "image_key_2": self.image_keys[1],
            "image_key_3": self.image_keys[2],
            "system_prompt": self.system_prompt,
        }


@dataclass(frozen=True, slots=True)
class RenderJob:
    """One requested avatar render for one chapter and angle.

    A job that is still `pending` and has no external job id is a placeholder:
    it only carries script and audio until the first render is requested.
    """

    id: str
    project_id: str
    chapter_number: int
    chapter_title: str
    angle: int = 1
    script: str = ""
    audio_url: str | None = None
    external_job_id: str | None = None
    status: RenderStatus = RenderStatus.PENDING
    video_url: str | None = None
    audio_error: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_placeholder(self) -> bool:
        """Return whether this record only persists script/audio so far."""

        return self.status is RenderStatus.PENDING and not self.external_job_id

    @property
    def needs_polling(self) -> bool:
        """Return whether a status poller should be tracking this job."""

        return bool(self.external_job_id) and self.status in (
            RenderStatus.PENDING,
            RenderStatus.PROCESSING,
        )

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> RenderJob:
        """Build a render job from a store row, tolerating missing optional columns."""

        angle = parse_positive_int(record.get("angle")) or 1
        return cls(
            id=str(record["id"]),
            project_id=str(record.get("project_id") or ""),
            chapter_number=parse_positive_int(record.get("chapter_number")) or 1,
            chapter_title=str(record.get("chapter_title") or ""),
            angle=angle if angle in ANGLES else 1,
            script=str(record.get("script") or ""),
            audio_url=normalize_optional_string(record.get("audio_url")),
            external_job_id=normalize_optional_string(record.get("external_job_id")),
            status=RenderStatus.from_record(record.get("status")),
            video_url=normalize_optional_string(record.get("video_url")),
            audio_error=normalize_optional_string(record.get("audio_error")),
            created_at=str(record.get("created_at") or ""),
            updated_at=str(record.get("updated_at") or ""),
        )


@dataclass(frozen=True, slots=True)
class ChapterEntry:
    """A suggested chapter returned by the script provider's chapter list call."""

    number: int
    title: str


@dataclass(frozen=True, slots=True)
class ChapterGroup:
    """Render jobs sharing one chapter number and title, ordered by angle."""

    chapter_number: int
    chapter_title: str
    jobs: tuple[RenderJob, ...] = field(default_factory=tuple)

    @property
    def audio_url(self) -> str | None:
        """Return the lowest angle's audio URL, which is authoritative for the group."""

        for job in self.jobs:
            if job.audio_url:
                return job.audio_url
        return None

    @property
    def script(self) -> str:
        """Return the lowest angle's script."""

        return self.jobs[0].script if self.jobs else ""


@dataclass(frozen=True, slots=True)
class RenderSubmission:
    """Avatar provider answer to a render request."""

    external_job_id: str
    status: RenderStatus


@dataclass(frozen=True, slots=True)
class StatusReport:
    """Avatar provider answer to one status poll."""

    status: RenderStatus
    video_url: str | None = None


@dataclass(frozen=True, slots=True)
class SpeechResult:
    """Synthesized narration audio.

    Attributes:
        audio_bytes: Encoded audio payload.
        local_url: Process-local `file://` handle; not durable and not
            reachable by remote providers.
        mime_type: Audio MIME type.
    """

    audio_bytes: bytes
    local_url: str
    mime_type: str = "audio/mpeg"


@dataclass(frozen=True, slots=True)
class VideoGenerationResult:
    """Outcome of one video stage across all angles."""

    jobs: tuple[RenderJob, ...]
    skipped_angles: tuple[int, ...]
    audio_url: str
