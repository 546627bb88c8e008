"""Chapter bundle export.

Responsibilities:
- Download completed angle videos and the shared narration audio of one chapter.
- Write them into a deterministic zip archive next to each other.
- Log and skip individual download failures so one expired URL does not
  lose the rest of the bundle.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import zipfile

import requests

from ..errors import ValidationError
from ..models.datatypes import ChapterGroup, RenderStatus
from ..telemetry.logger import log_event
from ..text.slug import chapter_file_stem


@dataclass(frozen=True, slots=True)
class ChapterBundle:
    """Result of one bundle export.

    Attributes:
        path: Written zip archive path.
        entries: Archive member names in write order.
        skipped: Member names whose download failed.
    """

    path: Path
    entries: tuple[str, ...]
    skipped: tuple[str, ...]


class ChapterBundleExporter:
    """Build `{project}_{number}_{title}.zip` archives for completed chapters."""

    def __init__(self, timeout_seconds: float = 120.0) -> None:
        """Initialize download timeout."""

        self.timeout_seconds = timeout_seconds

    def _download(self, url: str) -> bytes:
        """Download one file; raises `requests.RequestException` on failure."""

        response = requests.get(url, timeout=self.timeout_seconds)
        response.raise_for_status()
        return bytes(response.content)

    def export(self, project_name: str, group: ChapterGroup, output_dir: Path) -> ChapterBundle:
        """Write the chapter bundle into `output_dir` and return its description."""

        completed = [
            job
            for job in group.jobs
            if job.status is RenderStatus.COMPLETED and job.video_url
        ]
        if not completed:
            raise ValidationError(
                stage="download",
                detail="No completed videos available to download for this chapter.",
                hint="Wait for renders with `chaptercast watch`.",
            )

        stem = chapter_file_stem(project_name, group.chapter_number, group.chapter_title)
        sources: list[tuple[str, str]] = [
            (f"{stem}_{job.angle}.mp4", job.video_url or "") for job in completed
        ]
        if group.audio_url:
            sources.append((f"{stem}.mp3", group.audio_url))

        output_dir.mkdir(parents=True, exist_ok=True)
        archive_path = output_dir / f"{stem}.zip"
        entries: list[str] = []
        skipped: list[str] = []
        with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for member_name, url in sources:
                try:
                    payload = self._download(url)
                except requests.RequestException as exc:
                    log_event(
                        "WARNING",
                        "export",
                        "download_failed",
                        member=member_name,
                        error_type=type(exc).__name__,
                    )
                    skipped.append(member_name)
                    continue
                archive.writestr(member_name, payload)
                entries.append(member_name)

        log_event("INFO", "export", "bundle_written", path=archive_path, files=len(entries))
        return ChapterBundle(path=archive_path, entries=tuple(entries), skipped=tuple(skipped))
