"""Chapter grouping helpers over render jobs.

Responsibilities:
- Group rendered jobs into chapter groups, hiding placeholders.
- Suggest the next chapter number as a hint only.
- Find the records a chapter edit should reuse, keyed by number and title.
"""

from __future__ import annotations

from collections.abc import Iterable

from ..models.datatypes import ChapterGroup, RenderJob


def generated_chapters(jobs: Iterable[RenderJob]) -> list[ChapterGroup]:
    """Return chapter groups of rendered jobs, ordered by number, title, then angle."""

    grouped: dict[tuple[int, str], list[RenderJob]] = {}
    for job in jobs:
        if job.is_placeholder:
            continue
        grouped.setdefault((job.chapter_number, job.chapter_title), []).append(job)

    return [
        ChapterGroup(
            chapter_number=number,
            chapter_title=title,
            jobs=tuple(sorted(members, key=lambda job: (job.angle, job.created_at))),
        )
        for (number, title), members in sorted(grouped.items(), key=lambda item: item[0])
    ]


def suggest_next_chapter_number(jobs: Iterable[RenderJob]) -> int:
    """Return `max(existing chapter number) + 1`, or 1 when no chapter exists."""

    numbers = [job.chapter_number for job in jobs]
    return max(numbers) + 1 if numbers else 1


def _in_chapter(job: RenderJob, chapter_number: int, chapter_title: str) -> bool:
    return job.chapter_number == chapter_number and job.chapter_title == chapter_title.strip()


def rendered_jobs_by_angle(
    jobs: Iterable[RenderJob], chapter_number: int, chapter_title: str
) -> dict[int, RenderJob]:
    """Return the newest rendered job per angle for one (number, title) chapter."""

    by_angle: dict[int, RenderJob] = {}
    for job in sorted(jobs, key=lambda item: item.created_at):
        if _in_chapter(job, chapter_number, chapter_title) and not job.is_placeholder:
            by_angle[job.angle] = job
    return by_angle


def latest_placeholder(
    jobs: Iterable[RenderJob], chapter_number: int, chapter_title: str
) -> RenderJob | None:
    """Return the newest placeholder for one (number, title) chapter, if any."""

    candidates = [
        job for job in jobs if _in_chapter(job, chapter_number, chapter_title) and job.is_placeholder
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda job: job.updated_at or job.created_at)
