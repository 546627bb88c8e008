"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
project rows, chapter groups, render job rows, and chapter suggestions.
"""

from __future__ import annotations

from typing import NoReturn

import typer

from .errors import PipelineStageError
from .models.datatypes import (
    ANGLES,
    ChapterEntry,
    ChapterGroup,
    Project,
    RenderJob,
    RenderStatus,
    VideoGenerationResult,
)

_STATUS_COLORS = {
    RenderStatus.PENDING: typer.colors.WHITE,
    RenderStatus.PROCESSING: typer.colors.YELLOW,
    RenderStatus.COMPLETED: typer.colors.GREEN,
    RenderStatus.FAILED: typer.colors.RED,
}


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, PipelineStageError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def echo_project(project: Project) -> None:
    """Print one project row with its configured angles."""

    angles = ",".join(str(angle) for angle in project.configured_angles) or "none"
    author = f" by {project.author}" if project.author else ""
    typer.echo(f"{project.id}  {project.name}{author}  voice={project.voice_id or '-'}  angles={angles}")


def echo_project_list(projects: list[Project]) -> None:
    """Print project rows, or a placeholder line when there are none."""

    if not projects:
        typer.echo("No projects yet. Create one with `chaptercast create-project`.")
        return
    for project in projects:
        echo_project(project)


def echo_render_job(job: RenderJob) -> None:
    """Print one render job row with a status-colored label."""

    url = f"  {job.video_url}" if job.video_url else ""
    typer.echo(f"  angle {job.angle}  {job.id}  ", nl=False)
    typer.secho(job.status.value, fg=_STATUS_COLORS[job.status], nl=False)
    typer.echo(url)


def echo_chapter_groups(groups: list[ChapterGroup], next_chapter_number: int) -> None:
    """Print chapter groups ordered by chapter number, then angle rows."""

    if not groups:
        typer.echo("No chapters generated yet.")
    for group in groups:
        completed = sum(1 for job in group.jobs if job.status is RenderStatus.COMPLETED)
        typer.echo(
            f"Chapter {group.chapter_number}: {group.chapter_title} "
            f"({completed}/{len(group.jobs)} completed)"
        )
        for job in group.jobs:
            echo_render_job(job)
    typer.echo(f"Suggested next chapter number: {next_chapter_number}")


def echo_chapter_suggestions(entries: list[ChapterEntry]) -> None:
    """Print compact deterministic chapter number/title rows."""

    for entry in entries:
        typer.echo(f"{entry.number}. {entry.title}")


def echo_video_result(result: VideoGenerationResult) -> None:
    """Print submitted angle renders and skipped angles."""

    typer.echo(f"Audio URL: {result.audio_url}")
    for job in result.jobs:
        echo_render_job(job)
    if result.skipped_angles:
        skipped = ", ".join(str(angle) for angle in result.skipped_angles)
        typer.echo(f"Skipped angles without reference image: {skipped}")
    if len(result.jobs) == len(ANGLES):
        typer.echo("All angles submitted.")
