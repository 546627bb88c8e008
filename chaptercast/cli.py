"""Command-line interface for Chaptercast.

Responsibilities:
- Expose user-facing commands for project management and chapter production.
- Resolve configuration and credentials once per invocation, then delegate
  to `ChapterPipeline`.
- Render pipeline state and stage failures as concise terminal output.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass, field
import mimetypes
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer

from .cli_rendering import (
    echo_chapter_groups,
    echo_chapter_suggestions,
    echo_project,
    echo_project_list,
    echo_render_job,
    echo_video_result,
    exit_with_command_error,
)
from .cli_runtime import load_base_config, resolve_provider_runtime_sources, resolve_runtime
from .credentials import PROVIDER_CREDENTIAL_KEYS, create_credential_store
from .errors import PipelineStageError, ValidationError
from .export.bundle import ChapterBundleExporter
from .parsing import normalize_optional_string
from .pipeline.orchestrator import ChapterPipeline
from .provider_factory import ProviderFactory
from .telemetry.logger import RunLogger

app = typer.Typer(
    name="chaptercast",
    no_args_is_help=True,
    help="Chaptercast CLI: turn book chapters into narrated avatar videos.",
)

_T = TypeVar("_T")


class BuildProgressIndicator:
    """Render deterministic per-stage progress lines for long-running commands."""

    _SPINNER_FRAMES = "|/-\\"

    def __init__(self, command_name: str) -> None:
        """Initialize progress indicator metadata for a command invocation."""

        self._command_name = command_name

    def on_stage_start(self, stage_name: str, stage_index: int, stage_total: int) -> None:
        """Print one progress line for a stage start transition."""

        spinner = self._SPINNER_FRAMES[(stage_index - 1) % len(self._SPINNER_FRAMES)]
        typer.echo(
            f"[progress] command={self._command_name} "
            f"{spinner} {stage_index}/{stage_total} stage={stage_name}"
        )


@dataclass(slots=True)
class CliState:
    """Global options shared by every command invocation."""

    config_file: Path | None = None
    data_dir: Path | None = None
    api_keys: dict[str, str | None] = field(default_factory=dict)
    prompt_api_keys: bool = False
    store_api_keys: bool = True


def _build_pipeline(state: CliState, command_name: str) -> ChapterPipeline:
    """Resolve config and credentials, then wire a pipeline for one command."""

    runtime_cli_values, runtime_secure_values = resolve_provider_runtime_sources(
        api_keys=state.api_keys,
        prompt_api_keys=state.prompt_api_keys,
        store_api_keys=state.store_api_keys,
        credential_store_factory=create_credential_store,
    )
    config = load_base_config(state.config_file, state.data_dir)
    runtime = resolve_runtime(config, runtime_cli_values, runtime_secure_values)
    progress = BuildProgressIndicator(command_name=command_name)
    return ProviderFactory.create_pipeline(
        config,
        runtime,
        run_logger=RunLogger(),
        stage_progress_callback=progress.on_stage_start,
    )


def _run(coroutine: Coroutine[Any, Any, _T]) -> _T:
    """Run one command coroutine to completion on a fresh event loop."""

    return asyncio.run(coroutine)


def _read_text_option(value: str | None, path: Path | None, label: str) -> str | None:
    """Return inline text or the contents of a text file option."""

    if value is not None and path is not None:
        raise ValidationError(
            stage="input",
            detail=f"Use either `--{label}` or `--{label}-file`, not both.",
        )
    if path is not None:
        try:
            return path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ValidationError(
                stage="input",
                detail=f"Could not read `{path}`: {exc}",
            ) from exc
    return value


@app.callback()
def main_callback(
    ctx: typer.Context,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to YAML config file."),
    ] = None,
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", help="Local store and scratch directory override."),
    ] = None,
    openai_api_key: Annotated[
        str | None,
        typer.Option(
            "--openai-api-key",
            help="OpenAI API key override. Prefer `--prompt-api-keys` to avoid shell history.",
        ),
    ] = None,
    elevenlabs_api_key: Annotated[
        str | None,
        typer.Option("--elevenlabs-api-key", help="ElevenLabs API key override."),
    ] = None,
    heygen_api_key: Annotated[
        str | None,
        typer.Option("--heygen-api-key", help="HeyGen API key override."),
    ] = None,
    prompt_api_keys: Annotated[
        bool,
        typer.Option(
            "--prompt-api-keys",
            help="Prompt for missing API keys with hidden input (never echoed).",
        ),
    ] = False,
    store_api_keys: Annotated[
        bool,
        typer.Option(
            "--store-api-keys/--no-store-api-keys",
            help="Persist CLI-entered API keys to secure credential storage.",
        ),
    ] = True,
) -> None:
    """Store global options for subcommands."""

    ctx.obj = CliState(
        config_file=config_file,
        data_dir=data_dir,
        api_keys={
            "openai": openai_api_key,
            "elevenlabs": elevenlabs_api_key,
            "heygen": heygen_api_key,
        },
        prompt_api_keys=prompt_api_keys,
        store_api_keys=store_api_keys,
    )


def _state(ctx: typer.Context) -> CliState:
    """Return the global CLI state, defaulting when the callback did not run."""

    return ctx.obj if isinstance(ctx.obj, CliState) else CliState()


@app.command("create-project")
def create_project_command(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Project (book) name.")],
    author: Annotated[str, typer.Option("--author", help="Book author.")] = "",
    voice_id: Annotated[str, typer.Option("--voice-id", help="ElevenLabs voice id.")] = "",
    system_prompt: Annotated[
        str | None,
        typer.Option("--system-prompt", help="Script generation instructions."),
    ] = None,
    system_prompt_file: Annotated[
        Path | None,
        typer.Option("--system-prompt-file", help="Read script instructions from a file."),
    ] = None,
) -> None:
    """Create a project."""

    try:
        instructions = _read_text_option(system_prompt, system_prompt_file, "system-prompt")
        pipeline = _build_pipeline(_state(ctx), "create-project")
        project = pipeline.create_project(
            name,
            author=author,
            voice_id=voice_id,
            system_prompt=instructions or "",
        )
    except Exception as exc:
        exit_with_command_error("create-project", exc)

    typer.echo("Created project:")
    echo_project(project)


@app.command("list-projects")
def list_projects_command(ctx: typer.Context) -> None:
    """List projects ordered by creation time."""

    try:
        pipeline = _build_pipeline(_state(ctx), "list-projects")
        projects = pipeline.list_projects()
    except Exception as exc:
        exit_with_command_error("list-projects", exc)

    echo_project_list(projects)


@app.command("update-project")
def update_project_command(
    ctx: typer.Context,
    project_id: Annotated[str, typer.Argument(help="Project id.")],
    name: Annotated[str | None, typer.Option("--name", help="New project name.")] = None,
    author: Annotated[str | None, typer.Option("--author", help="New author.")] = None,
    voice_id: Annotated[str | None, typer.Option("--voice-id", help="New voice id.")] = None,
    system_prompt: Annotated[
        str | None,
        typer.Option("--system-prompt", help="New script generation instructions."),
    ] = None,
    system_prompt_file: Annotated[
        Path | None,
        typer.Option("--system-prompt-file", help="Read new instructions from a file."),
    ] = None,
    clear_angle: Annotated[
        list[int] | None,
        typer.Option("--clear-angle", help="Remove the reference image of an angle."),
    ] = None,
) -> None:
    """Apply a partial update to a project."""

    try:
        fields: dict[str, Any] = {}
        if name is not None:
            if normalize_optional_string(name) is None:
                raise ValidationError(stage="project", detail="Project name cannot be blank.")
            fields["name"] = name.strip()
        if author is not None:
            fields["author"] = author.strip()
        if voice_id is not None:
            fields["voice_id"] = voice_id.strip()
        instructions = _read_text_option(system_prompt, system_prompt_file, "system-prompt")
        if instructions is not None:
            fields["system_prompt"] = instructions
        for angle in clear_angle or []:
            if angle not in (1, 2, 3):
                raise ValidationError(stage="project", detail="Angle must be 1, 2, or 3.")
            fields[f"image_key_{angle}"] = None
        if not fields:
            raise ValidationError(
                stage="project",
                detail="Nothing to update.",
                hint="Pass at least one of `--name`, `--author`, `--voice-id`, `--system-prompt`.",
            )
        pipeline = _build_pipeline(_state(ctx), "update-project")
        project = pipeline.update_project(project_id, fields)
    except Exception as exc:
        exit_with_command_error("update-project", exc)

    typer.echo("Updated project:")
    echo_project(project)


@app.command("delete-project")
def delete_project_command(
    ctx: typer.Context,
    project_id: Annotated[str, typer.Argument(help="Project id.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation.")] = False,
) -> None:
    """Delete a project and all of its render jobs."""

    if not yes:
        typer.confirm(f"Delete project `{project_id}` and all its videos?", abort=True)

    async def delete() -> list[str]:
        pipeline = _build_pipeline(_state(ctx), "delete-project")
        await pipeline.load(resume=False)
        pipeline.get_project(project_id)
        return pipeline.delete_project(project_id)

    try:
        deleted_ids = _run(delete())
    except Exception as exc:
        exit_with_command_error("delete-project", exc)

    typer.echo(f"Deleted project {project_id} ({len(deleted_ids)} render job(s)).")


@app.command("upload-image")
def upload_image_command(
    ctx: typer.Context,
    project_id: Annotated[str, typer.Argument(help="Project id.")],
    image_path: Annotated[Path, typer.Argument(help="Reference image file.")],
    angle: Annotated[int, typer.Option("--angle", min=1, max=3, help="Camera angle 1-3.")] = 1,
) -> None:
    """Upload a reference image for one angle."""

    async def upload() -> Any:
        try:
            data = image_path.read_bytes()
        except OSError as exc:
            raise ValidationError(
                stage="image-upload",
                detail=f"Could not read image `{image_path}`: {exc}",
            ) from exc
        mime_type = mimetypes.guess_type(image_path.name)[0] or "image/jpeg"
        pipeline = _build_pipeline(_state(ctx), "upload-image")
        return await pipeline.upload_reference_image(project_id, angle, data, mime_type)

    try:
        project = _run(upload())
    except Exception as exc:
        exit_with_command_error("upload-image", exc)

    typer.echo(f"Stored reference image for angle {angle}:")
    echo_project(project)


@app.command("suggest-chapters")
def suggest_chapters_command(
    ctx: typer.Context,
    project_id: Annotated[str, typer.Argument(help="Project id.")],
) -> None:
    """Suggest the chapters of the project's book."""

    try:
        pipeline = _build_pipeline(_state(ctx), "suggest-chapters")
        entries = _run(pipeline.suggest_chapters(project_id))
    except Exception as exc:
        exit_with_command_error("suggest-chapters", exc)

    echo_chapter_suggestions(entries)


@app.command("produce")
def produce_command(
    ctx: typer.Context,
    project_id: Annotated[str, typer.Argument(help="Project id.")],
    title: Annotated[str, typer.Option("--title", help="Chapter title.")],
    chapter: Annotated[
        int | None,
        typer.Option("--chapter", "-n", min=1, help="Chapter number (default: next suggested)."),
    ] = None,
    script_file: Annotated[
        Path | None,
        typer.Option("--script-file", help="Use this script instead of generating one."),
    ] = None,
    regenerate_script: Annotated[
        bool,
        typer.Option("--regenerate-script", help="Generate a new script even if one is stored."),
    ] = False,
    edit: Annotated[
        bool,
        typer.Option("--edit/--no-edit", help="Review the script in $EDITOR before narration."),
    ] = False,
    skip_video: Annotated[
        bool,
        typer.Option("--skip-video", help="Stop after the audio stage."),
    ] = False,
    wait: Annotated[
        bool,
        typer.Option("--wait", help="Wait until every submitted render finishes."),
    ] = False,
) -> None:
    """Produce one chapter: script, optional review, audio, then angle videos."""

    async def produce() -> None:
        pipeline = _build_pipeline(_state(ctx), "produce")
        await pipeline.load(resume=wait)
        try:
            chapter_number = chapter or pipeline.suggest_next_chapter_number(project_id)
            session = pipeline.open_chapter(project_id, chapter_number, title)
            typer.echo(f"Chapter {session.chapter_number}: {session.chapter_title}")
            if session.audio_error and not session.has_audio:
                typer.secho(
                    f"Previous audio was not published: {session.audio_error}",
                    fg=typer.colors.YELLOW,
                )

            if script_file is not None:
                provided = _read_text_option(None, script_file, "script")
                await pipeline.update_script(session, provided or "")
            elif regenerate_script or not session.script:
                await pipeline.generate_script(session)
            else:
                typer.echo("Reusing stored script.")

            if edit:
                edited = typer.edit(session.script, extension=".txt")
                if edited is not None and edited.strip() != session.script.strip():
                    await pipeline.update_script(session, edited.strip())
                    typer.echo("Saved edited script.")

            if not session.has_audio:
                await pipeline.generate_audio(session)
                if session.audio_durable:
                    typer.echo(f"Audio URL: {session.audio_url}")
                else:
                    typer.secho(
                        "Audio could not be published; it will be retried before rendering.",
                        fg=typer.colors.YELLOW,
                    )
            else:
                typer.echo("Reusing stored audio.")

            if skip_video:
                return
            result = await pipeline.generate_video(session)
            echo_video_result(result)
            if wait:
                await pipeline.wait_for_renders()
                typer.echo("Final render status:")
                for job in result.jobs:
                    echo_render_job(pipeline.get_render_job(job.id))
            else:
                typer.echo("Renders submitted. Track them with `chaptercast watch`.")
        finally:
            await pipeline.shutdown()

    try:
        _run(produce())
    except Exception as exc:
        exit_with_command_error("produce", exc)


@app.command("list-chapters")
def list_chapters_command(
    ctx: typer.Context,
    project_id: Annotated[str, typer.Argument(help="Project id.")],
) -> None:
    """List generated chapters of a project with per-angle render status."""

    async def list_chapters() -> tuple[Any, int]:
        pipeline = _build_pipeline(_state(ctx), "list-chapters")
        await pipeline.load(resume=False)
        pipeline.get_project(project_id)
        return (
            pipeline.generated_chapters(project_id),
            pipeline.suggest_next_chapter_number(project_id),
        )

    try:
        groups, next_number = _run(list_chapters())
    except Exception as exc:
        exit_with_command_error("list-chapters", exc)

    echo_chapter_groups(groups, next_number)


@app.command("watch")
def watch_command(
    ctx: typer.Context,
    project_id: Annotated[
        str | None, typer.Argument(help="Only print results for this project.")
    ] = None,
) -> None:
    """Resume polling of every in-flight render and wait until all finish."""

    async def watch() -> list[Any]:
        pipeline = _build_pipeline(_state(ctx), "watch")
        await pipeline.load(resume=False)
        started = pipeline.resume_polling()
        typer.echo(f"Watching {len(started)} render(s).")
        try:
            await pipeline.wait_for_renders()
        finally:
            await pipeline.shutdown()
        return [
            job
            for job in pipeline.list_render_jobs(project_id)
            if job.id in started
        ]

    try:
        finished = _run(watch())
    except Exception as exc:
        exit_with_command_error("watch", exc)

    for job in finished:
        echo_render_job(job)


@app.command("refresh")
def refresh_command(
    ctx: typer.Context,
    job_id: Annotated[str, typer.Argument(help="Render job id.")],
) -> None:
    """Poll one render job once and store the result."""

    async def refresh() -> Any:
        pipeline = _build_pipeline(_state(ctx), "refresh")
        await pipeline.load(resume=False)
        return await pipeline.refresh_render_job(job_id)

    try:
        job = _run(refresh())
    except Exception as exc:
        exit_with_command_error("refresh", exc)

    echo_render_job(job)


@app.command("download")
def download_command(
    ctx: typer.Context,
    project_id: Annotated[str, typer.Argument(help="Project id.")],
    chapter: Annotated[int, typer.Argument(help="Chapter number.")],
    title: Annotated[
        str | None,
        typer.Option("--title", help="Chapter title, when a number has several titles."),
    ] = None,
    out: Annotated[Path, typer.Option("--out", help="Output directory.")] = Path("."),
) -> None:
    """Download completed angle videos and the narration as one zip bundle."""

    async def download() -> Any:
        pipeline = _build_pipeline(_state(ctx), "download")
        await pipeline.load(resume=False)
        project = pipeline.get_project(project_id)
        groups = [
            group
            for group in pipeline.generated_chapters(project_id)
            if group.chapter_number == chapter
            and (title is None or group.chapter_title == title)
        ]
        if not groups:
            raise ValidationError(stage="download", detail=f"No chapter {chapter} found.")
        if len(groups) > 1:
            raise ValidationError(
                stage="download",
                detail=f"Chapter {chapter} has several titles.",
                hint="Pass `--title` to pick one.",
            )
        exporter = ChapterBundleExporter()
        return await asyncio.to_thread(exporter.export, project.name, groups[0], out)

    try:
        bundle = _run(download())
    except Exception as exc:
        exit_with_command_error("download", exc)

    typer.echo(f"Bundle: {bundle.path}")
    for entry in bundle.entries:
        typer.echo(f"  {entry}")
    for skipped in bundle.skipped:
        typer.secho(f"  skipped {skipped} (download failed)", fg=typer.colors.YELLOW)


@app.command("delete-chapter")
def delete_chapter_command(
    ctx: typer.Context,
    project_id: Annotated[str, typer.Argument(help="Project id.")],
    chapter: Annotated[int, typer.Argument(help="Chapter number.")],
    title: Annotated[
        str | None,
        typer.Option("--title", help="Only delete jobs with this chapter title."),
    ] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation.")] = False,
) -> None:
    """Delete every render job of a chapter, placeholders included."""

    if not yes:
        typer.confirm(f"Delete chapter {chapter} of project `{project_id}`?", abort=True)

    async def delete() -> int:
        pipeline = _build_pipeline(_state(ctx), "delete-chapter")
        await pipeline.load(resume=False)
        pipeline.get_project(project_id)
        return pipeline.delete_chapter(project_id, chapter, title)

    try:
        count = _run(delete())
    except Exception as exc:
        exit_with_command_error("delete-chapter", exc)

    typer.echo(f"Deleted {count} render job(s) of chapter {chapter}.")


@app.command("credentials")
def credentials_command(
    set_provider: Annotated[
        str | None,
        typer.Option(
            "--set",
            help="Prompt for and store an API key for `openai`, `elevenlabs`, or `heygen`.",
        ),
    ] = None,
    clear_provider: Annotated[
        str | None,
        typer.Option("--clear", help="Remove the stored API key of one provider."),
    ] = None,
) -> None:
    """Manage provider API keys in secure credential storage."""

    if set_provider and clear_provider:
        exit_with_command_error(
            "credentials",
            PipelineStageError(
                stage="credentials",
                detail="`--set` and `--clear` cannot be used together.",
                hint="Run one credentials action per command invocation.",
            ),
        )
    provider = set_provider or clear_provider
    if provider is not None and provider not in PROVIDER_CREDENTIAL_KEYS:
        exit_with_command_error(
            "credentials",
            PipelineStageError(
                stage="credentials",
                detail=f"Unknown provider `{provider}`.",
                hint="Use one of: " + ", ".join(sorted(PROVIDER_CREDENTIAL_KEYS)) + ".",
            ),
        )

    credential_store = create_credential_store()
    if set_provider:
        prompted_api_key = normalize_optional_string(
            typer.prompt(
                f"{set_provider} API key (hidden input)",
                default="",
                hide_input=True,
                show_default=False,
            )
        )
        if prompted_api_key is None:
            exit_with_command_error(
                "credentials",
                PipelineStageError(
                    stage="credentials",
                    detail="No API key entered.",
                    hint="Provide a non-empty API key when using `--set`.",
                ),
            )
        try:
            credential_store.set_api_key(set_provider, prompted_api_key)
        except Exception as exc:
            exit_with_command_error(
                "credentials",
                PipelineStageError(
                    stage="credentials",
                    detail=f"Failed to store API key securely: {exc}",
                    hint="Install and configure a keyring backend and retry.",
                ),
            )
        typer.echo(f"Stored {set_provider} API key in secure credential storage.")
        return

    if clear_provider:
        if credential_store.clear_api_key(clear_provider):
            typer.echo(f"Stored {clear_provider} API key cleared from secure credential storage.")
        else:
            typer.echo(f"No stored {clear_provider} API key found in secure credential storage.")
        return

    availability = "available" if credential_store.is_available() else "unavailable"
    typer.echo(f"Secure credential storage: {availability}")
    for name in PROVIDER_CREDENTIAL_KEYS:
        status = "present" if credential_store.get_api_key(name) is not None else "not set"
        typer.echo(f"Stored {name} API key: {status}")


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
