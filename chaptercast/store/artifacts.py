"""Typed artifact store facade over a record backend.

Responsibilities:
- Expose project and render-job CRUD in domain types.
- Never raise to the caller on create/update: an update on an unknown id
  returns a synthesized record so the pipeline keeps operating optimistically.
- Cascade project deletion to the project's render jobs.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from ..errors import RecordNotFoundError
from ..models.datatypes import Project, RenderJob
from ..telemetry.logger import log_event
from .backends import MonotonicClock, Record, RecordStore


def _serialize_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Convert enum values into their stored string form."""

    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in fields.items()
    }


class ArtifactStore:
    """Project and render-job persistence used by the pipeline orchestrator."""

    def __init__(
        self,
        backend: RecordStore,
        *,
        projects_table: str = "projects",
        render_jobs_table: str = "render_jobs",
        clock: MonotonicClock | None = None,
    ) -> None:
        """Initialize the facade with a backend chosen once at startup."""

        self.backend = backend
        self.projects_table = projects_table
        self.render_jobs_table = render_jobs_table
        self._clock = clock or MonotonicClock()

    def _update(self, table: str, record_id: str, fields: Mapping[str, Any]) -> Record:
        """Update a row, synthesizing one when the id is unknown."""

        payload = _serialize_fields(fields)
        try:
            return self.backend.update(table, record_id, payload)
        except RecordNotFoundError:
            log_event("WARNING", "store", "update_unknown_id", table=table, record_id=record_id)
            return {**payload, "id": record_id, "updated_at": self._clock.now()}

    def list_projects(self) -> list[Project]:
        """Return all projects ordered by creation time."""

        return [Project.from_record(row) for row in self.backend.list(self.projects_table)]

    def get_project(self, project_id: str) -> Project:
        """Return one project by id.

        Raises:
            RecordNotFoundError: If the project does not exist.
        """

        for project in self.list_projects():
            if project.id == project_id:
                return project
        raise RecordNotFoundError(self.projects_table, project_id)

    def create_project(self, fields: Mapping[str, Any]) -> Project:
        """Persist a new project."""

        return Project.from_record(self.backend.create(self.projects_table, _serialize_fields(fields)))

    def update_project(self, project_id: str, fields: Mapping[str, Any]) -> Project:
        """Apply a field-level partial update to a project."""

        return Project.from_record(self._update(self.projects_table, project_id, fields))

    def delete_project(self, project_id: str) -> list[str]:
        """Delete a project and its render jobs, returning the deleted job ids."""

        job_ids = [job.id for job in self.list_render_jobs(project_id)]
        for job_id in job_ids:
            self.backend.delete(self.render_jobs_table, job_id)
        self.backend.delete(self.projects_table, project_id)
        return job_ids

    def list_render_jobs(self, project_id: str | None = None) -> list[RenderJob]:
        """Return render jobs ordered by creation time, optionally for one project."""

        jobs = [RenderJob.from_record(row) for row in self.backend.list(self.render_jobs_table)]
        if project_id is None:
            return jobs
        return [job for job in jobs if job.project_id == project_id]

    def create_render_job(self, fields: Mapping[str, Any]) -> RenderJob:
        """Persist a new render job."""

        return RenderJob.from_record(
            self.backend.create(self.render_jobs_table, _serialize_fields(fields))
        )

    def update_render_job(
        self,
        job_id: str,
        fields: Mapping[str, Any],
        base: RenderJob | None = None,
    ) -> RenderJob:
        """Apply a partial update to a render job.

        When the backend does not know the id, the synthesized result is laid
        over `base` (if given) so callers keep a complete record.
        """

        record = self._update(self.render_jobs_table, job_id, fields)
        if base is not None and "project_id" not in record:
            base_record = {
                "project_id": base.project_id,
                "chapter_number": base.chapter_number,
                "chapter_title": base.chapter_title,
                "angle": base.angle,
                "script": base.script,
                "audio_url": base.audio_url,
                "external_job_id": base.external_job_id,
                "status": base.status.value,
                "video_url": base.video_url,
                "audio_error": base.audio_error,
                "created_at": base.created_at,
            }
            record = {**base_record, **record}
        return RenderJob.from_record(record)

    def delete_render_job(self, job_id: str) -> None:
        """Delete one render job."""

        self.backend.delete(self.render_jobs_table, job_id)
