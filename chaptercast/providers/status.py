"""Avatar render status normalization.

The provider's status vocabulary is looser than the pipeline's four values,
so every raw string goes through one explicit table. Unknown values degrade
to `pending` with a logged warning instead of failing the poller.
"""

from __future__ import annotations

from ..models.datatypes import RenderStatus
from ..telemetry.logger import log_event

STATUS_TABLE: dict[str, RenderStatus] = {
    "waiting": RenderStatus.PENDING,
    "pending": RenderStatus.PENDING,
    "processing": RenderStatus.PROCESSING,
    "generating": RenderStatus.PROCESSING,
    "completed": RenderStatus.COMPLETED,
    "done": RenderStatus.COMPLETED,
    "success": RenderStatus.COMPLETED,
    "failed": RenderStatus.FAILED,
    "error": RenderStatus.FAILED,
    "cancelled": RenderStatus.FAILED,
}


def normalize_render_status(raw: object) -> RenderStatus:
    """Map a raw provider status onto the pipeline domain, case-insensitively."""

    token = str(raw).strip().lower() if raw is not None else ""
    status = STATUS_TABLE.get(token)
    if status is None:
        log_event("WARNING", "heygen", "unknown_status", raw=token or "none")
        return RenderStatus.PENDING
    return status
