"""Domain exceptions for pipeline, provider, and CLI diagnostics.

Responsibilities:
- Root every user-facing failure in `PipelineStageError` so the CLI can render
  `stage`, `detail`, and `hint` uniformly.
- Distinguish configuration, validation, transport, and provider failures so
  callers can decide whether a retry makes sense.

Key types:
- `ConfigurationError`, `ValidationError`: user must fix input, not retryable.
- `TransportError`, `ProviderError`: network and non-2xx provider failures.
- `GenerationFailedError`: script generation failed after credentials resolved.
- `ParseError`: every chapter-list decoder rejected the model output.
- `UploadRelayError`: every upload host rejected the audio.
- `PersistenceDegraded`: remote store write fell back to the local store.
- `RecordNotFoundError`: backend update/delete targeted an unknown id.
"""

from __future__ import annotations


class PipelineStageError(RuntimeError):
    """Raised when a specific pipeline stage fails."""

    retryable = False

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
    ) -> None:
        """Initialize a stage-scoped pipeline error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint


class ConfigurationError(PipelineStageError):
    """Raised when credentials or required provider settings are missing."""


class ValidationError(PipelineStageError):
    """Raised when a required user input is missing or malformed."""


class TransportError(PipelineStageError):
    """Raised when a provider could not be reached or timed out."""

    retryable = True

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        provider: str,
        failure_kind: str = "transport",
        hint: str | None = None,
    ) -> None:
        """Initialize transport failure metadata."""

        super().__init__(stage=stage, detail=detail, hint=hint)
        self.provider = provider
        self.failure_kind = failure_kind


class ProviderError(PipelineStageError):
    """Raised when a provider answered with a non-2xx status or malformed body."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        provider: str,
        status_code: int | None = None,
        failure_kind: str = "http_error",
        provider_code: str | None = None,
        hint: str | None = None,
    ) -> None:
        """Initialize provider failure metadata for stage-aware diagnostics."""

        super().__init__(stage=stage, detail=detail, hint=hint)
        self.provider = provider
        self.status_code = status_code
        self.failure_kind = failure_kind
        self.provider_code = provider_code

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        """Return whether the provider status suggests a transient failure."""

        if self.status_code is None:
            return False
        return self.status_code >= 500 or self.status_code == 429


class GenerationFailedError(PipelineStageError):
    """Raised when script generation fails for reasons other than configuration."""


class ParseError(PipelineStageError):
    """Raised when no chapter-list decoder accepted a model response."""

    def __init__(
        self,
        *,
        attempts: tuple[tuple[str, str], ...],
        stage: str = "chapter-list",
        hint: str | None = None,
    ) -> None:
        """Initialize with `(decoder_name, reason)` pairs for every failed decoder."""

        reasons = "; ".join(f"{name}: {reason}" for name, reason in attempts)
        super().__init__(
            stage=stage,
            detail=f"Could not parse chapter list ({reasons}).",
            hint=hint or "Retry the request; model output format is not guaranteed.",
        )
        self.attempts = attempts


class UploadRelayError(PipelineStageError):
    """Raised when every upload host failed to publish a file."""

    retryable = True

    def __init__(self, *, attempts: tuple[tuple[str, str], ...], stage: str = "upload") -> None:
        """Initialize with `(host_name, reason)` pairs for every failed host."""

        reasons = "; ".join(f"{name}: {reason}" for name, reason in attempts) or "no hosts configured"
        super().__init__(
            stage=stage,
            detail=f"Failed to upload audio to any hosting service. Errors: {reasons}",
            hint="Check network access, or configure a public Supabase Storage bucket.",
        )
        self.attempts = attempts


class PersistenceDegraded(RuntimeError):
    """Describes a remote store write that fell back to the local store.

    Instances are logged by the store layer and never raised to pipeline callers.
    """

    def __init__(self, *, operation: str, table: str, reason: str) -> None:
        """Capture the failed remote operation for diagnostics."""

        super().__init__(f"{operation} on `{table}` fell back to local store: {reason}")
        self.operation = operation
        self.table = table
        self.reason = reason


class RecordNotFoundError(LookupError):
    """Raised by record backends when an update or delete targets an unknown id."""

    def __init__(self, table: str, record_id: str) -> None:
        """Capture table and id of the missing record."""

        super().__init__(f"No `{table}` record with id `{record_id}`.")
        self.table = table
        self.record_id = record_id
