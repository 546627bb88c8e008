"""Ordered-fallback publisher for narration audio.

Responsibilities:
- Try each configured upload host in order and stop at the first success.
- Accumulate every failed host's reason into one `UploadRelayError`.
- Re-read audio bytes from a surviving URL or local file handle.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname
from uuid import uuid4

import requests

from ..errors import TransportError, UploadRelayError, ValidationError
from ..telemetry.logger import log_event
from .hosts import UploadHost

_EXTENSIONS = {"audio/mpeg": "mp3", "audio/mp3": "mp3", "audio/wav": "wav", "audio/x-wav": "wav"}


def _upload_filename(mime_type: str) -> str:
    """Return a unique upload filename such as `audio-1700000000000-3f2a9c.mp3`."""

    extension = _EXTENSIONS.get(mime_type, "bin")
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    return f"audio-{millis}-{uuid4().hex[:6]}.{extension}"


class UploadRelay:
    """Publish bytes through the first host that accepts them."""

    def __init__(self, hosts: Sequence[UploadHost]) -> None:
        """Initialize the ordered host chain."""

        self.hosts = tuple(hosts)

    def publish(self, data: bytes, mime_type: str = "audio/mpeg") -> str:
        """Return a public URL for `data`.

        Raises:
            UploadRelayError: If every host failed; the message lists each reason.
        """

        if not data:
            raise ValidationError(stage="upload", detail="No audio bytes to upload.")

        filename = _upload_filename(mime_type)
        attempts: list[tuple[str, str]] = []
        for host in self.hosts:
            try:
                url = host.upload(data, mime_type, filename)
            except Exception as exc:
                reason = str(exc) or type(exc).__name__
                attempts.append((host.name, reason))
                log_event("WARNING", "relay", "host_failed", host=host.name, error_type=type(exc).__name__)
                continue
            log_event("INFO", "relay", "published", host=host.name, attempts=len(attempts) + 1)
            return url
        raise UploadRelayError(attempts=tuple(attempts))


def fetch_audio_bytes(url: str, timeout_seconds: float = 60.0) -> bytes:
    """Read audio bytes back from a `file://` handle or an HTTP(S) URL."""

    parsed = urlparse(url)
    if parsed.scheme == "file":
        path = Path(url2pathname(parsed.path))
        try:
            return path.read_bytes()
        except OSError as exc:
            raise ValidationError(
                stage="audio",
                detail=f"Local audio file is no longer available: `{path}`.",
                hint="Regenerate the chapter audio.",
            ) from exc

    if parsed.scheme not in {"http", "https"}:
        raise ValidationError(stage="audio", detail=f"Unsupported audio URL scheme `{parsed.scheme}`.")

    try:
        response = requests.get(url, timeout=timeout_seconds)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise TransportError(
            stage="audio",
            detail=f"Could not download stored audio: {type(exc).__name__}.",
            provider="relay",
            failure_kind="timeout" if isinstance(exc, requests.Timeout) else "transport",
            hint="The hosted audio may have expired; regenerate the chapter audio.",
        ) from exc
    return bytes(response.content)
