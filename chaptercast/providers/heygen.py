"""HeyGen avatar video adapter.

Responsibilities:
- Upload reference images to the HeyGen asset store and return image keys.
- Submit avatar renders bound to one image key and one public audio URL.
- Poll render status and normalize it to the pipeline status domain.
- Attach submission hints that tell apart unreachable audio, bad references,
  bad credentials, and provider outages.
"""

from __future__ import annotations

from typing import Any, Protocol

import requests

from ..errors import ValidationError
from ..models.datatypes import RenderStatus, RenderSubmission, StatusReport
from ..telemetry.logger import log_event
from .http_client import ProviderHTTPClient
from .status import normalize_render_status


class AvatarVideoProvider(Protocol):
    """Protocol for avatar video providers used by the orchestrator."""

    def upload_image(self, data: bytes, mime_type: str) -> str:
        """Upload a reference image and return its opaque image key."""

    def request_render(
        self, image_key: str, script: str, audio_url: str, title: str
    ) -> RenderSubmission:
        """Submit one render job."""

    def poll_status(self, external_job_id: str) -> StatusReport:
        """Return the current status of one render job."""


def _first_string(*values: object) -> str | None:
    """Return the first non-blank string among candidates."""

    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _data_section(payload: Any) -> dict[str, Any]:
    """Return the `data` object of a HeyGen envelope, or an empty mapping."""

    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return payload["data"]
    return {}


class HeyGenClient(ProviderHTTPClient):
    """Requests-based HeyGen client for asset upload, render submit, and status."""

    provider_name = "heygen"
    display_name = "HeyGen"
    api_key_hint = (
        "Check your HeyGen API key: set `HEYGEN_API_KEY`, pass `--heygen-api-key`, "
        "or run `chaptercast credentials --set heygen`."
    )

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://api.heygen.com",
        upload_url: str = "https://upload.heygen.com/v1/asset",
        timeout_seconds: float = 30.0,
        probe_timeout_seconds: float = 10.0,
        video_orientation: str = "landscape",
    ) -> None:
        """Initialize HeyGen endpoints and timeouts."""

        super().__init__(api_key=api_key, base_url=base_url, timeout_seconds=timeout_seconds)
        self.upload_url = upload_url
        self.probe_timeout_seconds = probe_timeout_seconds
        self.video_orientation = video_orientation

    def _auth_headers(self) -> dict[str, str]:
        return {"X-Api-Key": self.api_key}

    def _hint_for_failure(self, failure_kind: str, status_code: int | None) -> str | None:
        """Map submission failures to actionable HeyGen hints."""

        if failure_kind == "timeout":
            return (
                "HeyGen did not answer in time; the audio URL might not be publicly "
                "reachable. Verify it opens in a browser and retry."
            )
        if status_code == 400:
            return "HeyGen rejected the request; check the project's image keys and the audio URL."
        if status_code in {401, 403} or failure_kind == "invalid_api_key":
            return self.api_key_hint
        if status_code is not None and status_code >= 500:
            return (
                "HeyGen could not fetch the audio file or is temporarily down. Make sure "
                "the audio URL is public and retry."
            )
        return super()._hint_for_failure(failure_kind, status_code)

    def upload_image(self, data: bytes, mime_type: str) -> str:
        """Upload image bytes to the asset store and return the image key."""

        self._require_api_key("image-upload")
        if not data:
            raise ValidationError(stage="image-upload", detail="Image file is empty.")
        payload = self._decode_json(
            self._request_bytes(
                "POST",
                self.upload_url,
                stage="image-upload",
                data=data,
                headers={"Content-Type": mime_type},
            ),
            "image-upload",
        )
        data_section = _data_section(payload)
        image_key = _first_string(data_section.get("image_key"), data_section.get("id"))
        if image_key is None:
            raise self._malformed("image-upload", "HeyGen asset response has no `image_key`.")
        return image_key

    def probe_audio_url(self, audio_url: str) -> bool:
        """HEAD-probe an audio URL, logging the outcome; never raises."""

        try:
            response = requests.head(
                audio_url, timeout=self.probe_timeout_seconds, allow_redirects=True
            )
        except requests.Timeout:
            log_event("WARNING", "heygen", "audio_probe_timeout", url=audio_url)
            return False
        except requests.RequestException as exc:
            log_event("WARNING", "heygen", "audio_probe_failed", url=audio_url, error_type=type(exc).__name__)
            return False
        if not 200 <= response.status_code < 300:
            log_event("WARNING", "heygen", "audio_probe_status", url=audio_url, status=response.status_code)
            return False
        return True

    def request_render(
        self, image_key: str, script: str, audio_url: str, title: str
    ) -> RenderSubmission:
        """Submit one avatar render and return the external job id and status."""

        if not image_key or not image_key.strip():
            raise ValidationError(stage="video", detail="Reference image key is required.")
        if not script or not script.strip():
            raise ValidationError(stage="video", detail="Script is required to render a video.")
        if not audio_url or not audio_url.strip():
            raise ValidationError(stage="video", detail="Public audio URL is required.")
        self._require_api_key("video")

        self.probe_audio_url(audio_url)
        payload = self._decode_json(
            self._request_bytes(
                "POST",
                "/v2/video/av4/generate",
                stage="video",
                json={
                    "image_key": image_key.strip(),
                    "video_title": title or "Generated Video",
                    "script": script,
                    "audio_url": audio_url,
                    "video_orientation": self.video_orientation,
                },
                headers={"Content-Type": "application/json"},
            ),
            "video",
        )
        data_section = _data_section(payload)
        top_level = payload if isinstance(payload, dict) else {}
        job_id = _first_string(
            data_section.get("video_id"), top_level.get("video_id"), data_section.get("id")
        )
        if job_id is None:
            raise self._malformed("video", "HeyGen render response has no `video_id`.")
        raw_status = _first_string(data_section.get("status"), top_level.get("status"))
        status = normalize_render_status(raw_status) if raw_status else RenderStatus.PROCESSING
        return RenderSubmission(external_job_id=job_id, status=status)

    def poll_status(self, external_job_id: str) -> StatusReport:
        """Return the normalized status and video URL of one render."""

        self._require_api_key("render-status")
        payload = self._decode_json(
            self._request_bytes(
                "GET",
                "/v1/video_status.get",
                stage="render-status",
                params={"video_id": external_job_id},
            ),
            "render-status",
        )
        data_section = _data_section(payload)
        top_level = payload if isinstance(payload, dict) else {}
        if data_section.get("error"):
            log_event("WARNING", "heygen", "render_error", job_id=external_job_id)
        status = normalize_render_status(
            _first_string(data_section.get("status"), top_level.get("status"))
        )
        video_url = _first_string(
            data_section.get("video_url"),
            data_section.get("url"),
            top_level.get("video_url"),
            top_level.get("url"),
        )
        return StatusReport(
            status=status,
            video_url=video_url if status is RenderStatus.COMPLETED else None,
        )
