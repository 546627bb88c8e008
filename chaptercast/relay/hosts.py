"""Upload hosts that turn audio bytes into publicly fetchable URLs.

Responsibilities:
- Publish to a Supabase Storage bucket and warn when the public URL does not
  answer a HEAD probe.
- Publish to anonymous ephemeral hosts (0x0.st, tmpfiles.org, file.io) and
  normalize each host's response into one HTTPS URL.

Every host raises on failure; `UploadRelay` records the reason and moves on.
"""

from __future__ import annotations

import json
from typing import Protocol

import requests
from supabase import Client

from ..telemetry.logger import log_event

_USER_AGENT = "chaptercast/0.1"


class UploadHostError(RuntimeError):
    """Raised when a host answered but did not yield a usable URL."""


class UploadHost(Protocol):
    """One candidate host in the relay chain."""

    name: str

    def upload(self, data: bytes, mime_type: str, filename: str) -> str:
        """Upload bytes and return a public URL."""


def _error_snippet(response: requests.Response) -> str:
    """Return `<status> <first 200 chars of body>` for diagnostics."""

    text = " ".join(response.text.split())[:200]
    return f"{response.status_code} {text}".strip()


class SupabaseBucketHost:
    """Supabase Storage bucket; the bucket must be public for providers to fetch."""

    name = "supabase"

    def __init__(
        self,
        client: Client,
        bucket: str = "audio-files",
        probe_timeout_seconds: float = 10.0,
    ) -> None:
        """Bind a Supabase client and bucket name."""

        self._client = client
        self.bucket = bucket
        self.probe_timeout_seconds = probe_timeout_seconds

    def upload(self, data: bytes, mime_type: str, filename: str) -> str:
        """Upload into the bucket, read back the public URL, and probe it."""

        storage = self._client.storage.from_(self.bucket)
        storage.upload(filename, data, {"content-type": mime_type, "upsert": "false"})
        public_url = (storage.get_public_url(filename) or "").strip().rstrip("?")
        if not public_url:
            raise UploadHostError("Failed to get public URL")
        self._probe(public_url)
        return public_url

    def _probe(self, url: str) -> None:
        """Warn when the public URL is not reachable; never raises."""

        try:
            response = requests.head(url, timeout=self.probe_timeout_seconds, allow_redirects=True)
        except requests.RequestException as exc:
            log_event(
                "WARNING",
                "relay",
                "bucket_probe_failed",
                bucket=self.bucket,
                error_type=type(exc).__name__,
            )
            return
        if not 200 <= response.status_code < 300:
            log_event(
                "WARNING",
                "relay",
                "bucket_not_public",
                bucket=self.bucket,
                status=response.status_code,
            )


class ZeroXZeroHost:
    """0x0.st: multipart upload, plain-text URL response."""

    name = "0x0.st"

    def __init__(self, url: str = "https://0x0.st", timeout_seconds: float = 60.0) -> None:
        """Initialize endpoint and timeout."""

        self.url = url
        self.timeout_seconds = timeout_seconds

    def upload(self, data: bytes, mime_type: str, filename: str) -> str:
        """Upload and return the URL printed in the response body."""

        response = requests.post(
            self.url,
            files={"file": (filename, data, mime_type)},
            headers={"User-Agent": _USER_AGENT},
            timeout=self.timeout_seconds,
        )
        if not response.ok:
            raise UploadHostError(_error_snippet(response))
        url = response.text.strip()
        if not url.startswith("http"):
            raise UploadHostError("Response did not contain a URL")
        return url


class TmpFilesHost:
    """tmpfiles.org: JSON response whose download link may be plain `http://`."""

    name = "tmpfiles.org"

    def __init__(
        self,
        url: str = "https://tmpfiles.org/api/v1/upload",
        timeout_seconds: float = 60.0,
    ) -> None:
        """Initialize endpoint and timeout."""

        self.url = url
        self.timeout_seconds = timeout_seconds

    def upload(self, data: bytes, mime_type: str, filename: str) -> str:
        """Upload and return the download URL forced to HTTPS."""

        response = requests.post(
            self.url,
            files={"file": (filename, data, mime_type)},
            timeout=self.timeout_seconds,
        )
        if not response.ok:
            raise UploadHostError(_error_snippet(response))
        try:
            payload = response.json()
        except ValueError as exc:
            raise UploadHostError("Invalid JSON response") from exc
        if not isinstance(payload, dict):
            raise UploadHostError("Response is not a JSON object")
        data_section = payload.get("data")
        url = data_section.get("url") if isinstance(data_section, dict) else None
        if payload.get("status") != "success" or not isinstance(url, str) or not url:
            raise UploadHostError("Response missing download URL")
        if url.startswith("http://"):
            url = "https://" + url[len("http://"):]
        return url


class FileIoHost:
    """file.io with one-day expiry; may answer with an HTML error page."""

    name = "file.io"

    def __init__(
        self,
        url: str = "https://file.io",
        expires: str = "1d",
        timeout_seconds: float = 60.0,
    ) -> None:
        """Initialize endpoint, expiry, and timeout."""

        self.url = url
        self.expires = expires
        self.timeout_seconds = timeout_seconds

    def upload(self, data: bytes, mime_type: str, filename: str) -> str:
        """Upload and return the link from a JSON body."""

        response = requests.post(
            self.url,
            params={"expires": self.expires},
            files={"file": (filename, data, mime_type)},
            timeout=self.timeout_seconds,
        )
        if not response.ok:
            raise UploadHostError(_error_snippet(response))
        body = response.text.strip()
        if not body.startswith("{"):
            raise UploadHostError("HTML response")
        try:
            payload = json.loads(body)
        except json.JSONDecodeError as exc:
            raise UploadHostError("JSON parse error") from exc
        if not isinstance(payload, dict):
            raise UploadHostError("Invalid response")
        link = payload.get("link")
        if not payload.get("success") or not isinstance(link, str) or not link:
            raise UploadHostError("Invalid response")
        return link
