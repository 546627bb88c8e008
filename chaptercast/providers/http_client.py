"""Shared HTTP plumbing for provider adapters.

Responsibilities:
- Send `requests` calls with provider authentication and bounded timeouts.
- Map transport failures to `TransportError` and non-2xx responses to
  `ProviderError` with a short, redacted provider message.
- Let each adapter attach status-specific user hints.
"""

from __future__ import annotations

import json
import re
import socket
from typing import Any

import requests

from ..errors import ConfigurationError, ProviderError, TransportError


class ProviderHTTPClient:
    """Base `requests` client shared by OpenAI, ElevenLabs, and HeyGen adapters."""

    provider_name = "provider"
    display_name = "Provider"
    api_key_hint = "Configure the provider API key."
    _MAX_PROVIDER_MESSAGE_CHARS = 180

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str,
        timeout_seconds: float = 60.0,
    ) -> None:
        """Initialize provider HTTP settings."""

        self.api_key = api_key.strip() if isinstance(api_key, str) else ""
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds

    def _auth_headers(self) -> dict[str, str]:
        """Return authentication headers for this provider."""

        return {"Authorization": f"Bearer {self.api_key}"}

    def _require_api_key(self, stage: str) -> None:
        """Require API key presence before issuing provider requests."""

        if not self.api_key:
            raise ConfigurationError(
                stage=stage,
                detail=f"Missing {self.display_name} API key.",
                hint=self.api_key_hint,
            )

    def _request_bytes(
        self,
        method: str,
        url: str,
        *,
        stage: str,
        timeout_seconds: float | None = None,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> bytes:
        """Execute one HTTP request and return the raw response body.

        `url` may be absolute or a path relative to `base_url`.
        """

        endpoint = url if url.startswith(("http://", "https://")) else f"{self.base_url}{url}"
        request_headers = {**self._auth_headers(), **(headers or {})}
        send = getattr(requests, method.lower())
        try:
            response = send(
                endpoint,
                headers=request_headers,
                timeout=timeout_seconds if timeout_seconds is not None else self.timeout_seconds,
                **kwargs,
            )
            response.raise_for_status()
            return bytes(response.content)
        except requests.HTTPError as exc:
            raise self._http_error_to_provider_error(exc, stage) from exc
        except (requests.RequestException, TimeoutError, socket.timeout) as exc:
            failure_kind = self._classify_transport_failure(exc)
            if failure_kind == "timeout":
                detail = f"{self.display_name} request timed out."
            else:
                detail = (
                    f"{self.display_name} request transport error: "
                    f"{self._short_message(self._redact_sensitive_tokens(str(exc)))}"
                )
            raise TransportError(
                stage=stage,
                detail=detail,
                provider=self.provider_name,
                failure_kind=failure_kind,
                hint=self._hint_for_failure(failure_kind, None),
            ) from exc

    def _decode_json(self, raw_payload: bytes, stage: str) -> Any:
        """Decode a JSON response body or raise a malformed-response error."""

        try:
            return json.loads(raw_payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ProviderError(
                stage=stage,
                detail=f"{self.display_name} returned invalid JSON payload.",
                provider=self.provider_name,
                failure_kind="malformed_response",
            ) from exc

    def _malformed(self, stage: str, detail: str) -> ProviderError:
        """Build an error for a structurally unexpected provider response."""

        return ProviderError(
            stage=stage,
            detail=detail,
            provider=self.provider_name,
            failure_kind="malformed_response",
        )

    @staticmethod
    def _decode_error_body(exc: requests.HTTPError) -> str:
        """Decode an HTTP error body into a best-effort UTF-8 payload string."""

        response = exc.response
        if response is None:
            return ""
        try:
            return bytes(response.content).decode("utf-8", errors="replace").strip()
        except (TypeError, ValueError):
            return ""

    @classmethod
    def _redact_sensitive_tokens(cls, text: str) -> str:
        """Redact API-key-like tokens from provider error content."""

        redacted = re.sub(r"\bsk-[A-Za-z0-9_-]{8,}\b", "[redacted-key]", text)
        redacted = re.sub(
            r"(?i)bearer\s+[A-Za-z0-9._-]{12,}",
            "Bearer [redacted-token]",
            redacted,
        )
        redacted = re.sub(
            r"(?i)(api[_-]?key[\"'\s:=]+)[A-Za-z0-9._-]{12,}",
            r"\1[redacted-key]",
            redacted,
        )
        return redacted

    @classmethod
    def _short_message(cls, text: str) -> str:
        """Normalize and cap user-facing provider message length."""

        compact = " ".join(text.split())
        if len(compact) <= cls._MAX_PROVIDER_MESSAGE_CHARS:
            return compact
        return f"{compact[: cls._MAX_PROVIDER_MESSAGE_CHARS - 1]}..."

    @classmethod
    def _extract_provider_message(cls, body: str) -> tuple[str, str | None]:
        """Extract a concise provider message and optional provider error code.

        Accepted shapes: `{"error": {"message", "code"}}`, `{"error": "..."}`,
        `{"detail": {"message"}}`, `{"detail": "..."}`, and `{"message": "..."}`.
        """

        if not body:
            return "", None

        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return cls._short_message(cls._redact_sensitive_tokens(body)), None

        provider_code: str | None = None
        message: str | None = None
        if isinstance(payload, dict):
            for container_key in ("error", "detail"):
                container = payload.get(container_key)
                if isinstance(container, dict):
                    code_value = container.get("code") or container.get("status")
                    if isinstance(code_value, str) and code_value.strip():
                        provider_code = code_value.strip()
                    message_value = container.get("message")
                    if isinstance(message_value, str) and message_value.strip():
                        message = message_value.strip()
                        break
                elif isinstance(container, str) and container.strip():
                    message = container.strip()
                    break
            if message is None:
                message_value = payload.get("message")
                if isinstance(message_value, str) and message_value.strip():
                    message = message_value.strip()

        if message is None:
            message = body

        return cls._short_message(cls._redact_sensitive_tokens(message)), provider_code

    @staticmethod
    def _classify_http_failure(status_code: int, provider_message: str) -> str:
        """Classify HTTP errors into deterministic diagnostic kinds."""

        message_lower = provider_message.lower()
        if status_code in {401, 403} or "api key" in message_lower:
            return "invalid_api_key"
        if status_code == 429:
            return "rate_limited"
        if status_code in {408, 504} or "timeout" in message_lower or "timed out" in message_lower:
            return "timeout"
        if status_code >= 500:
            return "server_error"
        return "http_error"

    @staticmethod
    def _classify_transport_failure(reason: object) -> str:
        """Classify network-layer failures into deterministic diagnostic kinds."""

        if isinstance(reason, TimeoutError | socket.timeout | requests.Timeout):
            return "timeout"
        return "transport"

    def _hint_for_failure(self, failure_kind: str, status_code: int | None) -> str | None:
        """Return a user-facing hint for a failure; adapters override per provider."""

        if failure_kind == "invalid_api_key":
            return self.api_key_hint
        if failure_kind in {"timeout", "transport", "server_error", "rate_limited"}:
            return f"{self.display_name} may be temporarily unavailable; retry in a moment."
        return None

    def _http_error_to_provider_error(self, exc: requests.HTTPError, stage: str) -> ProviderError:
        """Convert HTTP errors into normalized provider exceptions with metadata."""

        status_code = exc.response.status_code if exc.response is not None else 0
        body = self._decode_error_body(exc)
        provider_message, provider_code = self._extract_provider_message(body)
        failure_kind = self._classify_http_failure(status_code, provider_message)

        headline = {
            "invalid_api_key": f"{self.display_name} authentication failed",
            "rate_limited": f"{self.display_name} rate limit reached",
            "timeout": f"{self.display_name} request timed out",
            "server_error": f"{self.display_name} server error",
        }.get(failure_kind, f"{self.display_name} request failed")

        if provider_message:
            detail = f"{headline} (HTTP {status_code}): {provider_message}"
        else:
            detail = f"{headline} (HTTP {status_code})."

        return ProviderError(
            stage=stage,
            detail=detail,
            provider=self.provider_name,
            status_code=status_code,
            failure_kind=failure_kind,
            provider_code=provider_code,
            hint=self._hint_for_failure(failure_kind, status_code),
        )
