"""OpenAI chat-completions client for script and chapter-list generation.

Responsibilities:
- Send minimal chat-completions requests to OpenAI's REST API.
- Normalize assistant message extraction across content shapes.
"""

from __future__ import annotations

from typing import Any

from .http_client import ProviderHTTPClient


class OpenAIChatClient(ProviderHTTPClient):
    """Minimal requests-based OpenAI chat-completions HTTP client."""

    provider_name = "openai"
    display_name = "OpenAI"
    api_key_hint = (
        "Set `OPENAI_API_KEY`, pass `--openai-api-key`, or run "
        "`chaptercast credentials --set openai`."
    )

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 120.0,
    ) -> None:
        """Initialize OpenAI HTTP client settings."""

        super().__init__(api_key=api_key, base_url=base_url, timeout_seconds=timeout_seconds)

    def chat_completion_text(
        self,
        *,
        model: str,
        system_prompt: str,
        user_prompt: str,
        stage: str = "script",
        temperature: float | None = None,
        max_completion_tokens: int | None = None,
        response_format: dict[str, str] | None = None,
    ) -> str:
        """Return the first assistant text response from a chat-completions request."""

        self._require_api_key(stage)

        payload: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_completion_tokens is not None:
            payload["max_completion_tokens"] = max_completion_tokens
        if response_format is not None:
            payload["response_format"] = response_format

        raw_payload = self._request_bytes(
            "POST",
            "/chat/completions",
            stage=stage,
            json=payload,
            headers={"Content-Type": "application/json"},
        )
        return self._extract_message_text(self._decode_json(raw_payload, stage), stage)

    def _extract_message_text(self, payload: Any, stage: str) -> str:
        """Extract first assistant message text from a chat-completions payload."""

        if not isinstance(payload, dict):
            raise self._malformed(stage, "OpenAI response is not a JSON object.")

        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            raise self._malformed(stage, "OpenAI response missing non-empty `choices` list.")

        first_choice = choices[0]
        if not isinstance(first_choice, dict):
            raise self._malformed(stage, "OpenAI response `choices[0]` is malformed.")

        message = first_choice.get("message")
        if not isinstance(message, dict):
            raise self._malformed(stage, "OpenAI response missing `choices[0].message` object.")

        normalized = self._message_content_to_text(message.get("content")).strip()
        if not normalized:
            raise self._malformed(stage, "OpenAI response message content is empty.")
        return normalized

    @staticmethod
    def _message_content_to_text(content: Any) -> str:
        """Convert OpenAI message content variants into a plain text string."""

        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts: list[str] = []
            for item in content:
                if not isinstance(item, dict):
                    continue
                if item.get("type") == "text" and isinstance(item.get("text"), str):
                    parts.append(item["text"])
            return "".join(parts)
        return ""
