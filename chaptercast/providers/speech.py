"""Text-to-speech synthesis through ElevenLabs.

Responsibilities:
- Send text-to-speech requests for a project voice.
- Write synthesized audio to a process-local scratch file and return its
  `file://` handle alongside the bytes.
"""

from __future__ import annotations

from pathlib import Path
import tempfile
from typing import Protocol
from uuid import uuid4

from ..errors import ConfigurationError, ValidationError
from ..models.datatypes import SpeechResult
from .http_client import ProviderHTTPClient


class SpeechProvider(Protocol):
    """Protocol for speech providers used by the orchestrator."""

    def synthesize(self, text: str, voice_id: str) -> SpeechResult:
        """Return encoded audio and a process-local playable handle."""


class ElevenLabsClient(ProviderHTTPClient):
    """Minimal requests-based ElevenLabs text-to-speech client."""

    provider_name = "elevenlabs"
    display_name = "ElevenLabs"
    api_key_hint = (
        "Set `ELEVENLABS_API_KEY`, pass `--elevenlabs-api-key`, or run "
        "`chaptercast credentials --set elevenlabs`."
    )

    def __init__(
        self,
        *,
        api_key: str | None,
        base_url: str = "https://api.elevenlabs.io/v1",
        timeout_seconds: float = 180.0,
    ) -> None:
        """Initialize ElevenLabs HTTP client settings."""

        super().__init__(api_key=api_key, base_url=base_url, timeout_seconds=timeout_seconds)

    def _auth_headers(self) -> dict[str, str]:
        return {"xi-api-key": self.api_key}

    def text_to_speech(
        self,
        *,
        text: str,
        voice_id: str,
        model_id: str,
        stability: float = 0.5,
        similarity_boost: float = 0.5,
    ) -> bytes:
        """Return MPEG audio bytes for `text` spoken by `voice_id`."""

        self._require_api_key("audio")
        audio = self._request_bytes(
            "POST",
            f"/text-to-speech/{voice_id}",
            stage="audio",
            json={
                "text": text,
                "model_id": model_id,
                "voice_settings": {
                    "stability": stability,
                    "similarity_boost": similarity_boost,
                },
            },
            headers={"Accept": "audio/mpeg", "Content-Type": "application/json"},
        )
        if not audio:
            raise self._malformed("audio", "ElevenLabs speech response is empty.")
        return audio


class SpeechSynthesizer:
    """Synthesize narration audio and keep a local scratch copy for playback."""

    def __init__(
        self,
        model: str = "eleven_monolingual_v1",
        api_key: str | None = None,
        scratch_dir: Path | None = None,
        client: ElevenLabsClient | None = None,
    ) -> None:
        """Initialize ElevenLabs-backed synthesizer settings."""

        self.model = model
        self.client = client if client is not None else ElevenLabsClient(api_key=api_key)
        self.scratch_dir = scratch_dir

    def synthesize(self, text: str, voice_id: str) -> SpeechResult:
        """Synthesize `text` and return audio bytes with a `file://` handle."""

        if not voice_id or not voice_id.strip():
            raise ConfigurationError(
                stage="audio",
                detail="Project has no voice id configured.",
                hint="Set one with `chaptercast update-project --voice-id <id>`.",
            )
        if not text.strip():
            raise ValidationError(stage="audio", detail="Script is empty; nothing to narrate.")

        audio_bytes = self.client.text_to_speech(
            text=text,
            voice_id=voice_id.strip(),
            model_id=self.model,
        )
        return SpeechResult(audio_bytes=audio_bytes, local_url=self._write_scratch(audio_bytes))

    def _write_scratch(self, audio_bytes: bytes) -> str:
        """Write audio to a scratch file and return its `file://` URI."""

        root = self.scratch_dir or Path(tempfile.gettempdir()) / "chaptercast"
        root.mkdir(parents=True, exist_ok=True)
        path = root / f"narration-{uuid4().hex}.mp3"
        path.write_bytes(audio_bytes)
        return path.resolve().as_uri()
