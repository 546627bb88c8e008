"""Unit tests for ElevenLabs-backed speech synthesis."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from urllib.parse import urlparse
from urllib.request import url2pathname

import pytest

from chaptercast.errors import ConfigurationError, ProviderError, ValidationError
from chaptercast.providers import http_client as provider_http
from chaptercast.providers.speech import SpeechSynthesizer
from tests.fakes import MockRequestsResponse


def test_synthesize_posts_voice_request_and_writes_scratch_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    """Audio bytes should be returned and mirrored into a local scratch file."""

    captured: dict[str, Any] = {}

    def _fake_post(url: str, **kwargs: Any) -> MockRequestsResponse:
        captured["url"] = url
        captured.update(kwargs)
        return MockRequestsResponse(payload=b"ID3-mp3-bytes")

    monkeypatch.setattr(provider_http.requests, "post", _fake_post)

    synthesizer = SpeechSynthesizer(model="eleven_test", api_key="el-key", scratch_dir=tmp_path)
    result = synthesizer.synthesize("[calm] Call me Ishmael.", " voice-123 ")

    assert captured["url"] == "https://api.elevenlabs.io/v1/text-to-speech/voice-123"
    assert captured["headers"]["xi-api-key"] == "el-key"
    assert captured["headers"]["Accept"] == "audio/mpeg"
    assert captured["json"]["model_id"] == "eleven_test"
    assert captured["json"]["voice_settings"] == {"stability": 0.5, "similarity_boost": 0.5}
    assert result.audio_bytes == b"ID3-mp3-bytes"
    assert result.mime_type == "audio/mpeg"
    assert result.local_url.startswith("file://")
    scratch = Path(url2pathname(urlparse(result.local_url).path))
    assert scratch.parent == tmp_path.resolve()
    assert scratch.read_bytes() == b"ID3-mp3-bytes"


def test_synthesize_requires_voice_and_text(tmp_path: Path) -> None:
    """A missing voice id is a configuration problem; an empty script is invalid input."""

    synthesizer = SpeechSynthesizer(api_key="el-key", scratch_dir=tmp_path)

    with pytest.raises(ConfigurationError):
        synthesizer.synthesize("Hello.", "")
    with pytest.raises(ValidationError):
        synthesizer.synthesize("   ", "voice-123")


def test_synthesize_without_api_key_raises_configuration_error(tmp_path: Path) -> None:
    """Missing ElevenLabs credentials should fail at the audio stage."""

    with pytest.raises(ConfigurationError) as exc_info:
        SpeechSynthesizer(api_key="", scratch_dir=tmp_path).synthesize("Hello.", "voice-123")

    assert exc_info.value.stage == "audio"
    assert "ELEVENLABS_API_KEY" in (exc_info.value.hint or "")


def test_synthesize_rejects_empty_audio(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """An empty response body should be reported as malformed."""

    monkeypatch.setattr(
        provider_http.requests, "post", lambda url, **kwargs: MockRequestsResponse(payload=b"")
    )

    with pytest.raises(ProviderError) as exc_info:
        SpeechSynthesizer(api_key="el-key", scratch_dir=tmp_path).synthesize("Hello.", "voice-123")

    assert exc_info.value.failure_kind == "malformed_response"


def test_synthesize_maps_quota_errors(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Rate limits should be retryable provider errors with the provider message."""

    monkeypatch.setattr(
        provider_http.requests,
        "post",
        lambda url, **kwargs: MockRequestsResponse(
            payload={"detail": {"status": "too_many_requests", "message": "Too many concurrent requests"}},
            status_code=429,
        ),
    )

    with pytest.raises(ProviderError) as exc_info:
        SpeechSynthesizer(api_key="el-key", scratch_dir=tmp_path).synthesize("Hello.", "voice-123")

    error = exc_info.value
    assert error.failure_kind == "rate_limited"
    assert error.provider_code == "too_many_requests"
    assert error.retryable is True
    assert "Too many concurrent requests" in error.detail
