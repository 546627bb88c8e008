"""Integration-test fixtures for deterministic provider behavior."""

from __future__ import annotations

import pytest

from tests.fakes import FakeCredentialStore

_ISOLATED_ENV_KEYS = (
    "OPENAI_API_KEY",
    "ELEVENLABS_API_KEY",
    "HEYGEN_API_KEY",
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "CHAPTERCAST_DATA_DIR",
    "CHAPTERCAST_AUDIO_BUCKET",
    "CHAPTERCAST_MODEL_SCRIPT",
    "CHAPTERCAST_MODEL_CHAPTERS",
    "CHAPTERCAST_TTS_MODEL",
    "CHAPTERCAST_POLL_INTERVAL_SECONDS",
    "CHAPTERCAST_POLL_MAX_ATTEMPTS",
)


@pytest.fixture(autouse=True)
def _isolate_runtime_sources(monkeypatch: pytest.MonkeyPatch) -> FakeCredentialStore:
    """Keep the developer's environment and keyring out of integration runs."""

    for key in _ISOLATED_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    store = FakeCredentialStore()
    monkeypatch.setattr("chaptercast.cli.create_credential_store", lambda: store)
    return store


@pytest.fixture
def credential_store(_isolate_runtime_sources: FakeCredentialStore) -> FakeCredentialStore:
    """Expose the in-memory credential store used by the CLI."""

    return _isolate_runtime_sources
