"""Configuration model and loaders for Chaptercast.

Responsibilities:
- Define runtime configuration as a typed dataclass.
- Provide deterministic precedence resolution for provider credentials and models.
- Provide loader entry points for file- and environment-based configuration.

Key types:
- `ChaptercastConfig`: normalized settings for one CLI invocation.
- `ProviderRuntimeConfig`: resolved provider credentials and model values.
- `RuntimeConfigSources`: optional value sources for precedence resolution.
- `ConfigLoader`: static construction helpers for `ChaptercastConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .parsing import (
    normalize_optional_string,
    parse_positive_float,
    parse_required_positive_int,
)


_DEFAULT_DATA_DIR = Path("~/.chaptercast")
_DEFAULT_SCRIPT_MODEL = "gpt-5.1"
_DEFAULT_CHAPTER_MODEL = "gpt-4o-mini"
_DEFAULT_TTS_MODEL = "eleven_monolingual_v1"
_DEFAULT_AUDIO_BUCKET = "audio-files"
_DEFAULT_POLL_INTERVAL_SECONDS = 5.0
_DEFAULT_POLL_MAX_ATTEMPTS = 240

# Runtime key -> environment variable consulted after CLI and secure storage.
_RUNTIME_ENV_KEYS: dict[str, str] = {
    "model_script": "CHAPTERCAST_MODEL_SCRIPT",
    "model_chapters": "CHAPTERCAST_MODEL_CHAPTERS",
    "tts_model": "CHAPTERCAST_TTS_MODEL",
    "openai_api_key": "OPENAI_API_KEY",
    "elevenlabs_api_key": "ELEVENLABS_API_KEY",
    "heygen_api_key": "HEYGEN_API_KEY",
    "supabase_url": "SUPABASE_URL",
    "supabase_key": "SUPABASE_ANON_KEY",
}


@dataclass(frozen=True, slots=True)
class RuntimeConfigSources:
    """Source mappings used for deterministic runtime value precedence.

    Attributes:
        cli: Values explicitly provided by CLI arguments.
        secure: Values loaded from secure local credential storage.
        env: Values loaded from environment variables.
    """

    cli: Mapping[str, str] = field(default_factory=dict)
    secure: Mapping[str, str] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProviderRuntimeConfig:
    """Resolved provider credentials and model identifiers for one invocation.

    Attributes:
        model_script: Chat model for the two-pass script generation.
        model_chapters: Chat model for chapter list suggestions.
        tts_model: Speech provider model identifier.
        openai_api_key: Script provider credential.
        elevenlabs_api_key: Speech provider credential.
        heygen_api_key: Avatar video provider credential.
        supabase_url: Remote record store URL; local-only mode when absent.
        supabase_key: Remote record store anon key.
    """

    model_script: str
    model_chapters: str
    tts_model: str
    openai_api_key: str | None = None
    elevenlabs_api_key: str | None = None
    heygen_api_key: str | None = None
    supabase_url: str | None = None
    supabase_key: str | None = None

    @property
    def remote_store_enabled(self) -> bool:
        """Return whether both Supabase URL and key are available."""

        return bool(self.supabase_url and self.supabase_key)

    def as_display_metadata(self) -> dict[str, str]:
        """Return non-secret runtime metadata safe to print."""

        return {
            "model_script": self.model_script,
            "model_chapters": self.model_chapters,
            "tts_model": self.tts_model,
            "store": "supabase" if self.remote_store_enabled else "local",
        }


@dataclass(slots=True)
class ChaptercastConfig:
    """Settings for one Chaptercast invocation.

    Attributes:
        data_dir: Directory for the local JSON store and scratch audio.
        supabase_url: Optional Supabase project URL.
        supabase_key: Optional Supabase anon key.
        audio_bucket: Supabase storage bucket tried first by the upload relay.
        model_script: Script generation model identifier.
        model_chapters: Chapter list model identifier.
        tts_model: Speech provider model identifier.
        poll_interval_seconds: Delay between render status polls.
        poll_max_attempts: Poll ceiling per render job.
        openai_api_key: Optional OpenAI key.
        elevenlabs_api_key: Optional ElevenLabs key.
        heygen_api_key: Optional HeyGen key.
        runtime_sources: Optional runtime source overrides injected by CLI.
    """

    data_dir: Path = _DEFAULT_DATA_DIR
    supabase_url: str | None = None
    supabase_key: str | None = None
    audio_bucket: str = _DEFAULT_AUDIO_BUCKET
    model_script: str = _DEFAULT_SCRIPT_MODEL
    model_chapters: str = _DEFAULT_CHAPTER_MODEL
    tts_model: str = _DEFAULT_TTS_MODEL
    poll_interval_seconds: float = _DEFAULT_POLL_INTERVAL_SECONDS
    poll_max_attempts: int = _DEFAULT_POLL_MAX_ATTEMPTS
    openai_api_key: str | None = None
    elevenlabs_api_key: str | None = None
    heygen_api_key: str | None = None
    runtime_sources: RuntimeConfigSources = field(default_factory=RuntimeConfigSources)

    @property
    def resolved_data_dir(self) -> Path:
        """Return the data directory with `~` expanded."""

        return self.data_dir.expanduser()

    def validate(self) -> None:
        """Validate configuration values before building the pipeline."""

        self._require_non_empty(self.audio_bucket, "audio_bucket")
        self._require_non_empty(self.model_script, "model_script")
        self._require_non_empty(self.model_chapters, "model_chapters")
        self._require_non_empty(self.tts_model, "tts_model")
        if self.poll_interval_seconds <= 0:
            raise ValueError("`poll_interval_seconds` must be a positive number.")
        if self.poll_max_attempts <= 0:
            raise ValueError("`poll_max_attempts` must be a positive integer.")

    def resolved_provider_runtime(
        self, sources: RuntimeConfigSources | None = None
    ) -> ProviderRuntimeConfig:
        """Resolve credentials and models with deterministic source precedence.

        Precedence for each key is:
        `cli` > `secure` > `env` > config field value.
        """

        resolved_sources = sources if sources is not None else self.runtime_sources

        def resolve(key: str) -> str | None:
            return self._resolve_runtime_value(
                key=key,
                env_key=_RUNTIME_ENV_KEYS[key],
                default_value=getattr(self, key),
                sources=resolved_sources,
            )

        resolved = ProviderRuntimeConfig(
            model_script=resolve("model_script") or _DEFAULT_SCRIPT_MODEL,
            model_chapters=resolve("model_chapters") or _DEFAULT_CHAPTER_MODEL,
            tts_model=resolve("tts_model") or _DEFAULT_TTS_MODEL,
            openai_api_key=resolve("openai_api_key"),
            elevenlabs_api_key=resolve("elevenlabs_api_key"),
            heygen_api_key=resolve("heygen_api_key"),
            supabase_url=resolve("supabase_url"),
            supabase_key=resolve("supabase_key"),
        )
        if bool(resolved.supabase_url) != bool(resolved.supabase_key):
            raise ValueError(
                "`supabase_url` and `supabase_key` must be configured together."
            )
        return resolved

    def _resolve_runtime_value(
        self,
        key: str,
        env_key: str,
        default_value: str | None,
        sources: RuntimeConfigSources,
    ) -> str | None:
        """Resolve an optional runtime value from sources in deterministic order."""

        cli_value = self._normalized_lookup(sources.cli, key)
        if cli_value is not None:
            return cli_value

        secure_value = self._normalized_lookup(sources.secure, key)
        if secure_value is not None:
            return secure_value

        env_value = self._normalized_lookup(sources.env, env_key)
        if env_value is not None:
            return env_value

        return normalize_optional_string(default_value)

    @staticmethod
    def _normalized_lookup(mapping: Mapping[str, str], key: str) -> str | None:
        """Return a stripped mapping value for a key or `None` when missing/blank."""

        if key not in mapping:
            return None
        return normalize_optional_string(mapping.get(key))

    @staticmethod
    def _require_non_empty(value: str, field_name: str) -> None:
        """Validate that string fields are not empty."""

        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"`{field_name}` must be a non-empty string.")


class ConfigLoader:
    """Factory methods for creating `ChaptercastConfig` from external sources."""

    _SUPPORTED_YAML_KEYS = frozenset(
        {
            "data_dir",
            "supabase_url",
            "supabase_key",
            "audio_bucket",
            "model_script",
            "model_chapters",
            "tts_model",
            "poll_interval_seconds",
            "poll_max_attempts",
            "openai_api_key",
            "elevenlabs_api_key",
            "heygen_api_key",
        }
    )

    @staticmethod
    def from_yaml(path: Path) -> ChaptercastConfig:
        """Create a validated config from a YAML file."""

        payload = ConfigLoader._parse_yaml_payload(path.read_text(encoding="utf-8"), path)
        return ConfigLoader._build_config_from_mapping(payload, source_label=f"YAML `{path}`")

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> ChaptercastConfig:
        """Create a validated config from environment variables.

        Credential and model variables are also captured as the `env` runtime
        source so CLI and keyring values can still take precedence.
        """

        env_map: Mapping[str, str] = os.environ if env is None else env

        data_dir = ConfigLoader._optional_env_string(env_map, "CHAPTERCAST_DATA_DIR")
        audio_bucket = ConfigLoader._optional_env_string(env_map, "CHAPTERCAST_AUDIO_BUCKET")
        poll_interval = ConfigLoader._optional_env_number(
            env_map, "CHAPTERCAST_POLL_INTERVAL_SECONDS", parse_positive_float
        )
        poll_attempts = ConfigLoader._optional_env_number(
            env_map, "CHAPTERCAST_POLL_MAX_ATTEMPTS", parse_required_positive_int
        )

        runtime_env = ConfigLoader.runtime_env(env_map)

        config = ChaptercastConfig(
            data_dir=Path(data_dir) if data_dir else _DEFAULT_DATA_DIR,
            audio_bucket=audio_bucket or _DEFAULT_AUDIO_BUCKET,
            poll_interval_seconds=poll_interval or _DEFAULT_POLL_INTERVAL_SECONDS,
            poll_max_attempts=poll_attempts or _DEFAULT_POLL_MAX_ATTEMPTS,
            runtime_sources=RuntimeConfigSources(env=runtime_env),
        )
        config.validate()
        return config

    @staticmethod
    def runtime_env(env: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return non-blank credential and model environment variables."""

        env_map: Mapping[str, str] = os.environ if env is None else env
        return {
            env_key: value
            for env_key, value in env_map.items()
            if env_key in _RUNTIME_ENV_KEYS.values()
            and normalize_optional_string(value) is not None
        }

    @staticmethod
    def _parse_yaml_payload(raw_text: str, path: Path) -> Mapping[str, Any]:
        """Parse YAML text and enforce a mapping root payload."""

        try:
            payload = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ValueError(f"YAML config `{path}` could not be parsed: {exc}") from exc

        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML config `{path}` must contain a top-level mapping/object.")
        return payload

    @staticmethod
    def _build_config_from_mapping(
        payload: Mapping[str, Any], source_label: str
    ) -> ChaptercastConfig:
        """Build a validated config from a normalized mapping payload."""

        unknown = sorted(set(payload).difference(ConfigLoader._SUPPORTED_YAML_KEYS))
        if unknown:
            key_list = ", ".join(unknown)
            raise ValueError(f"{source_label} includes unsupported key(s): {key_list}.")

        def text(key: str) -> str | None:
            if key not in payload:
                return None
            return normalize_optional_string(payload[key])

        data_dir = text("data_dir")
        config = ChaptercastConfig(
            data_dir=Path(data_dir) if data_dir else _DEFAULT_DATA_DIR,
            supabase_url=text("supabase_url"),
            supabase_key=text("supabase_key"),
            audio_bucket=text("audio_bucket") or _DEFAULT_AUDIO_BUCKET,
            model_script=text("model_script") or _DEFAULT_SCRIPT_MODEL,
            model_chapters=text("model_chapters") or _DEFAULT_CHAPTER_MODEL,
            tts_model=text("tts_model") or _DEFAULT_TTS_MODEL,
            poll_interval_seconds=ConfigLoader._optional_number(
                payload,
                "poll_interval_seconds",
                source_label,
                parse_positive_float,
                _DEFAULT_POLL_INTERVAL_SECONDS,
            ),
            poll_max_attempts=ConfigLoader._optional_number(
                payload,
                "poll_max_attempts",
                source_label,
                parse_required_positive_int,
                _DEFAULT_POLL_MAX_ATTEMPTS,
            ),
            openai_api_key=text("openai_api_key"),
            elevenlabs_api_key=text("elevenlabs_api_key"),
            heygen_api_key=text("heygen_api_key"),
        )
        config.validate()
        return config

    @staticmethod
    def _optional_number(
        payload: Mapping[str, Any],
        key: str,
        source_label: str,
        parser: Any,
        default: Any,
    ) -> Any:
        """Read and validate a positive numeric payload field."""

        if key not in payload or normalize_optional_string(payload[key]) is None:
            return default
        try:
            return parser(payload[key], key)
        except ValueError as exc:
            raise ValueError(f"{source_label} field `{key}`: {exc}") from exc

    @staticmethod
    def _optional_env_string(env: Mapping[str, str], key: str) -> str | None:
        """Read and normalize optional string environment variable values."""

        if key not in env:
            return None
        return normalize_optional_string(env.get(key))

    @staticmethod
    def _optional_env_number(env: Mapping[str, str], key: str, parser: Any) -> Any:
        """Read an optional positive number from environment mapping."""

        raw_value = ConfigLoader._optional_env_string(env, key)
        if raw_value is None:
            return None
        try:
            return parser(raw_value, key)
        except ValueError as exc:
            raise ValueError(f"Environment variable `{key}`: {exc}") from exc
