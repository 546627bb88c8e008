"""CLI provider runtime resolution helpers.

This module isolates config loading, runtime source assembly, hidden API-key
prompts, and secure API-key persistence from the command wiring layer.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Protocol

import typer

from .config import ChaptercastConfig, ConfigLoader, ProviderRuntimeConfig, RuntimeConfigSources
from .credentials import PROVIDER_CREDENTIAL_KEYS, create_credential_store
from .errors import PipelineStageError
from .parsing import normalize_optional_string

_PROVIDER_LABELS = {
    "openai": "OpenAI",
    "elevenlabs": "ElevenLabs",
    "heygen": "HeyGen",
}


class CredentialStoreProtocol(Protocol):
    """Protocol for secure credential store operations used by CLI runtime resolution."""

    def get_api_key(self, provider: str) -> str | None:
        """Return currently stored API key for `provider`, if available."""

    def set_api_key(self, provider: str, api_key: str) -> None:
        """Persist API key value for `provider` in secure storage."""


def load_base_config(config_path: Path | None, data_dir: Path | None = None) -> ChaptercastConfig:
    """Load YAML config when given, otherwise environment config, and apply `--data-dir`."""

    try:
        config = (
            ConfigLoader.from_yaml(config_path)
            if config_path is not None
            else ConfigLoader.from_env()
        )
    except FileNotFoundError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Config file not found: `{config_path}`.",
            hint="Provide an existing path via `--config <path.yaml>`.",
        ) from exc
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Invalid configuration: {exc}",
            hint="Fix config schema/values and rerun.",
        ) from exc

    if data_dir is not None:
        config.data_dir = data_dir
    return config


def _prompt_hidden(label: str) -> str | None:
    """Prompt for a secret with hidden input; blank input returns `None`."""

    return normalize_optional_string(
        typer.prompt(
            f"{label} API key (hidden; leave blank to skip)",
            default="",
            hide_input=True,
            show_default=False,
        )
    )


def resolve_provider_runtime_sources(
    api_keys: dict[str, str | None],
    prompt_api_keys: bool,
    store_api_keys: bool,
    credential_store_factory: Callable[[], CredentialStoreProtocol] = create_credential_store,
) -> tuple[dict[str, str], dict[str, str]]:
    """Resolve CLI and secure runtime source mappings for provider credentials.

    Args:
        api_keys: Provider id -> key passed on the command line.
        prompt_api_keys: Prompt (hidden input) for keys that are still missing.
        store_api_keys: Persist keys entered in this run to secure storage.
        credential_store_factory: Credential store constructor.

    Returns:
        `(cli_values, secure_values)` keyed by runtime config key.
    """

    runtime_cli_values: dict[str, str] = {}
    entered_providers: list[str] = []
    for provider, config_key in PROVIDER_CREDENTIAL_KEYS.items():
        normalized = normalize_optional_string(api_keys.get(provider))
        if normalized is not None:
            runtime_cli_values[config_key] = normalized
            entered_providers.append(provider)

    credential_store = credential_store_factory()
    runtime_secure_values: dict[str, str] = {}
    for provider, config_key in PROVIDER_CREDENTIAL_KEYS.items():
        stored = credential_store.get_api_key(provider)
        if stored is not None:
            runtime_secure_values[config_key] = stored

    if prompt_api_keys:
        for provider, config_key in PROVIDER_CREDENTIAL_KEYS.items():
            if config_key in runtime_cli_values or config_key in runtime_secure_values:
                continue
            prompted = _prompt_hidden(_PROVIDER_LABELS[provider])
            if prompted is not None:
                runtime_cli_values[config_key] = prompted
                entered_providers.append(provider)

    if store_api_keys:
        for provider in entered_providers:
            config_key = PROVIDER_CREDENTIAL_KEYS[provider]
            try:
                credential_store.set_api_key(provider, runtime_cli_values[config_key])
            except Exception as exc:
                raise PipelineStageError(
                    stage="credentials",
                    detail=f"Failed to store {_PROVIDER_LABELS[provider]} API key securely: {exc}",
                    hint=(
                        "Install and configure a keyring backend, or rerun with "
                        "`--no-store-api-keys` for one-off usage."
                    ),
                ) from exc
            typer.echo(f"Stored {_PROVIDER_LABELS[provider]} API key in secure credential storage.")

    return runtime_cli_values, runtime_secure_values


def resolve_runtime(
    config: ChaptercastConfig,
    runtime_cli_values: dict[str, str],
    runtime_secure_values: dict[str, str],
    env: dict[str, str] | None = None,
) -> ProviderRuntimeConfig:
    """Attach runtime sources to `config` and resolve provider runtime values."""

    env_values = dict(config.runtime_sources.env)
    env_values.update(ConfigLoader.runtime_env(env))
    config.runtime_sources = RuntimeConfigSources(
        cli=runtime_cli_values,
        secure=runtime_secure_values,
        env=env_values,
    )
    try:
        return config.resolved_provider_runtime()
    except ValueError as exc:
        raise PipelineStageError(
            stage="config",
            detail=f"Invalid configuration: {exc}",
            hint="Set both `SUPABASE_URL` and `SUPABASE_ANON_KEY`, or neither.",
        ) from exc
