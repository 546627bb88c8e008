"""Secure credential storage helpers for Chaptercast CLI.

Responsibilities:
- Persist provider API keys in an OS-backed secure credential store.
- Provide deterministic read/write/delete operations per provider.
- Avoid logging or exposing secret values in diagnostics.

Key types:
- `CredentialStore`: interface for provider credential persistence.
- `KeyringCredentialStore`: keyring-backed secure credential storage.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import ModuleType

import keyring
from keyring.errors import KeyringError


_DEFAULT_SERVICE_NAME = "chaptercast"

# Provider id -> runtime config key holding its credential.
PROVIDER_CREDENTIAL_KEYS: dict[str, str] = {
    "openai": "openai_api_key",
    "elevenlabs": "elevenlabs_api_key",
    "heygen": "heygen_api_key",
}


def _require_known_provider(provider: str) -> str:
    """Return the keyring account for `provider` or raise for unknown ids."""

    try:
        return PROVIDER_CREDENTIAL_KEYS[provider]
    except KeyError as exc:
        supported = ", ".join(sorted(PROVIDER_CREDENTIAL_KEYS))
        raise ValueError(f"Unsupported provider `{provider}`; supported: {supported}.") from exc


class CredentialStore:
    """Interface for secure provider credential operations."""

    def is_available(self) -> bool:
        """Return whether secure credential operations are available."""

        raise NotImplementedError

    def get_api_key(self, provider: str) -> str | None:
        """Load the stored API key for `provider`, when available."""

        raise NotImplementedError

    def set_api_key(self, provider: str, api_key: str) -> None:
        """Persist an API key for `provider` in secure storage."""

        raise NotImplementedError

    def clear_api_key(self, provider: str) -> bool:
        """Delete a stored API key and return whether one existed."""

        raise NotImplementedError

    def load_all(self) -> dict[str, str]:
        """Return stored keys mapped by runtime config key, skipping missing ones."""

        values: dict[str, str] = {}
        for provider, config_key in PROVIDER_CREDENTIAL_KEYS.items():
            value = self.get_api_key(provider)
            if value is not None:
                values[config_key] = value
        return values


@dataclass(slots=True)
class KeyringCredentialStore(CredentialStore):
    """Secure credential store backed by the `keyring` package."""

    service_name: str = _DEFAULT_SERVICE_NAME

    def _load_keyring_module(self) -> ModuleType:
        """Return the `keyring` module used for storage operations."""

        return keyring

    def is_available(self) -> bool:
        """Return `True` when a usable keyring backend is configured."""

        try:
            backend = self._load_keyring_module().get_keyring()
        except KeyringError:
            return False
        return getattr(backend, "priority", 1) > 0

    def get_api_key(self, provider: str) -> str | None:
        """Get a normalized API key from keyring, returning `None` when missing."""

        account = _require_known_provider(provider)
        try:
            value = self._load_keyring_module().get_password(self.service_name, account)
        except KeyringError:
            return None
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            return None
        return normalized

    def set_api_key(self, provider: str, api_key: str) -> None:
        """Persist a normalized API key in keyring."""

        account = _require_known_provider(provider)
        normalized = api_key.strip()
        if not normalized:
            raise ValueError("API key must be a non-empty string.")
        self._load_keyring_module().set_password(self.service_name, account, normalized)

    def clear_api_key(self, provider: str) -> bool:
        """Remove the stored API key from keyring and report if one was present."""

        account = _require_known_provider(provider)
        if self.get_api_key(provider) is None:
            return False
        self._load_keyring_module().delete_password(self.service_name, account)
        return True


def create_credential_store() -> CredentialStore:
    """Create the default secure credential store implementation."""

    return KeyringCredentialStore()
