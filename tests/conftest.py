"""Shared pytest fixtures for the full Chaptercast test suite."""

from __future__ import annotations

import pytest

from tests.fakes import FakeKeyringModule


@pytest.fixture
def fake_keyring() -> FakeKeyringModule:
    """Provide an in-memory keyring module for credential store tests."""

    return FakeKeyringModule()
