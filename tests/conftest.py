"""Root pytest configuration and shared fixtures."""

from __future__ import annotations

import os

import pytest

from pushwire.config import runtime


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Keep PUSHWIRE_* settings from the host environment or .env files out of tests."""
    for name in list(os.environ):
        if name.startswith("PUSHWIRE_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(runtime, "_DOTENV_CANDIDATES", ())
    runtime.reset_default_values()
    yield
    runtime.reset_default_values()
