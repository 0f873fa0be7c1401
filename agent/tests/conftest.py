"""Shared test fixtures for the agent test suite.

Settings are cached process-wide by ``get_settings``; the fixtures here make
sure a test that changes the environment does not leak into the next one.
"""

from __future__ import annotations

import pytest

from shared.config import get_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    """Clear the cached Settings before and after each test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def service_token(monkeypatch):
    """Configure a relay token through the environment."""
    monkeypatch.setenv("SERVICE_AUTH_TOKEN", "test-token")
    get_settings.cache_clear()
    return "test-token"
