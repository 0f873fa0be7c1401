"""Tests for settings parsing."""

from __future__ import annotations

import pytest

from shared.config import Settings, get_settings, parse_list


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("", []),
        ("a", ["a"]),
        (" a , b ,, c ", ["a", "b", "c"]),
        ('["x", "y"]', ["x", "y"]),
        (["already", "list"], ["already", "list"]),
        (("t",), ["t"]),
    ],
)
def test_parse_list(raw, expected):
    assert parse_list(raw) == expected


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.inbox_domain == "app.clickup.com"
    assert settings.inbox_cookie_name == "cu_jwt"
    assert settings.inbox_page_size == 50
    assert settings.service_auth_token == ""
    assert settings.relay_port == 3001
    assert settings.cors_origins == ["*"]


def test_frontdoor_urls_strip_trailing_slash():
    settings = Settings(inbox_frontdoor_urls="https://a.test/, https://b.test")

    assert settings.frontdoor_urls == ["https://a.test", "https://b.test"]


def test_frontdoor_urls_json_array(monkeypatch):
    monkeypatch.setenv("INBOX_FRONTDOOR_URLS", '["https://one.test/"]')

    assert Settings().frontdoor_urls == ["https://one.test"]


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("RELAY_URL", "http://relay.internal:9000")
    monkeypatch.setenv("INBOX_PAGE_SIZE", "25")

    settings = get_settings()

    assert settings.relay_url == "http://relay.internal:9000"
    assert settings.inbox_page_size == 25
    assert get_settings() is settings
