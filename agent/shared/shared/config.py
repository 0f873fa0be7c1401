"""Configuration management using Pydantic Settings."""

from __future__ import annotations

import json
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_list(v: object) -> list[str]:
    """Parse a list from either a JSON array string, comma-separated string, or list."""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        v = v.strip()
        if not v:
            return []
        if v.startswith("["):
            return json.loads(v)
        return [item.strip() for item in v.split(",") if item.strip()]
    return list(v)  # type: ignore[arg-type]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Shared bearer token between producer, relay and consumer.
    # Empty disables the check (development mode).
    service_auth_token: str = ""

    # Remote service
    inbox_domain: str = "app.clickup.com"
    inbox_cookie_name: str = "cu_jwt"
    # Stored as str: comma-separated or JSON array. Tried in order.
    inbox_frontdoor_urls: str = "https://frontdoor-prod-us-west-2-2.clickup.com"
    inbox_public_api_url: str = "https://api.clickup.com/api/v2"
    inbox_page_size: int = 50
    inbox_request_timeout: float = 15.0

    # Used when the authenticated tab URL carries no workspace id
    default_workspace_id: str = ""

    # JSON snapshot of cookies + open tabs exported by the browser side
    session_snapshot_path: str = ".inbox_session.json"

    # Relay server
    relay_url: str = "http://localhost:3001"
    relay_host: str = "0.0.0.0"
    relay_port: int = 3001
    # Stored as str: comma-separated or JSON array.
    relay_cors_origins: str = "*"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def frontdoor_urls(self) -> list[str]:
        return [u.rstrip("/") for u in parse_list(self.inbox_frontdoor_urls)]

    @property
    def cors_origins(self) -> list[str]:
        return parse_list(self.relay_cors_origins)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
