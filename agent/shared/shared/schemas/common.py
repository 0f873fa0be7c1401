"""Common schemas used across services."""

from __future__ import annotations

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Standard health check response."""

    status: str = "ok"


class ErrorDetail(BaseModel):
    """Structured ``detail`` payload for HTTP errors."""

    error: str
    age_seconds: float | None = None
