"""Pydantic schemas shared between services."""

from shared.schemas.common import ErrorDetail, HealthResponse

__all__ = [
    "ErrorDetail",
    "HealthResponse",
]
