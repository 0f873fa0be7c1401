"""Shared bearer token guarding the relay.

The producer, the relay and the swipe client run as separate processes that
agree on one ``SERVICE_AUTH_TOKEN``.  The relay's sync routes depend on
``require_service_auth``; callers attach ``get_service_auth_headers()``.
An empty token leaves the relay open, which is only meant for local use.
"""

from __future__ import annotations

import hmac

import structlog
from fastapi import HTTPException, Request

from shared.config import Settings, get_settings

logger = structlog.get_logger()

BEARER_PREFIX = "Bearer "


def get_service_auth_headers(settings: Settings | None = None) -> dict[str, str]:
    """Authorization header for relay calls; empty when no token is set."""
    token = (settings or get_settings()).service_auth_token
    return {"Authorization": f"{BEARER_PREFIX}{token}"} if token else {}


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def _presented_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    if not header.startswith(BEARER_PREFIX):
        return None
    return header[len(BEARER_PREFIX):].strip() or None


async def require_service_auth(request: Request) -> None:
    """FastAPI dependency guarding the relay's sync routes.

    Raises 401 when the token is missing or does not match. Open, with a
    warning per request, while ``SERVICE_AUTH_TOKEN`` is unset.
    """
    expected = get_settings().service_auth_token
    if not expected:
        logger.warning("relay_auth_disabled", path=request.url.path)
        return

    presented = _presented_token(request)
    if presented is None:
        raise _unauthorized("Missing service auth token")
    if not hmac.compare_digest(presented.encode(), expected.encode()):
        logger.warning(
            "relay_auth_rejected",
            path=request.url.path,
            remote=request.client.host if request.client else "unknown",
        )
        raise _unauthorized("Invalid service auth token")
