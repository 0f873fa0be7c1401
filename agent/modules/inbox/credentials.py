"""Session credential lookup and introspection."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from jwt.utils import base64url_decode

from modules.inbox.context import BrowserContext
from modules.inbox.errors import CredentialExpired, NotAuthenticated

logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _from_epoch(value) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


@dataclass(frozen=True)
class CredentialInfo:
    """Claims decoded from a session token.

    Expiry checks take ``now`` at call time; nothing time-dependent is stored.
    """

    subject_id: str | None
    workspace_key: str | None
    issued_at: datetime | None
    expires_at: datetime | None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or _utcnow()) > self.expires_at

    def hours_until_expiry(self, now: datetime | None = None) -> int | None:
        """Whole hours until expiry, rounded half-up; negative once expired."""
        if self.expires_at is None:
            return None
        delta = (self.expires_at - (now or _utcnow())).total_seconds() / 3600
        return math.floor(delta + 0.5)

    def to_dict(self, now: datetime | None = None) -> dict:
        now = now or _utcnow()
        return {
            "subject_id": self.subject_id,
            "workspace_key": self.workspace_key,
            "issued_at": self.issued_at.isoformat() if self.issued_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_expired": self.is_expired(now),
            "hours_until_expiry": self.hours_until_expiry(now),
        }


def decode_credential(token: str) -> CredentialInfo | None:
    """Read the claims of a three-part JWT without verifying its signature.

    The token is only ever sent back to the service that issued it, so the
    claims are informational. Only the middle segment is read, so an opaque
    header does not hide readable claims. Returns None for any other shape or
    if decoding fails; an opaque token may still be usable, it just cannot be
    introspected.
    """
    if token.count(".") != 2:
        return None
    try:
        payload = json.loads(base64url_decode(token.split(".")[1]))
        if not isinstance(payload, dict):
            return None
        user = payload.get("user")
        return CredentialInfo(
            subject_id=str(user) if user is not None else None,
            workspace_key=payload.get("ws_key"),
            issued_at=_from_epoch(payload.get("iat")),
            expires_at=_from_epoch(payload.get("exp")),
        )
    except (ValueError, TypeError, OverflowError, OSError):
        return None


@dataclass(frozen=True)
class CredentialResult:
    """Outcome of a credential lookup. ``error`` is set instead of raising."""

    credential: str | None
    error: str | None = None

    @property
    def info(self) -> CredentialInfo | None:
        # Recomputed from the raw token on every access.
        if not self.credential:
            return None
        return decode_credential(self.credential)

    def require(self, now: datetime | None = None) -> str:
        """Return a usable credential or raise the matching typed error."""
        if not self.credential:
            raise NotAuthenticated(self.error or "not authenticated")
        info = self.info
        if info is not None and info.is_expired(now):
            raise CredentialExpired(info.expires_at)
        return self.credential


class CredentialStore:
    """Reads the session cookie from the privileged browser context."""

    def __init__(self, context: BrowserContext, domain: str, cookie_name: str):
        self.context = context
        self.domain = domain
        self.cookie_name = cookie_name

    async def get_credential(self) -> CredentialResult:
        try:
            value = await self.context.get_cookie(f"https://{self.domain}", self.cookie_name)
        except Exception as e:
            logger.warning("credential_read_failed", domain=self.domain, error=str(e))
            return CredentialResult(credential=None, error=str(e) or "Failed to read cookies")

        if not value:
            return CredentialResult(
                credential=None,
                error=f"not authenticated: {self.cookie_name} cookie not found, log into {self.domain}",
            )

        info = decode_credential(value)
        if info is None:
            logger.info("credential_opaque", domain=self.domain)
        else:
            logger.info(
                "credential_loaded",
                domain=self.domain,
                expired=info.is_expired(),
                hours_until_expiry=info.hours_until_expiry(),
            )
        return CredentialResult(credential=value)
