"""Consumer side of the relay: pull the snapshot, render cards, act on swipes.

Swiping removes the card locally straight away. Only ``accept`` reaches the
remote service (through the relay's clear / mark-read endpoint); ``skip``
stays local, so a skipped item comes back on the next full sync.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import httpx
import structlog

from modules.inbox.models import ItemOutcome, MutationResponse, NotificationBundle, RelaySnapshot
from shared.auth import get_service_auth_headers
from shared.config import get_settings

logger = structlog.get_logger()

ACCEPT = "accept"
SKIP = "skip"

_MUTATION_PATHS = {
    "clear": "/api/sync/clear",
    "mark_read": "/api/sync/mark-read",
}

TYPE_LABELS: dict[str, str] = {
    "assignee_add": "Assigned",
    "due_date_missed": "Due Date",
    "comment": "Comment",
    "task_created": "Created",
    "status_change": "Status",
    "messages": "Message",
}


def type_label(kind: str | None) -> str:
    return TYPE_LABELS.get(kind or "", kind or "Notification")


def format_age(occurred_at: int | None, now: datetime | None = None) -> str:
    """Relative age of an epoch-millis timestamp, e.g. ``"5m ago"``."""
    if not occurred_at:
        return ""
    now = now or datetime.now(timezone.utc)
    then = datetime.fromtimestamp(occurred_at / 1000, tz=timezone.utc)
    seconds = (now - then).total_seconds()
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return then.date().isoformat()


def render_card(notification: NotificationBundle, now: datetime | None = None) -> dict:
    return {
        "id": notification.id,
        "bundle_id": notification.bundle_id,
        "title": notification.title or "Untitled Task",
        "type": type_label(notification.kind),
        "description": notification.description,
        "age": format_age(notification.occurred_at, now),
        "space": notification.space,
        "list": notification.list_name,
        "unread": notification.unread_count > 0,
        "url": notification.url,
    }


@dataclass
class SwipeOutcome:
    id: str
    direction: str
    removed: bool  # was present locally and dropped
    propagated: bool = False  # a remote mutation was attempted
    outcome: ItemOutcome | None = None
    remaining_count: int | None = None
    error: str | None = None

    @property
    def cleared(self) -> bool:
        return self.outcome is not None and self.outcome.success


class SyncClient:
    """Pulls relay snapshots and turns swipes into relay mutations."""

    def __init__(
        self,
        relay_url: str | None = None,
        accept_operation: str = "clear",
        timeout: float = 15.0,
    ):
        if accept_operation not in _MUTATION_PATHS:
            raise ValueError(f"Unknown accept operation: {accept_operation}")
        self.relay_url = (relay_url or get_settings().relay_url).rstrip("/")
        self.accept_operation = accept_operation
        self.timeout = timeout
        self.notifications: list[NotificationBundle] = []
        self.snapshot: RelaySnapshot | None = None

    @property
    def remaining(self) -> int:
        return len(self.notifications)

    async def pull(self) -> list[NotificationBundle]:
        """Replace local state with the relay's snapshot (empty when none/expired)."""
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.get(f"{self.relay_url}/api/sync", headers=get_service_auth_headers())

        if resp.status_code == 404:
            self.snapshot = None
            self.notifications = []
            logger.info("relay_snapshot_missing")
            return []
        resp.raise_for_status()

        self.snapshot = RelaySnapshot.model_validate(resp.json())
        self.notifications = list(self.snapshot.notifications)
        logger.info(
            "relay_snapshot_pulled",
            count=len(self.notifications),
            age_seconds=self.snapshot.age_seconds,
        )
        return self.notifications

    def render(self, limit: int = 3, now: datetime | None = None) -> list[dict]:
        """Card dicts for the top ``limit`` notifications."""
        return [render_card(n, now) for n in self.notifications[:limit]]

    async def swipe(self, identity: str, direction: str) -> SwipeOutcome:
        """Drop the card locally, then propagate ``accept`` to the relay."""
        if direction not in (ACCEPT, SKIP):
            raise ValueError(f"Unknown swipe direction: {direction}")

        notification = next((n for n in self.notifications if n.matches(identity)), None)
        if notification is not None:
            self.notifications = [n for n in self.notifications if n is not notification]

        result = SwipeOutcome(id=identity, direction=direction, removed=notification is not None)
        if direction == SKIP:
            return result

        target = notification.bundle_id if notification is not None else identity
        result.propagated = True
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.relay_url}{_MUTATION_PATHS[self.accept_operation]}",
                    json={"ids": [target]},
                    headers=get_service_auth_headers(),
                )
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            result.error = f"Relay error {e.response.status_code}: {e.response.text[:150]}"
            logger.warning("swipe_relay_error", status=e.response.status_code)
            return result
        except httpx.RequestError as e:
            result.error = f"Relay unreachable: {e}"
            logger.warning("swipe_relay_unreachable", error=str(e))
            return result

        response = MutationResponse.model_validate(resp.json())
        result.remaining_count = response.remaining_count
        result.outcome = next((r for r in response.results if r.id == target), None)
        if result.outcome is not None and not result.outcome.success:
            result.error = result.outcome.error
            logger.warning("swipe_clear_failed", status=result.outcome.status)
        return result
