"""Pydantic models for inbox records and the relay protocol."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

MutationOperation = Literal["clear", "mark_read"]


class NotificationBundle(BaseModel):
    """One inbox entry, normalized from a remote bundle (or a fallback task)."""

    id: str
    # Remote grouping key; differs from ``id`` only for some sources.
    bundle_id: str | None = None
    task_id: str | None = None
    title: str = "Unknown Task"
    description: str = ""
    status: str | None = None
    space: str = ""
    folder: str = ""
    list_name: str = ""
    occurred_at: int | None = None  # epoch milliseconds
    kind: str = ""
    unread_count: int = 0
    url: str | None = None

    @model_validator(mode="after")
    def _default_bundle_id(self) -> NotificationBundle:
        if not self.bundle_id:
            self.bundle_id = self.id
        return self

    @property
    def location_path(self) -> list[str]:
        """Space / folder / list names, skipping the empty ones."""
        return [p for p in (self.space, self.folder, self.list_name) if p]

    def matches(self, identity: str) -> bool:
        """Callers may address an entry by either its id or its bundle id."""
        return identity == self.id or identity == self.bundle_id


class InboxFilter(BaseModel):
    """``filteredBy`` block of the bundle search request."""

    status: str = "uncleared"
    saved: bool = False
    assigned_to_me: bool = False
    mentioned: bool = False
    unread: bool = False
    reminders: bool = False
    bundle_type: str | None = None

    def to_payload(self) -> dict:
        payload = {
            "status": self.status,
            "saved": self.saved,
            "assignedToMe": self.assigned_to_me,
            "mentioned": self.mentioned,
            "unread": self.unread,
            "reminders": self.reminders,
        }
        if self.bundle_type:
            payload["bundleType"] = self.bundle_type
        return payload


class RelayRecord(BaseModel):
    """The single snapshot held by the relay slot."""

    notifications: list[NotificationBundle] = Field(default_factory=list)
    credential: str
    workspace_id: str
    producer_identity: str | None = None
    created_at: float = 0.0  # epoch seconds, stamped by RelayStore.put


# ---------------------------------------------------------------------------
# Relay protocol
# ---------------------------------------------------------------------------


class SyncPushRequest(BaseModel):
    notifications: list[NotificationBundle]
    credential: str = Field(min_length=1)
    workspace_id: str = Field(min_length=1)
    producer: str | None = None


class SyncPushResponse(BaseModel):
    accepted: bool = True
    count: int


class RelaySnapshot(BaseModel):
    """What the consumer sees on pull. The credential stays on the relay."""

    notifications: list[NotificationBundle]
    workspace_id: str
    producer_identity: str | None = None
    created_at: float
    age_seconds: float
    count: int


class MutationRequest(BaseModel):
    ids: list[str]


class ItemOutcome(BaseModel):
    """Result of one clear / mark-read call within a batch."""

    id: str
    success: bool
    status: int | None = None
    error: str | None = None
    already_cleared: bool = False


class BatchResult(BaseModel):
    """Per-item outcomes of a best-effort batch plus the reconciled count."""

    results: list[ItemOutcome]
    remaining_count: int

    @property
    def succeeded_ids(self) -> list[str]:
        return [r.id for r in self.results if r.success]

    @property
    def failed_ids(self) -> list[str]:
        return [r.id for r in self.results if not r.success]

    @property
    def partial_failure(self) -> bool:
        """Some items failed while others went through."""
        return bool(self.failed_ids) and bool(self.succeeded_ids)


class MutationResponse(BaseModel):
    results: list[ItemOutcome]
    remaining_count: int
    failed: list[str]
