"""Single-slot, time-bounded relay store.

Holds the latest inbox snapshot pushed by the producer so the consumer can
read it without access to the browser session.  One record at a time:
``put`` replaces it wholesale, and a record older than ``RELAY_TTL_SECONDS``
reads as absent.  There is no eviction task; staleness is checked on read.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable

import structlog

from modules.inbox.models import RelayRecord

logger = structlog.get_logger()

RELAY_TTL_SECONDS = 3600  # 1 hour


class RelayStore:
    """In-memory relay slot with an injectable clock."""

    def __init__(self, ttl: float = RELAY_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._record: RelayRecord | None = None

    def now(self) -> float:
        return self._clock()

    def put(self, record: RelayRecord) -> RelayRecord:
        """Stamp ``record`` with the current time and replace the slot."""
        record.created_at = self._clock()
        replaced = self._record is not None
        self._record = record
        logger.info(
            "relay_put",
            count=len(record.notifications),
            workspace_id=record.workspace_id,
            producer=record.producer_identity,
            replaced=replaced,
        )
        return record

    def age(self) -> float | None:
        """Seconds since the slot was written, even if stale. None when empty."""
        if self._record is None:
            return None
        return self._clock() - self._record.created_at

    def get(self) -> RelayRecord | None:
        """Return the live record, or None when never written or expired."""
        age = self.age()
        if age is None or age >= self.ttl:
            if age is not None:
                logger.debug("relay_expired", age_seconds=round(age, 1), ttl=self.ttl)
            return None
        return self._record

    def delete(self) -> None:
        self._record = None
        logger.info("relay_deleted")

    def remove(self, identities: Iterable[str]) -> int:
        """Drop entries matching any identity (id or bundle id) from the live record.

        Returns the remaining count; 0 when there is no live record.
        """
        record = self.get()
        if record is None:
            return 0
        targets = set(identities)
        if targets:
            before = len(record.notifications)
            record.notifications = [
                n for n in record.notifications if n.id not in targets and n.bundle_id not in targets
            ]
            logger.info(
                "relay_reconciled",
                removed=before - len(record.notifications),
                remaining=len(record.notifications),
            )
        return len(record.notifications)
