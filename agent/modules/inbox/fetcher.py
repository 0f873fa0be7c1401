"""Paginated inbox retrieval."""

from __future__ import annotations

import uuid
from collections.abc import Callable

import httpx
import structlog

from modules.inbox.endpoints import TASKS, Candidate, read_json, session_headers
from modules.inbox.errors import EndpointFailure
from modules.inbox.models import InboxFilter, NotificationBundle
from modules.inbox.normalizer import is_open_task, normalize_page, normalize_task, sort_key

logger = structlog.get_logger()

# Hard cap on pages per walk, whatever the server keeps returning.
MAX_PAGES = 10
DEFAULT_PAGE_SIZE = 50


def _nested_cursor(data: dict) -> object:
    pagination = data.get("pagination")
    return pagination.get("nextCursor") if isinstance(pagination, dict) else None


# Where the continuation token may live, in priority order.
CURSOR_STRATEGIES: tuple[tuple[str, Callable[[dict], object]], ...] = (
    ("pagination.nextCursor", _nested_cursor),
    ("nextCursor", lambda data: data.get("nextCursor")),
)


def extract_cursor(data: dict) -> str | None:
    """Return the first non-empty cursor found, untouched, or None when done."""
    for _location, strategy in CURSOR_STRATEGIES:
        value = strategy(data)
        if isinstance(value, str) and value:
            return value
    return None


def merge_notifications(
    notifications: list[NotificationBundle], descending: bool = True
) -> list[NotificationBundle]:
    """Deduplicate by id (last seen wins) and sort by update time."""
    by_id: dict[str, NotificationBundle] = {}
    for notification in notifications:
        by_id[notification.id] = notification
    return sorted(by_id.values(), key=sort_key, reverse=descending)


class BundleFetcher:
    """Walks the remote bundle search (or the task fallback) to completion."""

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE, timeout: float = 15.0):
        self.page_size = page_size
        self.timeout = timeout

    async def fetch(
        self,
        candidate: Candidate,
        credential: str,
        workspace_id: str,
        inbox_filter: InboxFilter | None = None,
        descending: bool = True,
        assignee_id: str | None = None,
    ) -> list[NotificationBundle]:
        """Fetch from ``candidate`` using the strategy its kind calls for."""
        if candidate.kind == TASKS:
            return await self.fetch_assigned_tasks(
                candidate, credential, workspace_id, assignee_id, descending
            )
        return await self.fetch_all(candidate, credential, workspace_id, inbox_filter, descending)

    def _search_body(self, inbox_filter: InboxFilter, cursor: str | None, descending: bool) -> dict:
        return {
            "filteredBy": inbox_filter.to_payload(),
            "pagination": {"nextCursor": cursor or "", "limit": self.page_size},
            "sortedBy": {"direction": "descending" if descending else "ascending"},
            "needsMemberMap": False,
        }

    async def _request(
        self, client: httpx.AsyncClient, candidate: Candidate, url: str, **kwargs
    ) -> dict:
        try:
            resp = await client.request(candidate.method, url, **kwargs)
        except httpx.TimeoutException:
            raise EndpointFailure(candidate.name, f"Timed out after {self.timeout}s")
        except httpx.RequestError as e:
            raise EndpointFailure(candidate.name, f"Request failed: {e}")
        return read_json(resp, candidate.name)

    async def fetch_all(
        self,
        candidate: Candidate,
        credential: str,
        workspace_id: str,
        inbox_filter: InboxFilter | None = None,
        descending: bool = True,
    ) -> list[NotificationBundle]:
        """Follow cursors through the bundle search.

        Pages are requested strictly one after another. A failure on the
        first page raises ``EndpointFailure``; a failure on a later page
        ends the walk and returns what was gathered so far.
        """
        inbox_filter = inbox_filter or InboxFilter()
        url = candidate.format_url(workspace_id=workspace_id)
        headers = session_headers(credential, workspace_id)

        accumulated: list[NotificationBundle] = []
        cursor: str | None = None
        page = 0

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while True:
                body = self._search_body(inbox_filter, cursor, descending)
                try:
                    data = await self._request(
                        client,
                        candidate,
                        url,
                        json=body,
                        headers={**headers, "sessionid": uuid.uuid4().hex[:10]},
                    )
                    records = self._normalize(candidate, data)
                except EndpointFailure as e:
                    if page == 0:
                        raise
                    logger.warning(
                        "bundle_page_failed_returning_partial",
                        candidate=candidate.name,
                        page=page + 1,
                        collected=len(accumulated),
                        error=e.reason,
                    )
                    break

                accumulated.extend(records)
                cursor = extract_cursor(data)
                page += 1
                logger.debug(
                    "bundle_page_fetched",
                    candidate=candidate.name,
                    page=page,
                    records=len(records),
                    total=len(accumulated),
                    has_more=bool(cursor),
                )
                if not cursor or page >= MAX_PAGES:
                    break

        if cursor and page >= MAX_PAGES:
            logger.warning("bundle_page_cap_reached", candidate=candidate.name, pages=page)

        merged = merge_notifications(accumulated, descending)
        logger.info(
            "bundle_walk_complete",
            candidate=candidate.name,
            pages=page,
            fetched=len(accumulated),
            unique=len(merged),
        )
        return merged

    @staticmethod
    def _normalize(candidate: Candidate, data: dict) -> list[NotificationBundle]:
        try:
            return normalize_page(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise EndpointFailure(candidate.name, f"Unexpected response shape: {e}")

    @staticmethod
    def _normalize_tasks(candidate: Candidate, tasks: list) -> list[NotificationBundle]:
        try:
            return [normalize_task(t) for t in tasks if is_open_task(t)]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise EndpointFailure(candidate.name, f"Unexpected response shape: {e}")

    async def fetch_assigned_tasks(
        self,
        candidate: Candidate,
        credential: str,
        workspace_id: str,
        assignee_id: str | None,
        descending: bool = True,
    ) -> list[NotificationBundle]:
        """Derive inbox records from open tasks assigned to ``assignee_id``."""
        if not assignee_id:
            raise EndpointFailure(candidate.name, "No user id in credential to filter tasks by")

        url = candidate.format_url(workspace_id=workspace_id)
        headers = {
            "Authorization": f"Bearer {credential}",
            "Accept": "application/json",
        }
        accumulated: list[NotificationBundle] = []
        page = 0

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            while page < MAX_PAGES:
                params = {
                    "assignees[]": assignee_id,
                    "subtasks": "true",
                    "include_closed": "false",
                    "order_by": "updated",
                    "reverse": "true" if descending else "false",
                    "page": page,
                }
                try:
                    data = await self._request(client, candidate, url, params=params, headers=headers)
                    tasks = data.get("tasks") or []
                    records = self._normalize_tasks(candidate, tasks)
                except EndpointFailure as e:
                    if page == 0:
                        raise
                    logger.warning(
                        "task_page_failed_returning_partial",
                        page=page + 1,
                        collected=len(accumulated),
                        error=e.reason,
                    )
                    break

                accumulated.extend(records)
                page += 1
                if not tasks or data.get("last_page", True):
                    break

        merged = merge_notifications(accumulated, descending)
        logger.info("task_fallback_complete", pages=page, unique=len(merged))
        return merged
