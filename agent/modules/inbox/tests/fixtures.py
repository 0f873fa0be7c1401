"""Test fixtures and mock data for inbox module tests."""

from __future__ import annotations

import base64
import json
from unittest.mock import AsyncMock

import httpx

WORKSPACE_ID = "9011099466"
FRONTDOOR = "https://frontdoor.test"
API = "https://api.test/api/v2"


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


def make_jwt(payload: dict) -> str:
    """Build an unsigned three-segment token around ``payload``."""

    def _segment(data: dict) -> str:
        raw = json.dumps(data).encode()
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()

    return f"{_segment({'alg': 'HS256', 'typ': 'JWT'})}.{_segment(payload)}.c2lnbmF0dXJl"


def make_response(
    status: int = 200,
    json_body: dict | list | None = None,
    text: str | None = None,
    method: str = "POST",
    url: str = f"{FRONTDOOR}/any",
) -> httpx.Response:
    request = httpx.Request(method, url)
    if text is not None:
        return httpx.Response(status, text=text, request=request)
    return httpx.Response(status, json=json_body if json_body is not None else {}, request=request)


def make_mock_client() -> AsyncMock:
    """AsyncMock usable as ``async with httpx.AsyncClient(...) as client``."""
    client = AsyncMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return client


def make_bundle(
    bundle_id: str,
    task_key: str | None = None,
    occurred_at: str | None = "1700000000000",
    kind: str = "comment",
    unread: int = 1,
    comment: str | None = None,
) -> dict:
    bundle = {
        "id": bundle_id,
        "rootEntityResourceName": task_key or f"crn:task:{bundle_id}",
        "unreadCount": unread,
        "previewNotification": {
            "type": kind,
            "historyItem": {"occurredAt": occurred_at},
        },
    }
    if comment is not None:
        bundle["mostRecentCommentNotification"] = {
            "commentPreview": [{"text": comment[:5]}, {"text": comment[5:]}]
        }
    return bundle


def make_task_resource(task_key: str, task_id: str, name: str) -> dict:
    return {
        "entityResourceName": task_key,
        "type": "task",
        "id": task_id,
        "name": name,
        "status": "in progress",
        "location": {
            "project": {"name": "Engineering"},
            "category": "Backend",
            "subcategory": {"name": "Sprint 12"},
        },
    }


def make_page(bundles: list[dict], resources: list[dict] | None = None, cursor: str | None = None) -> dict:
    page = {
        "notificationBundleGroups": [{"notificationBundles": bundles}],
        "resources": resources or [],
    }
    if cursor is not None:
        page["pagination"] = {"nextCursor": cursor}
    return page


SEARCH_PAGE_1 = make_page(
    [
        make_bundle("b1#crn:1", task_key="crn:task:86a1", occurred_at="1700000001000", comment="Looks good to me"),
        make_bundle("b2#crn:2", task_key="crn:task:86a2", occurred_at="1700000003000", kind="assignee_add"),
    ],
    resources=[
        make_task_resource("crn:task:86a1", "86a1", "Fix login redirect"),
        make_task_resource("crn:task:86a2", "86a2", "Ship relay"),
        {"entityResourceName": "crn:task:86a1", "type": "doc", "id": "doc-1", "name": "Not a task"},
    ],
    cursor="cursor+/page=2",
)

SEARCH_PAGE_2 = make_page(
    [
        make_bundle("b3#crn:3", task_key="crn:task:86a3", occurred_at="1700000002000"),
    ],
    resources=[make_task_resource("crn:task:86a3", "86a3", "Write tests")],
)

TASK_LIST_RESPONSE = {
    "tasks": [
        {
            "id": "t1",
            "name": "Open task",
            "text_content": "Body",
            "status": {"status": "to do", "type": "open"},
            "space": {"id": "1"},
            "folder": {"name": "Folder"},
            "list": {"name": "List"},
            "date_updated": "1700000005000",
            "url": "https://app.clickup.com/t/t1",
        },
        {
            "id": "t2",
            "name": "Closed task",
            "status": {"status": "complete", "type": "closed"},
            "date_updated": "1700000006000",
        },
    ],
    "last_page": True,
}
