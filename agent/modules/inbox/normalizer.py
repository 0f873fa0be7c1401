"""Normalize remote bundle and task payloads into NotificationBundle records.

Canonical contract for a search page::

    {"notificationBundleGroups": [{"notificationBundles": [bundle, ...]}],
     "resources": [{"entityResourceName": ..., "type": "task", ...}],
     "pagination": {"nextCursor": ...}}

Each bundle points at its task through ``rootEntityResourceName``.
"""

from __future__ import annotations

import math
from datetime import datetime

from modules.inbox.models import NotificationBundle

TASK_URL = "https://app.clickup.com/t/{task_id}"


def to_millis(value) -> int | None:
    """Coerce an epoch-millis number/string or ISO timestamp to epoch millis."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    text = str(value).strip()
    try:
        number = float(text)
    except ValueError:
        pass
    else:
        # "inf" and "nan" parse as floats but are not timestamps.
        return int(number) if math.isfinite(number) else None
    try:
        return int(datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp() * 1000)
    except ValueError:
        return None


def sort_key(notification: NotificationBundle) -> int:
    """Numeric update time; missing timestamps sort as zero."""
    return notification.occurred_at or 0


def _name(value) -> str:
    """Location entries are either ``{"name": ...}`` objects or bare strings."""
    if isinstance(value, dict):
        value = value.get("name")
    return value if isinstance(value, str) else ""


def index_resources(resources: list[dict]) -> dict[str, dict]:
    """Map ``entityResourceName`` -> task resource for one page."""
    index = {}
    for resource in resources:
        if resource.get("type") == "task" and resource.get("entityResourceName"):
            index[resource["entityResourceName"]] = resource
    return index


def _comment_text(bundle: dict) -> str:
    comment = bundle.get("mostRecentCommentNotification") or {}
    preview = comment.get("commentPreview") or []
    return "".join(part.get("text") or "" for part in preview if isinstance(part, dict)).strip()


def normalize_bundle(bundle: dict, tasks: dict[str, dict]) -> NotificationBundle:
    """Build a NotificationBundle from a raw bundle and its page's task index."""
    root = bundle.get("rootEntityResourceName") or ""
    task = tasks.get(root) or {}
    preview = bundle.get("previewNotification") or {}
    location = task.get("location") or {}

    task_id = task.get("id") or (root.split(":")[-1] if root else None)
    status = task.get("status")
    if isinstance(status, dict):
        status = status.get("status")

    occurred = (preview.get("historyItem") or {}).get("occurredAt")
    if occurred is None:
        occurred = bundle.get("mostRecentNotificationTime")

    return NotificationBundle(
        id=str(bundle["id"]),
        bundle_id=bundle.get("bundleId") or str(bundle["id"]),
        task_id=str(task_id) if task_id else None,
        title=task.get("name") or "Unknown Task",
        description=_comment_text(bundle),
        status=status if isinstance(status, str) else None,
        space=_name(location.get("project")),
        folder=_name(location.get("category")),
        list_name=_name(location.get("subcategory")),
        occurred_at=to_millis(occurred),
        kind=preview.get("type") or bundle.get("bundleType") or "",
        unread_count=int(bundle.get("unreadCount") or 0),
        url=TASK_URL.format(task_id=task["id"]) if task.get("id") else None,
    )


def normalize_page(data: dict) -> list[NotificationBundle]:
    """Flatten one search page's bundle groups into records, in page order."""
    tasks = index_resources(data.get("resources") or [])
    records = []
    for group in data.get("notificationBundleGroups") or []:
        for bundle in group.get("notificationBundles") or []:
            if bundle.get("id") is None:
                continue
            records.append(normalize_bundle(bundle, tasks))
    return records


def normalize_task(task: dict) -> NotificationBundle:
    """Map a public-API task onto the inbox record shape (derived fallback)."""
    status = task.get("status") or {}
    return NotificationBundle(
        id=str(task["id"]),
        task_id=str(task["id"]),
        title=task.get("name") or "Unknown Task",
        description=task.get("text_content") or task.get("description") or "",
        status=status.get("status") if isinstance(status, dict) else None,
        space=_name(task.get("space")),
        folder=_name(task.get("folder")),
        list_name=_name(task.get("list")),
        occurred_at=to_millis(task.get("date_updated")),
        kind="task",
        unread_count=1,
        url=task.get("url") or TASK_URL.format(task_id=task["id"]),
    )


def is_open_task(task: dict) -> bool:
    status = task.get("status") or {}
    return not isinstance(status, dict) or status.get("type") not in ("closed", "done")
