"""Privileged browser context: the only actor that can see session state.

The browser side exports a snapshot of the cookies and open tabs for the
target domain; the producer reads it through this interface.  Nothing else
in the system touches cookies directly.
"""

from __future__ import annotations

import json
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import urlsplit

import structlog

from modules.inbox.errors import NoTargetContext

logger = structlog.get_logger()

_WORKSPACE_IN_URL = re.compile(r"/(\d+)/")


@dataclass(frozen=True)
class Tab:
    """An open browser tab."""

    id: int
    url: str


class BrowserContext(ABC):
    """Capabilities of the privileged browser actor."""

    @abstractmethod
    async def get_cookie(self, url: str, name: str) -> str | None:
        """Return the value of cookie ``name`` visible to ``url``, or None."""

    @abstractmethod
    async def find_tabs(self, url_prefix: str) -> list[Tab]:
        """Return open tabs whose URL starts with ``url_prefix``."""


def _cookie_matches(cookie: dict, host: str, name: str) -> bool:
    if cookie.get("name") != name:
        return False
    domain = (cookie.get("domain") or host).lstrip(".").lower()
    return host == domain or host.endswith("." + domain)


class SessionSnapshotContext(BrowserContext):
    """Browser context backed by a JSON snapshot file.

    Format::

        {"cookies": [{"name": "cu_jwt", "value": "...", "domain": ".clickup.com"}],
         "tabs": [{"id": 1, "url": "https://app.clickup.com/9011/inbox"}]}

    The file is re-read on every call so a refreshed cookie is picked up
    without restarting the producer.
    """

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> dict:
        """Read the snapshot synchronously; it is a few KB of local JSON, so
        the read finishes well inside one event-loop tick."""
        if not os.path.exists(self.path):
            logger.warning("session_snapshot_missing", path=self.path)
            return {}
        with open(self.path, "r") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Session snapshot {self.path} must be a JSON object")
        return data

    async def get_cookie(self, url: str, name: str) -> str | None:
        host = (urlsplit(url).hostname or "").lower()
        for cookie in self._load().get("cookies") or []:
            if _cookie_matches(cookie, host, name):
                return cookie.get("value") or None
        return None

    async def find_tabs(self, url_prefix: str) -> list[Tab]:
        tabs = []
        for raw in self._load().get("tabs") or []:
            url = raw.get("url") or ""
            if url.startswith(url_prefix):
                tabs.append(Tab(id=int(raw.get("id", 0)), url=url))
        return tabs


def workspace_id_from_url(url: str) -> str | None:
    """Extract the numeric workspace id from an app URL like ``/9011/v/li/...``."""
    match = _WORKSPACE_IN_URL.search(urlsplit(url).path + "/")
    return match.group(1) if match else None


async def find_target_tab(context: BrowserContext, domain: str) -> Tab:
    """Return the first authenticated tab for ``domain``.

    Raises:
        NoTargetContext: If no such tab is open.
    """
    tabs = await context.find_tabs(f"https://{domain}/")
    if not tabs:
        raise NoTargetContext(f"No {domain} tab found. Open {domain} and log in, then retry.")
    logger.debug("target_tab_found", tab_id=tabs[0].id, tab_count=len(tabs))
    return tabs[0]
