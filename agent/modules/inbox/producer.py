"""Producer side: read the browser session, fetch the inbox, push to the relay."""

from __future__ import annotations

from dataclasses import dataclass

import httpx
import structlog

from modules.inbox.context import BrowserContext, find_target_tab, workspace_id_from_url
from modules.inbox.credentials import CredentialStore
from modules.inbox.endpoints import SEARCH, Candidate, EndpointResolver
from modules.inbox.errors import NoTargetContext
from modules.inbox.fetcher import BundleFetcher
from modules.inbox.models import InboxFilter, NotificationBundle, SyncPushRequest
from shared.auth import get_service_auth_headers
from shared.config import Settings, get_settings

logger = structlog.get_logger()


@dataclass
class FetchResult:
    workspace_id: str
    credential: str
    candidate: str
    notifications: list[NotificationBundle]


@dataclass
class SyncReport:
    workspace_id: str
    candidate: str
    count: int
    accepted: bool


class InboxProducer:
    """Runs one sync: tab -> credential -> resolve + fetch -> sync-push."""

    def __init__(
        self,
        context: BrowserContext,
        settings: Settings | None = None,
        resolver: EndpointResolver | None = None,
        fetcher: BundleFetcher | None = None,
        identity: str = "swipe-producer",
    ):
        self.settings = settings or get_settings()
        self.context = context
        self.identity = identity
        self.credentials = CredentialStore(
            context, self.settings.inbox_domain, self.settings.inbox_cookie_name
        )
        self.resolver = resolver or EndpointResolver.from_settings(self.settings)
        self.fetcher = fetcher or BundleFetcher(
            page_size=self.settings.inbox_page_size,
            timeout=self.settings.inbox_request_timeout,
        )

    async def _workspace_id(self) -> str:
        tab = await find_target_tab(self.context, self.settings.inbox_domain)
        workspace_id = workspace_id_from_url(tab.url) or self.settings.default_workspace_id
        if not workspace_id:
            raise NoTargetContext(
                f"Could not read a workspace id from {tab.url}; set DEFAULT_WORKSPACE_ID"
            )
        return workspace_id

    async def fetch(self, inbox_filter: InboxFilter | None = None) -> FetchResult:
        """Fetch the inbox through the first working search endpoint.

        Raises:
            NoTargetContext: No authenticated tab is open.
            NotAuthenticated / CredentialExpired: No usable session.
            AllEndpointsFailed: No search candidate worked.
        """
        workspace_id = await self._workspace_id()
        result = await self.credentials.get_credential()
        credential = result.require()
        info = result.info
        assignee_id = info.subject_id if info else None

        async def attempt(candidate: Candidate) -> list[NotificationBundle]:
            return await self.fetcher.fetch(
                candidate,
                credential,
                workspace_id,
                inbox_filter=inbox_filter,
                assignee_id=assignee_id,
            )

        resolution = await self.resolver.resolve(SEARCH, attempt)
        return FetchResult(
            workspace_id=workspace_id,
            credential=credential,
            candidate=resolution.candidate.name,
            notifications=resolution.value,
        )

    async def push(self, fetched: FetchResult) -> dict:
        """PUT the snapshot to the relay. Raises ``httpx.HTTPStatusError`` on non-2xx."""
        body = SyncPushRequest(
            notifications=fetched.notifications,
            credential=fetched.credential,
            workspace_id=fetched.workspace_id,
            producer=self.identity,
        )
        async with httpx.AsyncClient(timeout=self.settings.inbox_request_timeout) as client:
            resp = await client.put(
                f"{self.settings.relay_url.rstrip('/')}/api/sync",
                json=body.model_dump(mode="json"),
                headers=get_service_auth_headers(self.settings),
            )
            resp.raise_for_status()
        return resp.json()

    async def sync(self, inbox_filter: InboxFilter | None = None) -> SyncReport:
        fetched = await self.fetch(inbox_filter)
        response = await self.push(fetched)
        report = SyncReport(
            workspace_id=fetched.workspace_id,
            candidate=fetched.candidate,
            count=response.get("count", len(fetched.notifications)),
            accepted=bool(response.get("accepted")),
        )
        logger.info(
            "inbox_synced",
            workspace_id=report.workspace_id,
            candidate=report.candidate,
            count=report.count,
        )
        return report
