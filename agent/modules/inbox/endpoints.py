"""Endpoint fallback chains for search, clear and mark-read.

The inbox lives on an undocumented frontdoor API whose host has moved
between regions, so each logical operation maps to an ordered list of
candidate endpoints.  Candidates are tried once each, in order; the first
one whose attempt succeeds wins.

Failure policy for a candidate:

* network error or timeout                -> EndpointFailure
* non-2xx status                          -> EndpointFailure (status kept)
* 2xx whose body starts with ``<``        -> SessionLikelyExpired
  (the request was redirected to the login page, re-auth rather than retry)
* 2xx body that is not valid JSON         -> EndpointFailure
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

import httpx
import structlog

from modules.inbox.errors import AllEndpointsFailed, EndpointFailure, SessionLikelyExpired
from shared.config import Settings

logger = structlog.get_logger()

SEARCH = "search"
CLEAR = "clear"
MARK_READ = "mark_read"

# Candidate kinds
BUNDLES = "bundles"  # paginated v3 bundle search
TASKS = "tasks"  # derived: assigned task list from the public API
MUTATION = "mutation"  # path-addressed PUT by bundle id


@dataclass(frozen=True)
class Candidate:
    """One physical endpoint for a logical operation."""

    name: str
    method: str
    url: str  # template: {workspace_id}, {bundle_id}
    kind: str = BUNDLES
    body: dict = field(default_factory=dict)

    def format_url(self, **values: str) -> str:
        return self.url.format(**values)


@dataclass(frozen=True)
class Resolution:
    """The candidate that worked and what its attempt returned."""

    candidate: Candidate
    value: Any


def _host(url: str) -> str:
    return urlsplit(url).netloc or url


def build_candidates(settings: Settings) -> dict[str, list[Candidate]]:
    """Priority-ordered candidates per operation, from configuration."""
    api = settings.inbox_public_api_url.rstrip("/")
    search: list[Candidate] = []
    clear: list[Candidate] = []
    mark_read: list[Candidate] = []

    for base in settings.frontdoor_urls:
        bundles = f"{base}/inbox/v3/workspaces/{{workspace_id}}/notifications/bundles"
        host = _host(base)
        search.append(Candidate(f"bundle_search@{host}", "POST", f"{bundles}/search"))
        clear.append(
            Candidate(f"bundle_clear@{host}", "PUT", f"{bundles}/{{bundle_id}}/clear", kind=MUTATION)
        )
        mark_read.append(
            Candidate(f"bundle_read@{host}", "PUT", f"{bundles}/{{bundle_id}}/read", kind=MUTATION)
        )

    # Last resort for search: no notification endpoint answered, so derive
    # an inbox from the tasks assigned to the session's user.
    search.append(Candidate("assigned_tasks", "GET", f"{api}/team/{{workspace_id}}/task", kind=TASKS))
    mark_read.append(
        Candidate(
            "notification_seen",
            "PUT",
            f"{api}/notification/{{bundle_id}}",
            kind=MUTATION,
            body={"seen": True},
        )
    )

    return {SEARCH: search, CLEAR: clear, MARK_READ: mark_read}


def session_headers(credential: str, workspace_id: str) -> dict[str, str]:
    """Headers the frontdoor API expects from a logged-in browser session."""
    return {
        "Content-Type": "application/json",
        "Accept": "application/json, text/plain, */*",
        "Authorization": f"Bearer {credential}",
        "x-csrf": "1",
        "x-workspace-id": workspace_id,
    }


def read_json(response: httpx.Response, candidate: str) -> dict:
    """Parse a candidate's response body, classifying failures.

    Raises:
        SessionLikelyExpired: 2xx with a markup body.
        EndpointFailure: Non-2xx, or a body that is not a JSON object.
    """
    text = response.text
    if not response.is_success:
        raise EndpointFailure(
            candidate,
            f"HTTP {response.status_code}: {text[:100]}",
            status=response.status_code,
        )
    if text.lstrip().startswith("<"):
        raise SessionLikelyExpired(candidate, status=response.status_code)
    try:
        data = json.loads(text)
    except ValueError as e:
        raise EndpointFailure(candidate, f"Invalid JSON body: {e}", status=response.status_code)
    if not isinstance(data, dict):
        raise EndpointFailure(candidate, "Expected a JSON object", status=response.status_code)
    return data


class EndpointResolver:
    """Walks a candidate list until one attempt succeeds."""

    def __init__(self, candidates: dict[str, list[Candidate]]):
        self._candidates = candidates

    @classmethod
    def from_settings(cls, settings: Settings) -> EndpointResolver:
        return cls(build_candidates(settings))

    def candidates(self, operation: str) -> list[Candidate]:
        try:
            return list(self._candidates[operation])
        except KeyError:
            raise ValueError(f"Unknown operation: {operation}") from None

    async def resolve(
        self,
        operation: str,
        attempt: Callable[[Candidate], Awaitable[Any]],
    ) -> Resolution:
        """Run ``attempt`` against each candidate in order.

        Attempts are expected to bound their own I/O with request timeouts
        and to raise ``EndpointFailure`` on failure. Stray httpx errors are
        treated the same way.

        Raises:
            AllEndpointsFailed: Every candidate failed; carries each failure.
        """
        failures: list[EndpointFailure] = []
        for candidate in self.candidates(operation):
            try:
                value = await attempt(candidate)
            except EndpointFailure as e:
                failure = e
            except httpx.HTTPError as e:
                failure = EndpointFailure(candidate.name, f"{type(e).__name__}: {e}")
            else:
                logger.info(
                    "endpoint_resolved",
                    operation=operation,
                    candidate=candidate.name,
                    skipped=len(failures),
                )
                return Resolution(candidate, value)

            failures.append(failure)
            logger.warning(
                "endpoint_candidate_failed",
                operation=operation,
                candidate=candidate.name,
                status=failure.status,
                session_expired=isinstance(failure, SessionLikelyExpired),
                reason=failure.reason,
            )

        raise AllEndpointsFailed(operation, failures)
