"""Clear / mark-read mutations with relay reconciliation."""

from __future__ import annotations

import asyncio
from urllib.parse import quote

import httpx
import structlog

from modules.inbox.endpoints import CLEAR, MARK_READ, Candidate, EndpointResolver, session_headers
from modules.inbox.errors import AllEndpointsFailed, EndpointFailure, SessionLikelyExpired
from modules.inbox.models import BatchResult, ItemOutcome
from modules.inbox.relay import RelayStore

logger = structlog.get_logger()

# RFC 3986 pchar minus unreserved: these may stay literal in a path segment.
# Everything else (notably "#", "/", "?", "%", spaces) is percent-encoded.
PATH_SEGMENT_SAFE = "!$&'()*+,;=:@"

# Every candidate reporting one of these means the bundle is already gone
# remotely; a single one only fails that candidate.
GONE_STATUSES = frozenset({404, 410})


def encode_path_segment(identity: str) -> str:
    """Percent-encode only what is unsafe inside a single path segment."""
    return quote(identity, safe=PATH_SEGMENT_SAFE)


class ClearCoordinator:
    """Runs best-effort mutation batches and reconciles the relay slot."""

    def __init__(self, relay: RelayStore, resolver: EndpointResolver, timeout: float = 15.0):
        self.relay = relay
        self.resolver = resolver
        self.timeout = timeout

    async def clear_or_mark_read(
        self,
        operation: str,
        ids: list[str],
        credential: str,
        workspace_id: str,
    ) -> BatchResult:
        """Apply ``operation`` to each id independently.

        One item's failure never aborts the others. Ids that succeeded
        (including ones the remote reports as already gone) are removed from
        the relay record afterwards.
        """
        if operation not in (CLEAR, MARK_READ):
            raise ValueError(f"Unknown mutation: {operation}")

        unique_ids = list(dict.fromkeys(i for i in ids if i))
        headers = session_headers(credential, workspace_id)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            outcomes = await asyncio.gather(
                *[
                    self._mutate_one(client, operation, identity, headers, workspace_id)
                    for identity in unique_ids
                ]
            )

        remaining = self.relay.remove(o.id for o in outcomes if o.success)
        result = BatchResult(results=list(outcomes), remaining_count=remaining)

        if result.failed_ids:
            logger.warning(
                "mutation_batch_incomplete",
                operation=operation,
                requested=len(unique_ids),
                failed=len(result.failed_ids),
                partial=result.partial_failure,
            )
        else:
            logger.info(
                "mutation_batch_complete",
                operation=operation,
                requested=len(unique_ids),
                remaining=remaining,
            )
        return result

    async def _mutate_one(
        self,
        client: httpx.AsyncClient,
        operation: str,
        identity: str,
        headers: dict[str, str],
        workspace_id: str,
    ) -> ItemOutcome:
        encoded = encode_path_segment(identity)

        async def attempt(candidate: Candidate) -> int:
            url = candidate.format_url(workspace_id=workspace_id, bundle_id=encoded)
            try:
                resp = await client.request(candidate.method, url, json=candidate.body, headers=headers)
            except httpx.TimeoutException:
                raise EndpointFailure(candidate.name, f"Timed out after {self.timeout}s")
            except httpx.RequestError as e:
                raise EndpointFailure(candidate.name, f"Request failed: {e}")

            if resp.is_success:
                if resp.text.lstrip().startswith("<"):
                    raise SessionLikelyExpired(candidate.name, status=resp.status_code)
                return resp.status_code
            raise EndpointFailure(
                candidate.name,
                f"HTTP {resp.status_code}: {resp.text[:150]}",
                status=resp.status_code,
            )

        try:
            resolution = await self.resolver.resolve(operation, attempt)
        except AllEndpointsFailed as e:
            if e.failures and all(f.status in GONE_STATUSES for f in e.failures):
                status = e.failures[-1].status
                logger.info("mutation_already_applied", operation=operation, status=status)
                return ItemOutcome(id=identity, success=True, status=status, already_cleared=True)
            last = e.last_error
            return ItemOutcome(
                id=identity,
                success=False,
                status=last.status if last else None,
                error=last.reason if last else str(e),
            )

        return ItemOutcome(id=identity, success=True, status=resolution.value)
