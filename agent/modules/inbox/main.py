"""Inbox relay: FastAPI service between the browser producer and the swipe UI."""

from __future__ import annotations

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from modules.inbox.clear import ClearCoordinator
from modules.inbox.endpoints import CLEAR, MARK_READ, EndpointResolver
from modules.inbox.models import (
    MutationRequest,
    MutationResponse,
    RelayRecord,
    RelaySnapshot,
    SyncPushRequest,
    SyncPushResponse,
)
from modules.inbox.relay import RelayStore
from shared.auth import require_service_auth
from shared.config import get_settings
from shared.schemas.common import ErrorDetail, HealthResponse

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()
app = FastAPI(title="Inbox Relay", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

relay = RelayStore()
coordinator: ClearCoordinator | None = None


@app.on_event("startup")
async def startup():
    global coordinator
    settings = get_settings()
    coordinator = ClearCoordinator(
        relay,
        EndpointResolver.from_settings(settings),
        timeout=settings.inbox_request_timeout,
    )
    logger.info("inbox_relay_ready", frontdoors=len(settings.frontdoor_urls))


@app.put("/api/sync", response_model=SyncPushResponse)
async def sync_push(body: SyncPushRequest, request: Request, _=Depends(require_service_auth)):
    """Store a fresh snapshot, replacing whatever was there."""
    producer = body.producer or (request.client.host if request.client else None)
    record = relay.put(
        RelayRecord(
            notifications=body.notifications,
            credential=body.credential,
            workspace_id=body.workspace_id,
            producer_identity=producer,
        )
    )
    return SyncPushResponse(accepted=True, count=len(record.notifications))


@app.get("/api/sync", response_model=RelaySnapshot)
async def sync_pull(_=Depends(require_service_auth)):
    """Return the live snapshot; 404 when empty or older than the TTL."""
    record = relay.get()
    if record is None:
        age = relay.age()
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(
                error="not found",
                age_seconds=round(age, 1) if age is not None else None,
            ).model_dump(),
        )
    return RelaySnapshot(
        notifications=record.notifications,
        workspace_id=record.workspace_id,
        producer_identity=record.producer_identity,
        created_at=record.created_at,
        age_seconds=round(relay.now() - record.created_at, 1),
        count=len(record.notifications),
    )


async def _mutate(operation: str, body: MutationRequest) -> MutationResponse:
    if coordinator is None:
        raise HTTPException(status_code=503, detail="Relay not ready")

    record = relay.get()
    if record is None or not record.credential:
        raise HTTPException(
            status_code=409,
            detail=ErrorDetail(error="no credential available").model_dump(),
        )

    result = await coordinator.clear_or_mark_read(
        operation, body.ids, record.credential, record.workspace_id
    )
    return MutationResponse(
        results=result.results,
        remaining_count=result.remaining_count,
        failed=result.failed_ids,
    )


@app.post("/api/sync/clear", response_model=MutationResponse)
async def sync_clear(body: MutationRequest, _=Depends(require_service_auth)):
    return await _mutate(CLEAR, body)


@app.post("/api/sync/mark-read", response_model=MutationResponse)
async def sync_mark_read(body: MutationRequest, _=Depends(require_service_auth)):
    return await _mutate(MARK_READ, body)


@app.delete("/api/sync")
async def sync_delete(_=Depends(require_service_auth)):
    relay.delete()
    return {"deleted": True}


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok")


def run() -> None:
    """Console entry point: serve the relay with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.relay_host, port=settings.relay_port)
