"""Tests for the inbox relay FastAPI endpoints."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from modules.inbox import main
from modules.inbox.clear import ClearCoordinator
from modules.inbox.endpoints import CLEAR, MARK_READ, Candidate, EndpointResolver
from modules.inbox.relay import RELAY_TTL_SECONDS, RelayStore
from modules.inbox.tests.fixtures import FRONTDOOR, WORKSPACE_ID, FakeClock, make_mock_client, make_response
from shared.config import Settings

BUNDLE_URL = f"{FRONTDOOR}/inbox/v3/workspaces/{{workspace_id}}/notifications/bundles/{{bundle_id}}"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def relay(clock, monkeypatch):
    store = RelayStore(clock=clock)
    resolver = EndpointResolver(
        {
            CLEAR: [Candidate("bundle_clear@frontdoor.test", "PUT", BUNDLE_URL + "/clear")],
            MARK_READ: [Candidate("bundle_read@frontdoor.test", "PUT", BUNDLE_URL + "/read")],
        }
    )
    monkeypatch.setattr(main, "relay", store)
    monkeypatch.setattr(main, "coordinator", ClearCoordinator(store, resolver))
    return store


@pytest.fixture
async def client(relay):
    """Create an async test client for the FastAPI app."""
    transport = ASGITransport(app=main.app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def remote():
    """Mocked remote service used by the clear coordinator."""
    mock = make_mock_client()
    mock.request.return_value = make_response(200, method="PUT")
    with patch("modules.inbox.clear.httpx.AsyncClient", return_value=mock):
        yield mock


def _push_body(*ids: str, credential: str = "jwt-secret") -> dict:
    return {
        "notifications": [{"id": i, "title": f"Task {i}"} for i in ids],
        "credential": credential,
        "workspace_id": WORKSPACE_ID,
        "producer": "laptop",
    }


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


# ---------------------------------------------------------------------------
# Push / pull
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_pull_empty_is_404(client):
    resp = await client.get("/api/sync")

    assert resp.status_code == 404
    assert resp.json()["detail"] == {"error": "not found", "age_seconds": None}


@pytest.mark.asyncio
async def test_push_then_pull(client, clock):
    resp = await client.put("/api/sync", json=_push_body("a", "b", "c"))
    assert resp.status_code == 200
    assert resp.json() == {"accepted": True, "count": 3}

    clock.advance(30)
    resp = await client.get("/api/sync")

    assert resp.status_code == 200
    data = resp.json()
    assert [n["id"] for n in data["notifications"]] == ["a", "b", "c"]
    assert data["count"] == 3
    assert data["workspace_id"] == WORKSPACE_ID
    assert data["producer_identity"] == "laptop"
    assert data["age_seconds"] == 30.0
    assert "credential" not in data


@pytest.mark.asyncio
async def test_push_without_producer_uses_client_host(client, relay):
    body = _push_body("a")
    del body["producer"]

    await client.put("/api/sync", json=body)

    assert relay.get().producer_identity == "127.0.0.1"


@pytest.mark.asyncio
async def test_push_requires_credential(client):
    resp = await client.put("/api/sync", json=_push_body("a", credential=""))

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_second_push_replaces_first(client):
    await client.put("/api/sync", json=_push_body("a", "b"))
    await client.put("/api/sync", json=_push_body("z"))

    data = (await client.get("/api/sync")).json()
    assert [n["id"] for n in data["notifications"]] == ["z"]


@pytest.mark.asyncio
async def test_pull_after_ttl_is_404_with_age(client, clock):
    await client.put("/api/sync", json=_push_body("a"))

    clock.advance(RELAY_TTL_SECONDS - 1)
    assert (await client.get("/api/sync")).status_code == 200

    clock.advance(1)
    resp = await client.get("/api/sync")
    assert resp.status_code == 404
    assert resp.json()["detail"]["age_seconds"] == float(RELAY_TTL_SECONDS)


@pytest.mark.asyncio
async def test_delete(client):
    await client.put("/api/sync", json=_push_body("a"))

    resp = await client.delete("/api/sync")

    assert resp.json() == {"deleted": True}
    assert (await client.get("/api/sync")).status_code == 404


# ---------------------------------------------------------------------------
# Clear / mark-read
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_clear_reconciles_snapshot(client, remote):
    await client.put("/api/sync", json=_push_body("a", "b", "c"))

    resp = await client.post("/api/sync/clear", json={"ids": ["a"]})

    assert resp.status_code == 200
    data = resp.json()
    assert data["remaining_count"] == 2
    assert data["failed"] == []
    assert data["results"][0]["id"] == "a"
    assert data["results"][0]["success"] is True

    call = remote.request.call_args
    assert call.args == ("PUT", f"{FRONTDOOR}/inbox/v3/workspaces/{WORKSPACE_ID}/notifications/bundles/a/clear")
    assert call.kwargs["headers"]["Authorization"] == "Bearer jwt-secret"

    pulled = (await client.get("/api/sync")).json()
    assert [n["id"] for n in pulled["notifications"]] == ["b", "c"]
    assert pulled["count"] == 2


@pytest.mark.asyncio
async def test_clear_partial_failure(client, remote):
    await client.put("/api/sync", json=_push_body("a", "b"))

    async def _side_effect(method, url, **kwargs):
        if "/bundles/b/" in url:
            return make_response(502, text="bad gateway", method=method, url=url)
        return make_response(200, method=method, url=url)

    remote.request.side_effect = _side_effect

    resp = await client.post("/api/sync/clear", json={"ids": ["a", "b"]})

    data = resp.json()
    assert resp.status_code == 200
    assert data["failed"] == ["b"]
    assert data["remaining_count"] == 1
    assert data["results"][1]["status"] == 502


@pytest.mark.asyncio
async def test_mark_read_route(client, remote):
    await client.put("/api/sync", json=_push_body("a"))

    resp = await client.post("/api/sync/mark-read", json={"ids": ["a"]})

    assert resp.status_code == 200
    assert remote.request.call_args.args[1].endswith("/bundles/a/read")


@pytest.mark.asyncio
async def test_clear_without_snapshot_is_409(client, remote):
    resp = await client.post("/api/sync/clear", json={"ids": ["a"]})

    assert resp.status_code == 409
    assert resp.json()["detail"]["error"] == "no credential available"
    remote.request.assert_not_called()


@pytest.mark.asyncio
async def test_clear_before_startup_is_503(client, monkeypatch):
    monkeypatch.setattr(main, "coordinator", None)

    resp = await client.post("/api/sync/clear", json={"ids": ["a"]})

    assert resp.status_code == 503


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_token_required_when_configured(client):
    settings = Settings(service_auth_token="s3cret")
    with patch("shared.auth.get_settings", return_value=settings):
        missing = await client.get("/api/sync")
        wrong = await client.get("/api/sync", headers={"Authorization": "Bearer nope"})
        right = await client.get("/api/sync", headers={"Authorization": "Bearer s3cret"})
        health = await client.get("/health")

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert right.status_code == 404
    assert health.status_code == 200
