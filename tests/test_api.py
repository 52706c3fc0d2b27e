"""HTTP surface with in-memory storage."""
from __future__ import annotations

import uuid

import pytest

from chainpass_webhooks import signing
from chainpass_webhooks.main import create_app
from tests.utils import make_headers

BODY = '{"id":"evt_1","event_type":"verification.completed","data":{"ok":true}}'


@pytest.fixture
async def service_client(aiohttp_client, repos):
    return await aiohttp_client(create_app(repos))


@pytest.mark.asyncio
async def test_health(service_client):
    resp = await service_client.get("/health")
    assert resp.status == 200
    assert (await resp.json())["status"] == "ok"
    assert "X-Trace-Id" in resp.headers
    assert "X-Request-Id" in resp.headers


@pytest.mark.asyncio
async def test_verify_endpoint_statuses(service_client):
    header = signing.signature_header_for(BODY, "secret")
    resp = await service_client.post(
        "/api/v1/webhooks/verify",
        json={"payload": BODY, "signature_header": header, "api_key": "secret"},
    )
    assert resp.status == 200
    data = await resp.json()
    assert data["valid"] is True
    assert "error" not in data
    assert isinstance(data["current_time"], int)

    resp = await service_client.post(
        "/api/v1/webhooks/verify",
        json={"payload": BODY, "signature_header": "v1=abc", "api_key": "secret"},
    )
    assert resp.status == 400
    assert (await resp.json())["valid"] is False

    resp = await service_client.post(
        "/api/v1/webhooks/verify",
        json={"payload": BODY, "signature_header": "t=²,v1=abc", "api_key": "secret"},
    )
    assert resp.status == 400

    stale = signing.signature_header_for(BODY, "secret", timestamp=1700000000)
    resp = await service_client.post(
        "/api/v1/webhooks/verify",
        json={"payload": BODY, "signature_header": stale, "api_key": "secret"},
    )
    assert resp.status == 401
    assert "too old" in (await resp.json())["error"]


@pytest.mark.asyncio
async def test_verify_endpoint_accepts_object_payload(service_client):
    payload = {"id": "evt_1", "n": 1}
    header = signing.signature_header_for(payload, "secret")
    resp = await service_client.post(
        "/api/v1/webhooks/verify",
        json={"payload": payload, "signature_header": header, "api_key": "secret"},
    )
    assert resp.status == 200


@pytest.mark.asyncio
async def test_verify_endpoint_requires_api_key(service_client):
    resp = await service_client.post(
        "/api/v1/webhooks/verify",
        json={"payload": BODY, "signature_header": "t=1,v1=x", "api_key": ""},
    )
    assert resp.status == 400


@pytest.mark.asyncio
async def test_emit_event(service_client, repos, partner):
    resp = await service_client.post(
        "/api/v1/events",
        json={"partner_id": str(partner.id), "event_type": "verification.completed", "payload": {"a": 1}},
        headers=make_headers("service"),
    )
    assert resp.status == 201
    data = await resp.json()
    assert data["event"]["event_type"] == "verification.completed"
    entry = await repos.deliveries.get(uuid.UUID(data["delivery_id"]))
    assert entry.event_id == uuid.UUID(data["event"]["id"])

    resp = await service_client.get(f"/api/v1/events/{data['event']['id']}", headers=make_headers())
    assert resp.status == 200
    assert (await resp.json())["payload"] == {"a": 1}


@pytest.mark.asyncio
async def test_emit_event_errors(service_client, repos, partner):
    body = {"partner_id": str(partner.id), "event_type": "kyc.updated"}
    resp = await service_client.post("/api/v1/events", json=body)
    assert resp.status == 401

    resp = await service_client.post(
        "/api/v1/events", json={**body, "partner_id": str(uuid.uuid4())}, headers=make_headers()
    )
    assert resp.status == 404

    repos.partners.partners[partner.id] = partner.model_copy(update={"is_active": False})
    resp = await service_client.post("/api/v1/events", json=body, headers=make_headers())
    assert resp.status == 422

    resp = await service_client.post("/api/v1/events", json={"event_type": ""}, headers=make_headers())
    assert resp.status == 400


@pytest.mark.asyncio
async def test_operator_endpoints_require_operator_role(service_client):
    for path in ("/api/v1/deliveries", "/api/v1/deliveries/stats", "/api/v1/replays", "/api/v1/audit"):
        resp = await service_client.get(path, headers=make_headers("viewer"))
        assert resp.status == 403, path


@pytest.mark.asyncio
async def test_delivery_dashboard(service_client, repos, partner):
    resp = await service_client.post(
        "/api/v1/events",
        json={"partner_id": str(partner.id), "event_type": "kyc.updated"},
        headers=make_headers(),
    )
    delivery_id = (await resp.json())["delivery_id"]
    headers = make_headers("admin")

    resp = await service_client.get("/api/v1/deliveries?status=pending", headers=headers)
    assert resp.status == 200
    data = await resp.json()
    assert data["total"] == 1
    assert data["deliveries"][0]["id"] == delivery_id
    assert "claim_token" not in data["deliveries"][0]
    assert data["deliveries"][0]["exhausted"] is False

    resp = await service_client.get("/api/v1/deliveries?status=bogus", headers=headers)
    assert resp.status == 400

    resp = await service_client.get("/api/v1/deliveries/stats", headers=headers)
    assert (await resp.json())["pending"] == 1

    resp = await service_client.get(f"/api/v1/deliveries/{delivery_id}", headers=headers)
    assert resp.status == 200

    resp = await service_client.get(f"/api/v1/deliveries/{uuid.uuid4()}", headers=headers)
    assert resp.status == 404

    resp = await service_client.get("/api/v1/deliveries/not-a-uuid", headers=headers)
    assert resp.status == 400

    resp = await service_client.post(f"/api/v1/deliveries/{delivery_id}/retry", headers=headers)
    assert resp.status == 409


@pytest.mark.asyncio
async def test_replay_endpoint(service_client, repos, hook_server):
    event = await repos.events.create(event_type="verification.completed", payload={"user": "u_1"})
    headers = make_headers("operator")

    resp = await service_client.post(
        "/api/v1/replays",
        json={"webhookEventId": str(event.id), "targetUrl": hook_server.url},
        headers=headers,
    )
    assert resp.status == 200
    data = await resp.json()
    assert data["success"] is True
    assert data["responseStatus"] == 200
    assert data["errorMessage"] is None
    assert isinstance(data["responseTime"], int)

    resp = await service_client.get(f"/api/v1/replays?event_id={event.id}", headers=headers)
    listing = await resp.json()
    assert listing["total"] == 1
    assert listing["replays"][0]["success"] is True

    resp = await service_client.get("/api/v1/audit?kind=replay", headers=headers)
    assert (await resp.json())["total"] == 1

    resp = await service_client.post(
        "/api/v1/replays",
        json={"webhookEventId": str(uuid.uuid4()), "targetUrl": hook_server.url},
        headers=headers,
    )
    assert resp.status == 404

    resp = await service_client.post(
        "/api/v1/replays", json={"webhookEventId": str(event.id)}, headers=make_headers("viewer")
    )
    assert resp.status == 403


@pytest.mark.asyncio
async def test_signature_failures_show_up_in_audit(service_client):
    await service_client.post(
        "/api/v1/webhooks/verify",
        json={"payload": BODY, "signature_header": "broken", "api_key": "secret"},
    )
    resp = await service_client.get("/api/v1/audit?kind=signature.invalid_format", headers=make_headers())
    data = await resp.json()
    assert data["total"] == 1
    assert data["records"][0]["severity"] == "medium"


@pytest.mark.asyncio
async def test_webhook_test_endpoint(service_client, repos, hook_server):
    owner = uuid.uuid4()
    partner = repos.partners.add(user_id=owner, callback_url=hook_server.url, api_key="secret")
    headers = make_headers("partner", user_id=owner)
    body = {"partner_id": str(partner.id), "callback_url": hook_server.url, "test_payload": {"ping": True}}

    resp = await service_client.post("/api/v1/webhooks/test", json=body, headers=headers)
    assert resp.status == 200
    data = await resp.json()
    assert data["success"] is True
    assert data["response_status"] == 200
    assert data["response_body"] == "ok"
    assert data["error_message"] is None
    assert isinstance(data["response_time_ms"], int)
    assert hook_server.received[0].headers["X-ChainPass-Test"] == "true"

    resp = await service_client.get(f"/api/v1/webhooks/test?partner_id={partner.id}", headers=headers)
    listing = await resp.json()
    assert listing["total"] == 1
    assert listing["tests"][0]["test_payload"] == {"ping": True}

    resp = await service_client.post("/api/v1/webhooks/test", json=body, headers=make_headers("partner"))
    assert resp.status == 403

    resp = await service_client.post(
        "/api/v1/webhooks/test", json={**body, "partner_id": str(uuid.uuid4())}, headers=headers
    )
    assert resp.status == 404

    resp = await service_client.post(
        "/api/v1/webhooks/test", json={**body, "callback_url": "not a url"}, headers=headers
    )
    assert resp.status == 400

    resp = await service_client.get("/api/v1/webhooks/test", headers=headers)
    assert resp.status == 400


@pytest.mark.asyncio
async def test_dispatch_endpoint_runs_one_pass(service_client, repos, partner, hook_server):
    for _ in range(2):
        await service_client.post(
            "/api/v1/events",
            json={"partner_id": str(partner.id), "event_type": "kyc.updated"},
            headers=make_headers(),
        )

    resp = await service_client.post("/api/v1/deliveries/dispatch", headers=make_headers("viewer"))
    assert resp.status == 403
    assert hook_server.received == []

    resp = await service_client.post("/api/v1/deliveries/dispatch", headers=make_headers("operator"))
    assert resp.status == 200
    assert await resp.json() == {"claimed": 2, "succeeded": 2, "failed": 0, "errors": 0}
    assert len(hook_server.received) == 2

    resp = await service_client.post("/api/v1/deliveries/dispatch", headers=make_headers("admin"))
    assert (await resp.json())["claimed"] == 0
