"""
API Tests
=========

HTTP surface: cron secret, caller resolution, admin gating and the mapping
of lifecycle errors to status codes.
"""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from lexify_backend.api import app
from lexify_backend.auth import create_access_token
from lexify_backend.db.models import RequestState

CRON_SECRET = "test-cron-secret"


@pytest.fixture
def client(sqlalchemy_db):
    return TestClient(app)


def _as(user_id):
    return {"X-User-Id": str(user_id)}


def _bearer(user_id):
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}


@pytest.fixture
def awaiting(market):
    """An ON HOLD request (not confidential) with four offers."""
    now = datetime.utcnow()
    buyer = market.purchaser(selection="manual")
    firm = market.provider()
    request_id = market.request(
        buyer,
        date_expired=now - timedelta(days=1),
        maximum_price="1000",
        state=RequestState.ON_HOLD,
        accept_deadline=now + timedelta(days=6),
    )
    offers = [market.offer(request_id, firm, price) for price in ["900", "700", "800", "1100"]]
    return {"buyer": buyer, "request_id": request_id, "offers": offers}


# =============================================================================
# Health / cron
# =============================================================================

def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["database"] is True


def test_cron_requires_secret(client):
    assert client.post("/api/cron/requests").status_code == 401
    assert client.post("/api/cron/requests", headers={"x-cron-secret": "wrong"}).status_code == 401


def test_cron_runs_sweep(client, market, outbox):
    buyer = market.purchaser()
    request_id = market.request(buyer, date_expired=datetime.utcnow() - timedelta(minutes=5))

    response = client.post("/api/cron/requests", headers={"x-cron-secret": CRON_SECRET})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["stats"]["pending_expired_processed"] == 1
    assert body["stats"]["expired_no_offers"] == 1
    assert market.get_request(request_id).state == RequestState.EXPIRED


def test_cron_queued_falls_back_to_inline_run_without_redis(client, market, outbox):
    buyer = market.purchaser()
    request_id = market.request(buyer, date_expired=datetime.utcnow() - timedelta(minutes=5))

    with patch("lexify_backend.jobs.queue.get_queue", side_effect=ConnectionError("redis down")):
        response = client.post("/api/cron/requests?queued=true", headers={"x-cron-secret": CRON_SECRET})

    assert response.status_code == 200
    assert response.json()["job"]["status"] == "done"
    assert market.get_request(request_id).state == RequestState.EXPIRED


def test_cron_rejected_when_no_secret_configured(client, monkeypatch):
    from lexify_backend.config import get_settings

    monkeypatch.delenv("CRON_SECRET")
    get_settings.cache_clear()
    response = client.post("/api/cron/requests", headers={"x-cron-secret": ""})
    assert response.status_code == 401


# =============================================================================
# Authentication
# =============================================================================

def test_purchaser_endpoints_require_authentication(client):
    assert client.get("/api/me/requests/awaiting").status_code == 401
    assert client.get("/api/me/requests/awaiting", headers=_as(424242)).status_code == 401


def test_bearer_token_identifies_caller(client, awaiting):
    token = create_access_token({"sub": awaiting["buyer"]})
    response = client.get("/api/me/requests/awaiting", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert [r["request_id"] for r in response.json()["requests"]] == [awaiting["request_id"]]


def test_admin_endpoints_reject_non_admins(client, awaiting):
    response = client.put(
        f"/api/admin/requests/{awaiting['request_id']}/conflict",
        json={"decision": "accept"},
        headers=_bearer(awaiting["buyer"]),
    )
    assert response.status_code == 403
    response = client.put(
        f"/api/admin/requests/{awaiting['request_id']}/state",
        json={"request_state": "EXPIRED"},
    )
    assert response.status_code == 401


def test_invalid_token_does_not_fall_back_to_user_id_header(client, awaiting):
    headers = {"Authorization": "Bearer not-a-jwt", **_as(awaiting["buyer"])}
    response = client.get("/api/me/requests/awaiting", headers=headers)
    assert response.status_code == 401


def test_admin_routes_need_a_token(client, market, monkeypatch):
    from lexify_backend.config import get_settings

    admin = market.admin()
    request_id = market.request(market.purchaser(), state=RequestState.EXPIRED)
    url = f"/api/admin/requests/{request_id}/state"

    response = client.put(url, json={"request_state": "PENDING"}, headers=_as(admin))
    assert response.status_code == 401
    assert market.get_request(request_id).state == RequestState.EXPIRED

    monkeypatch.setenv("ADMIN_REQUIRES_TOKEN", "false")
    get_settings.cache_clear()
    response = client.put(url, json={"request_state": "PENDING"}, headers=_as(admin))
    assert response.status_code == 200


def test_user_id_header_can_be_disabled(client, awaiting, monkeypatch):
    from lexify_backend.config import get_settings

    monkeypatch.setenv("ALLOW_USER_ID_HEADER", "false")
    get_settings.cache_clear()
    assert client.get("/api/me/requests/awaiting", headers=_as(awaiting["buyer"])).status_code == 401
    assert client.get("/api/me/requests/awaiting", headers=_bearer(awaiting["buyer"])).status_code == 200


# =============================================================================
# Purchaser
# =============================================================================

def test_awaiting_lists_top_offers(client, market, awaiting):
    response = client.get("/api/me/requests/awaiting", headers=_as(awaiting["buyer"]))

    assert response.status_code == 200
    [item] = response.json()["requests"]
    assert item["state"] == "ON HOLD"
    assert item["maximum_price"] == "1000"
    assert [o["price"] for o in item["top_offers"]] == ["700", "800", "900"]


def test_overmax_lists_requests_with_every_offer_over_max(client, market):
    buyer = market.purchaser(selection="automatic")
    firm = market.provider()
    over = market.request(buyer, date_expired=datetime.utcnow() - timedelta(days=1), maximum_price="100")
    market.offer(over, firm, "150")
    market.offer(over, firm, "120")
    within = market.request(buyer, date_expired=datetime.utcnow() - timedelta(days=1), maximum_price="100")
    market.offer(within, firm, "90")

    response = client.get("/api/me/requests/overmax", headers=_as(buyer))

    assert response.status_code == 200
    items = response.json()["requests"]
    assert [i["request_id"] for i in items] == [over]
    assert [o["price"] for o in items[0]["top_offers"]] == ["120", "150"]


def test_select_forms_contract_with_201(client, market, outbox, awaiting):
    body = {"request_id": awaiting["request_id"], "offer_id": awaiting["offers"][1], "select_reason": "Cheapest"}
    response = client.post("/api/me/requests/awaiting/select", json=body, headers=_as(awaiting["buyer"]))

    assert response.status_code == 201
    assert response.json()["contract_created"] is True
    assert response.json()["state"] == "EXPIRED"

    again = client.post("/api/me/requests/awaiting/select", json=body, headers=_as(awaiting["buyer"]))
    assert again.status_code == 400
    assert len(market.contracts(awaiting["request_id"])) == 1


def test_select_on_confidential_request_starts_conflict_check(client, market, outbox):
    now = datetime.utcnow()
    buyer = market.purchaser()
    request_id = market.request(
        buyer, date_expired=now - timedelta(days=1), confidential=True,
        state=RequestState.ON_HOLD, accept_deadline=now + timedelta(days=3),
    )
    offer_id = market.offer(request_id, market.provider(), "500")

    response = client.post(
        "/api/me/requests/awaiting/select",
        json={"request_id": request_id, "offer_id": offer_id},
        headers=_as(buyer),
    )

    assert response.status_code == 200
    assert response.json()["conflict_check"] is True
    assert response.json()["state"] == "CONFLICT_CHECK"


def test_select_errors(client, market, outbox, awaiting):
    stranger = market.purchaser()
    body = {"request_id": awaiting["request_id"], "offer_id": awaiting["offers"][0]}

    assert client.post("/api/me/requests/awaiting/select", json=body, headers=_as(stranger)).status_code == 404

    body_bad_offer = {"request_id": awaiting["request_id"], "offer_id": 999999}
    response = client.post("/api/me/requests/awaiting/select", json=body_bad_offer, headers=_as(awaiting["buyer"]))
    assert response.status_code == 404
    assert response.json()["detail"] == "Offer not found for this request"


def test_extend_deadline_once(client, awaiting):
    url = f"/api/me/requests/{awaiting['request_id']}/extend-deadline"

    first = client.post(url, headers=_as(awaiting["buyer"]))
    assert first.status_code == 200

    second = client.post(url, headers=_as(awaiting["buyer"]))
    assert second.status_code == 400
    assert second.json()["detail"] == "Deadline can only be extended once"


# =============================================================================
# Admin
# =============================================================================

def test_conflict_accept_then_repeat(client, market, outbox):
    now = datetime.utcnow()
    admin = market.admin()
    buyer = market.purchaser()
    request_id = market.request(
        buyer, date_expired=now - timedelta(days=1), confidential=True,
        state=RequestState.ON_HOLD, accept_deadline=now + timedelta(days=3),
    )
    offer_id = market.offer(request_id, market.provider(), "500")
    client.post(
        "/api/me/requests/awaiting/select",
        json={"request_id": request_id, "offer_id": offer_id},
        headers=_as(buyer),
    )

    url = f"/api/admin/requests/{request_id}/conflict"
    assert client.put(url, json={"decision": "maybe"}, headers=_bearer(admin)).status_code == 400

    accepted = client.put(url, json={"decision": "accept"}, headers=_bearer(admin))
    assert accepted.status_code == 200
    assert accepted.json()["contract_created"] is True
    assert accepted.json()["state"] == "EXPIRED"

    repeated = client.put(url, json={"decision": "accept"}, headers=_bearer(admin))
    assert repeated.status_code == 400
    assert len(market.contracts(request_id)) == 1


def test_conflict_on_unknown_request(client, market):
    admin = market.admin()
    response = client.put("/api/admin/requests/999999/conflict", json={"decision": "deny"}, headers=_bearer(admin))
    assert response.status_code == 404


def test_state_override_to_on_hold_restarts_window(client, market):
    admin = market.admin()
    buyer = market.purchaser()
    request_id = market.request(buyer, state=RequestState.EXPIRED, contract_result="No")

    response = client.put(
        f"/api/admin/requests/{request_id}/state",
        json={"request_state": "ON HOLD"},
        headers=_bearer(admin),
    )

    assert response.status_code == 200
    request = market.get_request(request_id)
    assert request.state == RequestState.ON_HOLD
    assert timedelta(days=6, hours=23) < request.accept_deadline - request.date_expired <= timedelta(days=7)


def test_state_override_rejects_unknown_states(client, market):
    admin = market.admin()
    request_id = market.request(market.purchaser())
    for state in ("CONFLICT_CHECK", "DONE"):
        response = client.put(
            f"/api/admin/requests/{request_id}/state",
            json={"request_state": state},
            headers=_bearer(admin),
        )
        assert response.status_code == 400
