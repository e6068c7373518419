from __future__ import annotations

import hashlib
import hmac
import json
import time

import pytest
from fastapi.testclient import TestClient

from fakes import make_listing, make_wallet
from gimerr.main import app
from gimerr.metrics import METRICS_ENABLED

WEBHOOK_SECRET = "whsec_routes"


@pytest.fixture
def client(tables, clock, settings):
    settings("auth_jwt_secret", "")
    settings("stripe_secret_key", "")
    settings("stripe_webhook_secret", WEBHOOK_SECRET)
    return TestClient(app, raise_server_exceptions=False)


def as_user(user_id):
    return {"Authorization": f"Bearer {user_id}"}


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


@pytest.mark.skipif(not METRICS_ENABLED, reason="metrics disabled")
def test_metrics_endpoint(client):
    client.get("/healthz")
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "http_requests_total" in r.text


def test_wallet_status_creates_empty_wallet(client):
    r = client.post("/functions/listing_highlight_wallet", json={"action": "status"}, headers=as_user("u1"))

    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["wallet"]["availableSeconds"] == 0
    assert body["wallet"]["activeListingCount"] == 0


def test_wallet_requires_auth(client):
    r = client.post("/functions/listing_highlight_wallet", json={"action": "status"})

    assert r.status_code == 401
    assert r.json() == {"ok": False, "error": "Não autorizado"}


def test_user_token_in_body(client, tables):
    r = client.post(
        "/functions/listing_highlight_wallet",
        json={"action": "status", "userToken": "body-user"},
        headers=as_user("anon-key"),
    )

    assert r.status_code == 200
    assert ("body-user",) in tables.wallets.items
    assert ("anon-key",) not in tables.wallets.items


def test_activate_needs_listing_id(client):
    r = client.post("/functions/listing_highlight_wallet", json={"action": "activate"}, headers=as_user("u1"))

    assert r.status_code == 400
    assert r.json()["error"] == "listingId é obrigatório"


def test_insufficient_balance_maps_to_409(client, tables):
    tables.listings.seed(make_listing("l1", "u1"))

    r = client.post(
        "/functions/listing_highlight_wallet",
        json={"action": "activate", "listingId": "l1"},
        headers=as_user("u1"),
    )

    assert r.status_code == 409
    assert r.json()["ok"] is False


def test_activate_and_deactivate(client, tables):
    tables.wallets.seed(make_wallet("u1", available=600))
    tables.listings.seed(make_listing("l1", "u1"))

    r = client.post(
        "/functions/listing_highlight_wallet",
        json={"action": "activate", "listingId": "l1"},
        headers=as_user("u1"),
    )
    assert r.status_code == 200
    assert r.json()["wallet"]["activeListingCount"] == 1

    r = client.post(
        "/functions/listing_highlight_wallet",
        json={"action": "deactivate", "listing_id": "l1"},
        headers=as_user("u1"),
    )
    assert r.status_code == 200
    assert tables.listings.items[("l1",)]["highlight_status"] == "none"


def test_invalid_payload_is_400(client):
    r = client.post("/functions/listing_highlight_wallet", json={"action": "explode"}, headers=as_user("u1"))

    assert r.status_code == 400
    assert r.json() == {"ok": False, "error": "Payload inválido"}


def test_checkout_without_stripe_key_is_500(client):
    r = client.post("/functions/listing_highlight_checkout", json={"amountBRL": 10}, headers=as_user("u1"))

    assert r.status_code == 500
    assert r.json()["ok"] is False


def test_webhook_rejects_bad_signature(client):
    r = client.post(
        "/functions/stripe_webhook",
        content=b'{"type": "checkout.session.completed"}',
        headers={"stripe-signature": "t=1,v1=deadbeef"},
    )

    assert r.status_code == 401
    assert r.json()["ok"] is False


def test_webhook_settles_topup(client, tables):
    event = {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": "cs_route",
            "payment_intent": "pi_1",
            "currency": "brl",
            "amount_total": 1000,
            "metadata": {"user_id": "u1", "purchased_seconds": "172800", "total_cents": "1000"},
        }},
    }
    payload = json.dumps(event).encode()
    ts = int(time.time())
    digest = hmac.new(WEBHOOK_SECRET.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()

    r = client.post("/functions/stripe_webhook", content=payload, headers={"stripe-signature": f"t={ts},v1={digest}"})

    assert r.status_code == 200
    assert r.json() == {"ok": True}
    assert tables.wallets.items[("u1",)]["available_seconds"] == 172800


def test_payout_summary_get_and_post(client):
    r = client.get("/functions/partner_payout_summary", headers=as_user("partner"))
    assert r.status_code == 200
    assert r.json()["summary"]["count"] == 0

    r = client.post("/functions/partner_payout_summary", headers=as_user("partner"))
    assert r.status_code == 200
    assert r.json()["summary"]["method"] == "wallet-consume-fifo-v1"


def test_game_approve_requires_admin(client, tables):
    tables.users.seed({"id": "u1"})

    r = client.post("/functions/game_approve", json={"requestId": 1, "approved": True}, headers=as_user("u1"))

    assert r.status_code == 403
    assert r.json() == {"ok": False, "error": "Acesso restrito a admins"}


def test_game_approve_as_admin(client, tables):
    tables.users.seed({"id": "admin-1", "is_admin": True})
    tables.game_requests.seed({
        "id": "1", "user_id": "requester", "name": "Tibia OT", "website": "ot.example.com", "status": "pending",
    })

    r = client.post(
        "/functions/game_approve",
        json={"requestId": 1, "approved": True, "override": {"ownerUserId": "partner-2"}},
        headers=as_user("admin-1"),
    )

    assert r.status_code == 200
    server_id = r.json()["serverId"]
    assert tables.servers.items[(server_id,)]["owner_id"] == "partner-2"


def test_partner_connect_status(client, tables):
    tables.users.seed({"id": "u1"})

    r = client.post("/functions/partner_connect_onboarding", json={"action": "status"}, headers=as_user("u1"))

    assert r.status_code == 200
    assert r.json()["hasAccount"] is False


def test_listing_delete_requires_listing_id(client):
    r = client.post("/functions/listing_delete", json={}, headers=as_user("u1"))

    assert r.status_code == 400
    assert r.json()["error"] == "listingId é obrigatório"
