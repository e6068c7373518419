from __future__ import annotations

import hashlib
import hmac
import json
import time
from decimal import Decimal

import pytest
from botocore.exceptions import ClientError

from fakes import START, make_listing, make_wallet
from gimerr.core.errors import AppError, InvalidInput, Unauthenticated
from gimerr.services import settlement

WEBHOOK_SECRET = "whsec_test_secret"


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def checkout_event(session_id="cs_1", *, metadata=None, event_type="checkout.session.completed", **session):
    obj = {
        "id": session_id,
        "object": "checkout.session",
        "payment_intent": "pi_1",
        "currency": "brl",
        "amount_total": 500,
        "metadata": metadata if metadata is not None else {},
    }
    obj.update(session)
    return {"id": f"evt_{session_id}", "type": event_type, "data": {"object": obj}}


def topup_metadata(user_id="u1", seconds=86400, cents=500, **extra):
    meta = {"user_id": user_id, "purchased_seconds": str(seconds), "total_cents": str(cents), "days": "1"}
    meta.update(extra)
    return meta


@pytest.fixture
def no_stripe_key(settings):
    settings("stripe_secret_key", "")


# ---------- signature ----------

def test_verify_webhook_accepts_signed_payload(settings):
    settings("stripe_webhook_secret", WEBHOOK_SECRET)
    body = json.dumps(checkout_event()).encode()

    event = settlement.verify_webhook(body, sign(body))

    assert event["data"]["object"]["id"] == "cs_1"


def test_verify_webhook_rejects_tampered_body(settings):
    settings("stripe_webhook_secret", WEBHOOK_SECRET)
    body = json.dumps(checkout_event()).encode()
    header = sign(body)

    with pytest.raises(Unauthenticated) as exc:
        settlement.verify_webhook(body.replace(b"cs_1", b"cs_2"), header)
    assert exc.value.status == 401


def test_verify_webhook_rejects_wrong_secret_and_stale_timestamp(settings):
    settings("stripe_webhook_secret", WEBHOOK_SECRET)
    body = b'{"type": "checkout.session.completed"}'

    with pytest.raises(Unauthenticated):
        settlement.verify_webhook(body, sign(body, secret="whsec_other"))
    with pytest.raises(Unauthenticated):
        settlement.verify_webhook(body, sign(body, timestamp=int(time.time()) - 3600))


def test_verify_webhook_requires_header_and_secret(settings):
    settings("stripe_webhook_secret", WEBHOOK_SECRET)
    with pytest.raises(Unauthenticated):
        settlement.verify_webhook(b"{}", None)

    settings("stripe_webhook_secret", "")
    with pytest.raises(AppError) as exc:
        settlement.verify_webhook(b"{}", "t=1,v1=abc")
    assert exc.value.status == 500


# ---------- wallet top-up ----------

def test_topup_credits_wallet_once(tables, clock, no_stripe_key):
    event = checkout_event(metadata=topup_metadata())

    first = settlement.handle_stripe_event(event)
    second = settlement.handle_stripe_event(event)

    assert first == {"ok": True}
    assert second == {"ok": True, "duplicate": True}
    wallet = tables.wallets.items[("u1",)]
    assert wallet["available_seconds"] == 86400
    assert wallet["total_purchased_seconds"] == 86400
    row = tables.wallet_events.items[("u1", "TOPUP#cs_1")]
    assert row["settlement_state"] == "applied"
    assert row["balance_after"] == 86400
    assert row["seconds_delta"] == 86400
    assert row["payment_intent_id"] == "pi_1"
    assert row["metadata"] == {"total_cents": 500}


def test_topup_is_charged_against_existing_highlights_first(tables, clock, no_stripe_key):
    tables.wallets.seed(make_wallet("u1", available=100, active=1, last=START))
    tables.listings.seed(make_listing("l1", "u1", highlight="active"))
    clock.advance(40)

    settlement.handle_stripe_event(checkout_event(metadata=topup_metadata(seconds=1000)))

    wallet = tables.wallets.items[("u1",)]
    assert wallet["available_seconds"] == 1060
    assert wallet["total_consumed_seconds"] == 40
    assert wallet["total_purchased_seconds"] == 1100


def test_failed_credit_releases_reservation_so_retry_credits(tables, clock, no_stripe_key):
    event = checkout_event(metadata=topup_metadata())
    tables.wallets.fail_next["UpdateItem"] = ClientError(
        {"Error": {"Code": "ProvisionedThroughputExceededException"}}, "UpdateItem",
    )

    with pytest.raises(ClientError):
        settlement.handle_stripe_event(event)
    assert tables.wallet_events.rows() == []
    assert tables.wallets.items[("u1",)]["available_seconds"] == 0

    assert settlement.handle_stripe_event(event) == {"ok": True}
    assert tables.wallets.items[("u1",)]["available_seconds"] == 86400


def test_uncertain_reserve_failure_leaves_no_row(tables, clock, no_stripe_key):
    tables.wallet_events.fail_next["PutItem"] = ClientError({"Error": {"Code": "InternalServerError"}}, "PutItem")

    with pytest.raises(ClientError):
        settlement.handle_stripe_event(checkout_event(metadata=topup_metadata()))

    assert tables.wallet_events.rows() == []
    assert ("u1",) not in tables.wallets.items


def reserved_topup_row(user_id="u1", session_id="cs_1", seconds=86400):
    return {
        "user_id": user_id,
        "event_key": f"TOPUP#{session_id}",
        "event_type": "topup",
        "checkout_session_id": session_id,
        "seconds_delta": seconds,
        "balance_after": 0,
        "settlement_state": "reserved",
        "reservation_id": "earlier-delivery",
    }


def test_stale_reservation_without_credit_is_resumed(tables, clock, no_stripe_key):
    tables.wallet_events.seed(reserved_topup_row())
    event = checkout_event(metadata=topup_metadata())

    assert settlement.handle_stripe_event(event) == {"ok": True}
    assert settlement.handle_stripe_event(event) == {"ok": True, "duplicate": True}

    assert tables.wallets.items[("u1",)]["available_seconds"] == 86400
    row = tables.wallet_events.items[("u1", "TOPUP#cs_1")]
    assert row["settlement_state"] == "applied"
    assert row["balance_after"] == 86400


def test_stale_reservation_after_credit_is_not_credited_again(tables, clock, no_stripe_key):
    wallet = make_wallet("u1", available=86400)
    wallet["credited_checkout_sessions"] = ["cs_1"]
    tables.wallets.seed(wallet)
    tables.wallet_events.seed(reserved_topup_row())

    assert settlement.handle_stripe_event(checkout_event(metadata=topup_metadata())) == {"ok": True}

    assert tables.wallets.items[("u1",)]["available_seconds"] == 86400
    assert tables.wallets.items[("u1",)]["total_purchased_seconds"] == 86400
    assert tables.wallet_events.items[("u1", "TOPUP#cs_1")]["settlement_state"] == "applied"


def test_failed_applied_mark_is_finished_by_redelivery(tables, clock, no_stripe_key):
    tables.servers.seed({"id": "s1", "owner_id": "owner-1", "admin_beneficiary_id": "admin-1"})
    tables.listings.seed(make_listing("l1", "u1", server_id="s1"))
    event = checkout_event(metadata=topup_metadata(listing_id="l1", cents=1000))
    tables.wallet_events.fail_next["UpdateItem"] = ClientError({"Error": {"Code": "InternalServerError"}}, "UpdateItem")

    with pytest.raises(ClientError):
        settlement.handle_stripe_event(event)
    assert tables.wallets.items[("u1",)]["available_seconds"] == 86400
    assert tables.wallet_events.items[("u1", "TOPUP#cs_1")]["settlement_state"] == "reserved"

    clock.advance(86400)
    assert settlement.handle_stripe_event(event) == {"ok": True}
    clock.advance(86400)
    assert settlement.handle_stripe_event(event) == {"ok": True, "duplicate": True}

    assert tables.wallets.items[("u1",)]["total_purchased_seconds"] == 86400
    assert tables.wallet_events.items[("u1", "TOPUP#cs_1")]["settlement_state"] == "applied"
    assert sorted(r["payout_role"] for r in tables.payout_events.rows()) == ["admin", "owner"]
    assert tables.payout_events.items[("cs_1", "owner")]["expected_net_cents"] == 461


def test_topup_auto_activates_reference_listing(tables, clock, no_stripe_key):
    tables.listings.seed(make_listing("l1", "u1"))
    event = checkout_event(metadata=topup_metadata(listing_id="l1", auto_activate="1"))

    settlement.handle_stripe_event(event)

    assert tables.listings.items[("l1",)]["highlight_status"] == "active"
    assert tables.wallets.items[("u1",)]["active_listing_count"] == 1


def test_auto_activation_failure_does_not_fail_settlement(tables, clock, no_stripe_key):
    tables.listings.seed(make_listing("l1", "u1", status="paused"))
    event = checkout_event(metadata=topup_metadata(listing_id="l1", auto_activate="1"))

    assert settlement.handle_stripe_event(event) == {"ok": True}
    assert tables.listings.items[("l1",)]["highlight_status"] == "none"
    assert tables.wallets.items[("u1",)]["available_seconds"] == 86400


def test_revenue_share_is_retried_on_duplicate_delivery(tables, clock, no_stripe_key):
    tables.servers.seed({"id": "s1", "owner_id": "owner-1", "admin_beneficiary_id": "admin-1"})
    tables.listings.seed(make_listing("l1", "u1", server_id="s1"))
    event = checkout_event(metadata=topup_metadata(listing_id="l1", cents=1000))

    settlement.handle_stripe_event(event)
    assert len(tables.payout_events.rows()) == 2

    tables.payout_events.items.pop(("cs_1", "owner"))
    assert settlement.handle_stripe_event(event) == {"ok": True, "duplicate": True}

    owner = tables.payout_events.items[("cs_1", "owner")]
    assert owner["expected_net_cents"] == 461
    assert tables.wallets.items[("u1",)]["available_seconds"] == 86400


# ---------- legacy fixed-duration purchase ----------

def test_legacy_purchase_sets_fixed_expiry(tables, clock, no_stripe_key):
    tables.listings.seed(make_listing("l1", "u1"))
    event = checkout_event(metadata={"user_id": "u1", "listing_id": "l1", "days": "3"}, amount_total=1500)

    assert settlement.handle_stripe_event(event) == {"ok": True}
    assert settlement.handle_stripe_event(event) == {"ok": True, "duplicate": True}

    listing = tables.listings.items[("l1",)]
    assert listing["highlight_status"] == "active"
    assert listing["highlight_days"] == 3
    assert listing["highlight_expires_at"] == "2023-11-17T22:13:20Z"
    assert listing["highlight_paid_amount"] == Decimal("15.00")
    assert listing["highlight_currency"] == "BRL"
    assert listing["highlight_checkout_session_id"] == "cs_1"


def test_legacy_purchase_extends_running_highlight(tables, clock, no_stripe_key):
    tables.listings.seed(make_listing(
        "l1", "u1", highlight="active",
        highlight_expires_at="2023-11-15T22:13:20Z",
        highlight_checkout_session_id="cs_0",
    ))

    settlement.handle_stripe_event(checkout_event(metadata={"user_id": "u1", "listing_id": "l1", "days": "1"}))

    assert tables.listings.items[("l1",)]["highlight_expires_at"] == "2023-11-16T22:13:20Z"


def test_incomplete_metadata_is_invalid(tables, clock):
    with pytest.raises(InvalidInput):
        settlement.handle_stripe_event(checkout_event(metadata={"user_id": "u1"}))
    with pytest.raises(InvalidInput):
        settlement.handle_stripe_event(checkout_event(metadata={"listing_id": "l1"}))


def test_other_event_types_are_acknowledged(tables, clock):
    result = settlement.handle_stripe_event({"type": "payment_intent.created", "data": {"object": {}}})

    assert result == {"ok": True}
    assert tables.wallet_events.rows() == []


def test_async_payment_succeeded_settles_too(tables, clock, no_stripe_key):
    event = checkout_event(metadata=topup_metadata(), event_type="checkout.session.async_payment_succeeded")

    assert settlement.handle_stripe_event(event) == {"ok": True}
    assert tables.wallets.items[("u1",)]["available_seconds"] == 86400
