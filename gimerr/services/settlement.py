"""
Checkout-completed webhook settlement.

Wallet top-ups are idempotent per checkout session: the ``topup`` event row is
keyed by the session id and written *before* the balance changes, as a
reservation. The credit itself records the session on the wallet row in the
same conditional write, so it can be checked and never applies twice.

A delivery that collides with an ``applied`` row is acknowledged as a
duplicate. One that finds the row still ``reserved`` (an earlier delivery died
between reserve and applied) resumes it: credits if the wallet does not record
the session yet, then marks the row applied. A credit that fails before
landing deletes the reservation again.
"""

from __future__ import annotations

import json
import math
import logging
import secrets
from typing import Any, Dict, Optional

import stripe
from botocore.exceptions import ClientError
from stripe import StripeError

from gimerr.core.capabilities import capabilities
from gimerr.core.ddb import ddb_del, ddb_get, ddb_put, ddb_set
from gimerr.core.errors import (
    AppError,
    Conflict,
    FeatureUnprovisioned,
    InvalidInput,
    NotFound,
    Unauthenticated,
    is_conditional_failure,
)
from gimerr.core.money import cents_to_decimal, round_half_up
from gimerr.core.normalize import safe_int
from gimerr.core.settings import S
from gimerr.core.tables import T
from gimerr.core.time import iso_to_ts, now_ts, ts_to_iso
from gimerr.metrics import record_settlement
from gimerr.services.highlights import activate_highlight
from gimerr.services.revenue_share import record_revenue_share
from gimerr.services.wallet import (
    DAY_SECONDS,
    WALLET_MISSING_MESSAGE,
    build_wallet_event,
    credit_wallet,
    credited_sessions,
    get_wallet,
    sync_wallet,
    topup_event_key,
)

logger = logging.getLogger(__name__)

SETTLING_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")


def verify_webhook(payload: bytes, signature_header: Optional[str]) -> Dict[str, Any]:
    """Check the ``Stripe-Signature`` header against the raw body, then parse it."""
    if not S.stripe_webhook_secret:
        raise AppError("Stripe webhook secret not configured", 500)
    if not signature_header:
        raise Unauthenticated("Missing Stripe-Signature")
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidInput("Webhook body is not UTF-8") from exc

    try:
        stripe.WebhookSignature.verify_header(
            text,
            signature_header,
            S.stripe_webhook_secret,
            S.stripe_webhook_tolerance_seconds,
        )
    except StripeError as exc:
        raise Unauthenticated("Invalid Stripe signature") from exc

    try:
        event = json.loads(text)
    except ValueError as exc:
        raise InvalidInput("Malformed webhook body") from exc
    if not isinstance(event, dict):
        raise InvalidInput("Malformed webhook body")
    return event


def normalize_days(value: Any) -> int:
    return max(1, safe_int(value, 1))


def normalize_amount_cents(value: Any) -> int:
    try:
        parsed = float(value or 0)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(parsed) or parsed < 0:
        return 0
    return round_half_up(str(value)) if isinstance(value, str) else round_half_up(parsed)


# ---------- wallet top-up ----------

def _release_reservation(key: Dict[str, str], reservation_id: str) -> None:
    try:
        ddb_del(
            T.wallet_events,
            key,
            condition_expression="reservation_id = :rid",
            values={":rid": reservation_id},
        )
    except ClientError as exc:
        if is_conditional_failure(exc):
            return
        logger.exception("Could not release top-up reservation %s", key)


def _credit_landed(user_id: str, checkout_session_id: str) -> bool:
    """True when the wallet row records the session, or when that cannot be read."""
    try:
        return checkout_session_id in credited_sessions(get_wallet(user_id))
    except ClientError:
        logger.exception("Could not verify credit of checkout %s", checkout_session_id)
        return True


def _apply_topup(
    key: Dict[str, str],
    reservation_id: str,
    *,
    user_id: str,
    purchased_seconds: int,
    checkout_session_id: str,
) -> Dict[str, Any]:
    try:
        sync_wallet(user_id, "topup-pre")
        credited = credit_wallet(user_id, purchased_seconds, checkout_session_id)
    except Exception:
        if _credit_landed(user_id, checkout_session_id):
            # Kept reserved; the next delivery resumes and marks it applied.
            logger.warning("Crediting checkout %s failed after the credit landed", checkout_session_id)
            record_settlement("wallet", "unfinished")
        else:
            logger.warning("Crediting checkout %s failed, releasing reservation", checkout_session_id)
            _release_reservation(key, reservation_id)
            record_settlement("wallet", "rolled_back")
        raise

    try:
        ddb_set(
            T.wallet_events,
            key,
            {
                "balance_after": safe_int(credited.get("available_seconds")),
                "settlement_state": "applied",
            },
            condition_expression="settlement_state = :reserved AND reservation_id = :rid",
            condition_values={":reserved": "reserved", ":rid": reservation_id},
        )
    except ClientError as exc:
        if not is_conditional_failure(exc):
            raise
        logger.info("Checkout %s was marked applied by another delivery", checkout_session_id)
    record_settlement("wallet", "applied")
    return {"ok": True, "duplicate": False, "wallet": sync_wallet(user_id, "topup-post")}


def settle_wallet_topup(
    *,
    user_id: str,
    purchased_seconds: int,
    checkout_session_id: str,
    payment_intent_id: Optional[str] = None,
    total_cents: int = 0,
    listing_id: Optional[str] = None,
) -> Dict[str, Any]:
    caps = capabilities()
    if not caps.wallets or not caps.wallet_events:
        raise FeatureUnprovisioned(WALLET_MISSING_MESSAGE)

    reservation_id = secrets.token_hex(8)
    item = build_wallet_event(
        user_id,
        "topup",
        seconds_delta=purchased_seconds,
        balance_after=0,
        listing_id=listing_id,
        checkout_session_id=checkout_session_id,
        payment_intent_id=payment_intent_id,
        metadata={"total_cents": int(total_cents)},
        event_key=topup_event_key(checkout_session_id),
    )
    item["settlement_state"] = "reserved"
    item["reservation_id"] = reservation_id
    key = {"user_id": user_id, "event_key": item["event_key"]}

    try:
        ddb_put(T.wallet_events, item, condition_expression="attribute_not_exists(event_key)")
    except ClientError as exc:
        if not is_conditional_failure(exc):
            # The write may still have landed; never leave an unowned reservation behind.
            _release_reservation(key, reservation_id)
            raise
        existing = ddb_get(T.wallet_events, key) or {}
        if existing.get("settlement_state") != "reserved":
            logger.info("Checkout %s already credited to %s", checkout_session_id, user_id)
            record_settlement("wallet", "duplicate")
            return {"ok": True, "duplicate": True}
        # An earlier delivery stopped between reserve and applied. The credit is
        # keyed by session on the wallet row, so finishing it here cannot double it.
        logger.warning("Resuming unfinished settlement of checkout %s", checkout_session_id)
        record_settlement("wallet", "resumed")
        reservation_id = str(existing.get("reservation_id") or "")

    return _apply_topup(
        key,
        reservation_id,
        user_id=user_id,
        purchased_seconds=purchased_seconds,
        checkout_session_id=checkout_session_id,
    )


# ---------- legacy fixed-duration purchase ----------

def settle_listing_purchase(
    *,
    user_id: str,
    listing_id: str,
    checkout_session_id: str,
    days: int,
    total_cents: int,
    payment_intent_id: Optional[str] = None,
    currency: str = "BRL",
) -> Dict[str, Any]:
    listing = ddb_get(T.listings, {"id": listing_id})
    if not listing or listing.get("user_id") != user_id:
        raise NotFound("Listing not found for highlight settlement")
    if listing.get("highlight_checkout_session_id") == checkout_session_id:
        record_settlement("listing", "duplicate")
        return {"ok": True, "duplicate": True}

    now = now_ts()
    current_expire = iso_to_ts(listing.get("highlight_expires_at"))
    base = current_expire if current_expire and current_expire > now else now
    try:
        ddb_set(
            T.listings,
            {"id": listing_id},
            {
                "highlight_status": "active",
                "highlight_started_at": ts_to_iso(now),
                "highlight_days": days,
                "highlight_expires_at": ts_to_iso(base + days * DAY_SECONDS),
                "highlight_checkout_session_id": checkout_session_id,
                "highlight_payment_intent_id": payment_intent_id,
                "highlight_paid_amount": cents_to_decimal(total_cents),
                "highlight_currency": currency or "BRL",
            },
            condition_expression="attribute_not_exists(highlight_checkout_session_id) OR highlight_checkout_session_id <> :sid",
            condition_values={":sid": checkout_session_id},
        )
    except ClientError as exc:
        if is_conditional_failure(exc):
            record_settlement("listing", "duplicate")
            return {"ok": True, "duplicate": True}
        raise
    record_settlement("listing", "applied")
    return {"ok": True, "duplicate": False}


# ---------- dispatch ----------

def _auto_activate(user_id: str, listing_id: str) -> None:
    try:
        activate_highlight(user_id, listing_id)
    except (Conflict, NotFound) as exc:
        logger.info("Auto-activation of %s after top-up skipped: %s", listing_id, exc.message)


def handle_stripe_event(event: Dict[str, Any]) -> Dict[str, Any]:
    event_type = event.get("type")
    if event_type not in SETTLING_EVENTS:
        return {"ok": True}

    session = (event.get("data") or {}).get("object") or {}
    metadata = session.get("metadata") or {}
    user_id = str(metadata.get("user_id") or "").strip()
    listing_id = str(metadata.get("listing_id") or "").strip() or None
    checkout_session_id = session.get("id")
    payment_intent = session.get("payment_intent")
    payment_intent_id = payment_intent if isinstance(payment_intent, str) else None
    currency = session.get("currency").upper() if isinstance(session.get("currency"), str) else "BRL"
    days = normalize_days(metadata.get("days"))
    total_cents = normalize_amount_cents(metadata.get("total_cents") or session.get("amount_total") or 0)
    purchased_seconds = safe_int(metadata.get("purchased_seconds"))

    if not user_id or not checkout_session_id:
        raise InvalidInput("Incomplete checkout metadata")

    if purchased_seconds > 0:
        result = settle_wallet_topup(
            user_id=user_id,
            purchased_seconds=purchased_seconds,
            checkout_session_id=checkout_session_id,
            payment_intent_id=payment_intent_id,
            total_cents=total_cents,
            listing_id=listing_id,
        )
    else:
        if not listing_id:
            raise InvalidInput("Incomplete checkout metadata")
        result = settle_listing_purchase(
            user_id=user_id,
            listing_id=listing_id,
            checkout_session_id=checkout_session_id,
            days=days,
            total_cents=total_cents,
            payment_intent_id=payment_intent_id,
            currency=currency,
        )

    # Also on duplicates: a previous delivery may have died after settling but before this.
    if listing_id:
        record_revenue_share(
            checkout_session_id=checkout_session_id,
            payer_user_id=user_id,
            listing_id=listing_id,
            gross_cents=total_cents,
            payment_intent_id=payment_intent_id,
            currency=currency,
            highlight_days=days,
        )

    if result.get("duplicate"):
        return {"ok": True, "duplicate": True}
    if purchased_seconds > 0 and listing_id and str(metadata.get("auto_activate") or "") == "1":
        _auto_activate(user_id, listing_id)
    return {"ok": True}
