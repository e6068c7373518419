"""
Highlight wallet ledger.

A wallet holds a per-user balance of highlight seconds. There is no scheduler:
every operation that touches a wallet first calls :func:`sync_wallet`, which
charges the time elapsed since ``last_consumed_at`` against the balance at one
second per second *per active highlighted listing*, and force-deactivates the
user's highlights once the balance is gone.

Writes to the wallet row are conditional on ``row_version`` so two requests
racing on the same wallet cannot both apply a read-modify-write.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from gimerr.core.capabilities import capabilities
from gimerr.core.ddb import ddb_get, ddb_put, ddb_query_all, ddb_set
from gimerr.core.errors import Conflict, FeatureUnprovisioned, is_conditional_failure
from gimerr.core.normalize import safe_int
from gimerr.core.settings import S
from gimerr.core.tables import T
from gimerr.core.time import iso_to_ts, now_ms, now_ts, ts_to_iso
from gimerr.metrics import record_consumption, record_depletion

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60

EVENT_TYPES = ("topup", "consume", "activate", "deactivate", "expire")

WALLET_MISSING_MESSAGE = "Highlight wallet tables not found. Apply the latest migrations."

# checkout sessions already credited to the wallet
CREDITED_SESSIONS = "credited_checkout_sessions"


class StaleWallet(Exception):
    """The wallet row changed between read and conditional write."""


# ---------- listings ----------

def user_listings(user_id: str) -> List[Dict[str, Any]]:
    return ddb_query_all(T.listings, Key("user_id").eq(user_id), index_name=S.listings_user_index)


def is_counted_highlight(listing: Dict[str, Any]) -> bool:
    return listing.get("status") == "active" and listing.get("highlight_status") == "active"


def count_active_highlights(user_id: str) -> int:
    return sum(1 for it in user_listings(user_id) if is_counted_highlight(it))


def clear_highlight_fields() -> Dict[str, Any]:
    return {"highlight_status": "none", "highlight_expires_at": None, "highlight_days": 0}


def deactivate_all_highlights(user_id: str) -> int:
    changed = 0
    for listing in user_listings(user_id):
        if listing.get("highlight_status") != "active":
            continue
        ddb_set(T.listings, {"id": listing["id"]}, clear_highlight_fields())
        changed += 1
    return changed


# ---------- events ----------

def new_event_key() -> str:
    return f"EVT#{now_ms():013d}#{secrets.token_hex(6)}"


def topup_event_key(checkout_session_id: str) -> str:
    return f"TOPUP#{checkout_session_id}"


def build_wallet_event(
    user_id: str,
    event_type: str,
    *,
    seconds_delta: int = 0,
    balance_after: int = 0,
    listing_id: Optional[str] = None,
    checkout_session_id: Optional[str] = None,
    payment_intent_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    event_key: Optional[str] = None,
) -> Dict[str, Any]:
    if event_type not in EVENT_TYPES:
        raise ValueError(f"Unknown wallet event type: {event_type}")
    item: Dict[str, Any] = {
        "user_id": user_id,
        "event_key": event_key or new_event_key(),
        "event_type": event_type,
        "seconds_delta": int(seconds_delta),
        "balance_after": int(balance_after),
        "metadata": metadata or {},
        "created_at": now_ts(),
        "created_at_ms": now_ms(),
    }
    if listing_id:
        item["listing_id"] = listing_id
    if checkout_session_id:
        item["checkout_session_id"] = checkout_session_id
    if payment_intent_id:
        item["payment_intent_id"] = payment_intent_id
    return item


def append_wallet_event(user_id: str, event_type: str, **fields: Any) -> Optional[Dict[str, Any]]:
    """Insert-only audit row. Skipped (returns None) when the events table is not provisioned."""
    if not capabilities().wallet_events:
        return None
    item = build_wallet_event(user_id, event_type, **fields)
    ddb_put(T.wallet_events, item)
    return item


def list_topup_events(user_id: str) -> List[Dict[str, Any]]:
    rows = ddb_query_all(
        T.wallet_events,
        Key("user_id").eq(user_id) & Key("event_key").begins_with("TOPUP#"),
    )
    rows = [r for r in rows if r.get("event_type") == "topup" and r.get("checkout_session_id")]
    rows.sort(key=lambda r: int(r.get("created_at_ms", 0) or 0))
    return rows


# ---------- wallet rows ----------

def _require_wallets() -> None:
    if not capabilities().wallets:
        raise FeatureUnprovisioned(WALLET_MISSING_MESSAGE)


def get_wallet(user_id: str) -> Optional[Dict[str, Any]]:
    _require_wallets()
    return ddb_get(T.wallets, {"user_id": user_id})


def ensure_wallet(user_id: str, now: Optional[int] = None) -> Dict[str, Any]:
    _require_wallets()
    existing = ddb_get(T.wallets, {"user_id": user_id})
    if existing:
        return existing

    ts = now_ts() if now is None else now
    row = {
        "user_id": user_id,
        "available_seconds": 0,
        "total_purchased_seconds": 0,
        "total_consumed_seconds": 0,
        # Highlights that predate the wallet still count; the next sync turns them off.
        "active_listing_count": count_active_highlights(user_id),
        "last_consumed_at": ts,
        "row_version": 0,
        "created_at": ts,
        "updated_at": ts,
    }
    try:
        ddb_put(T.wallets, row, condition_expression="attribute_not_exists(user_id)")
    except ClientError as exc:
        if not is_conditional_failure(exc):
            raise
        concurrent = ddb_get(T.wallets, {"user_id": user_id})
        if concurrent is None:
            raise
        return concurrent
    return row


def _write_wallet(row: Dict[str, Any], fields: Dict[str, Any]) -> Dict[str, Any]:
    version = safe_int(row.get("row_version"))
    fields = {**fields, "row_version": version + 1}
    try:
        ddb_set(
            T.wallets,
            {"user_id": row["user_id"]},
            fields,
            condition_expression="row_version = :expected_version",
            condition_values={":expected_version": version},
        )
    except ClientError as exc:
        if is_conditional_failure(exc):
            raise StaleWallet(row["user_id"]) from exc
        raise
    return {**row, **fields}


# ---------- sync ----------

def elapsed_since(last_consumed_at: Any, now: int) -> int:
    last = iso_to_ts(last_consumed_at)
    if last is None:
        return 0
    return max(0, now - last)


def project_consumed_seconds(wallet: Dict[str, Any], active_count: int, now: int) -> int:
    """``total_consumed_seconds`` plus what a sync at ``now`` would consume, without writing."""
    consumed = safe_int(wallet.get("total_consumed_seconds"))
    available = safe_int(wallet.get("available_seconds"))
    elapsed = elapsed_since(wallet.get("last_consumed_at"), now)
    if active_count > 0 and elapsed > 0 and available > 0:
        consumed += min(available, elapsed * active_count)
    return consumed


def _sync_once(user_id: str, reason: str) -> Dict[str, Any]:
    now = now_ts()
    wallet = ensure_wallet(user_id, now)
    active_count = count_active_highlights(user_id)
    available = safe_int(wallet.get("available_seconds"))
    total_consumed = safe_int(wallet.get("total_consumed_seconds"))
    elapsed = elapsed_since(wallet.get("last_consumed_at"), now)

    consumed_now = 0
    depleted = False
    if active_count > 0:
        if available <= 0:
            depleted = True
        elif elapsed > 0:
            requested = elapsed * active_count
            if requested >= available:
                consumed_now = available
                depleted = True
            else:
                consumed_now = requested
        available -= consumed_now
        total_consumed += consumed_now

    counted = active_count
    if depleted:
        active_count = 0

    updated = _write_wallet(wallet, {
        "available_seconds": available,
        "total_consumed_seconds": total_consumed,
        "active_listing_count": active_count,
        "last_consumed_at": now,
        "updated_at": now,
    })

    # After the wallet write: a failure here leaves active listings on a zero
    # balance, which the next sync deactivates again.
    if depleted:
        switched = deactivate_all_highlights(user_id)
        logger.info("Wallet %s depleted (%s); deactivated %d highlight(s)", user_id, reason, switched)
        record_depletion()

    if consumed_now > 0:
        record_consumption(consumed_now)
        append_wallet_event(
            user_id,
            "consume",
            seconds_delta=-consumed_now,
            balance_after=available,
            metadata={"reason": reason, "elapsed_seconds": elapsed, "active_listing_count": counted},
        )
    if depleted:
        append_wallet_event(
            user_id,
            "expire",
            seconds_delta=0,
            balance_after=0,
            metadata={"reason": reason, "message": "Balance ran out while highlights were active."},
        )

    return wallet_snapshot(updated, depleted=depleted, consumed_now=consumed_now)


def sync_wallet(user_id: str, reason: str) -> Dict[str, Any]:
    attempts = max(1, S.wallet_sync_max_attempts)
    for attempt in range(1, attempts + 1):
        try:
            return _sync_once(user_id, reason)
        except StaleWallet:
            logger.info("Wallet %s changed during sync (%s), attempt %d/%d", user_id, reason, attempt, attempts)
    raise Conflict("Wallet is being updated concurrently, try again")


def credited_sessions(wallet: Optional[Dict[str, Any]]) -> List[str]:
    return list((wallet or {}).get(CREDITED_SESSIONS) or [])


def credit_wallet(user_id: str, seconds: int, checkout_session_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Add purchased seconds to available and lifetime-purchased balances.

    With ``checkout_session_id`` the session is recorded on the wallet row by
    the same conditional write, and a session already recorded there is not
    credited again; the current row is returned unchanged instead.
    """
    seconds = int(seconds)
    attempts = max(1, S.wallet_sync_max_attempts)
    for _ in range(attempts):
        wallet = ensure_wallet(user_id)
        fields: Dict[str, Any] = {
            "available_seconds": safe_int(wallet.get("available_seconds")) + seconds,
            "total_purchased_seconds": safe_int(wallet.get("total_purchased_seconds")) + seconds,
            "updated_at": now_ts(),
        }
        if checkout_session_id:
            sessions = credited_sessions(wallet)
            if checkout_session_id in sessions:
                return wallet
            fields[CREDITED_SESSIONS] = sessions + [checkout_session_id]
        try:
            return _write_wallet(wallet, fields)
        except StaleWallet:
            continue
    raise Conflict("Wallet is being updated concurrently, try again")


# ---------- presentation ----------

def seconds_to_human(seconds: Any) -> Dict[str, int]:
    total = safe_int(seconds)
    return {
        "days": total // DAY_SECONDS,
        "hours": (total % DAY_SECONDS) // 3600,
        "minutes": (total % 3600) // 60,
    }


def per_second_price(day_index: int) -> float:
    day_price = S.highlight_display_day_price * ((1 - S.highlight_display_day_discount) ** day_index)
    return round(day_price / DAY_SECONDS, 8)


def wallet_snapshot(row: Dict[str, Any], *, depleted: bool = False, consumed_now: int = 0) -> Dict[str, Any]:
    available = safe_int(row.get("available_seconds"))
    return {
        "userId": row.get("user_id"),
        "availableSeconds": available,
        "totalPurchasedSeconds": safe_int(row.get("total_purchased_seconds")),
        "totalConsumedSeconds": safe_int(row.get("total_consumed_seconds")),
        "activeListingCount": safe_int(row.get("active_listing_count")),
        "lastConsumedAt": ts_to_iso(iso_to_ts(row.get("last_consumed_at"))),
        "human": seconds_to_human(available),
        "rate": {
            "day1PerSecond": per_second_price(0),
            "day30PerSecond": per_second_price(29),
        },
        "depleted": depleted,
        "consumedNow": consumed_now,
    }
