"""Per-listing highlight state machine: ``none -> active -> none``, gated by wallet balance."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from gimerr.core.ddb import ddb_get, ddb_set
from gimerr.core.errors import Conflict, InsufficientBalance, NotFound
from gimerr.core.tables import T
from gimerr.core.time import now_ts, ts_to_iso
from gimerr.metrics import record_highlight_transition
from gimerr.services.wallet import append_wallet_event, clear_highlight_fields, sync_wallet


def get_owned_listing(user_id: str, listing_id: str) -> Dict[str, Any]:
    listing = ddb_get(T.listings, {"id": listing_id})
    if not listing or listing.get("user_id") != user_id:
        raise NotFound("Listing not found")
    return listing


def activate_highlight(user_id: str, listing_id: str) -> Dict[str, Any]:
    wallet = sync_wallet(user_id, "activate")
    listing = get_owned_listing(user_id, listing_id)

    if listing.get("status") != "active":
        raise Conflict("Only active listings can be highlighted.")
    if listing.get("highlight_status") == "active":
        return {"ok": True, "activated": False, "wallet": sync_wallet(user_id, "activate-noop")}
    if wallet["availableSeconds"] <= 0:
        raise InsufficientBalance("Insufficient highlight balance. Top up to activate.")

    # Open-ended: the wallet balance, not a fixed expiry, decides when it ends.
    ddb_set(T.listings, {"id": listing_id}, {
        **clear_highlight_fields(),
        "highlight_status": "active",
        "highlight_started_at": ts_to_iso(now_ts()),
    })
    append_wallet_event(
        user_id,
        "activate",
        balance_after=wallet["availableSeconds"],
        listing_id=listing_id,
    )
    record_highlight_transition("activate")
    return {"ok": True, "activated": True, "wallet": sync_wallet(user_id, "activate-post")}


def deactivate_highlight(user_id: str, listing_id: str) -> Dict[str, Any]:
    wallet = sync_wallet(user_id, "deactivate")
    listing = get_owned_listing(user_id, listing_id)

    if listing.get("highlight_status") == "active":
        ddb_set(T.listings, {"id": listing_id}, clear_highlight_fields())
        append_wallet_event(
            user_id,
            "deactivate",
            balance_after=wallet["availableSeconds"],
            listing_id=listing_id,
        )
        record_highlight_transition("deactivate")
    return {"ok": True, "deactivated": True, "wallet": sync_wallet(user_id, "deactivate-post")}


def release_listing_highlight(
    user_id: str,
    listing: Dict[str, Any],
    delete_row: Callable[[], None],
    *,
    wallets_enabled: bool = True,
) -> Optional[Dict[str, Any]]:
    """
    Remove a listing without letting its highlight outlive it.

    Charges the wallet up to now, deletes the row via ``delete_row``, logs a
    ``deactivate`` event when the listing was highlighted and re-syncs so the
    active count drops. Returns the post-delete wallet snapshot, or None when
    wallets are not provisioned.
    """
    before = sync_wallet(user_id, "listing-delete-before") if wallets_enabled else None
    delete_row()
    if not wallets_enabled:
        return None

    # a depleting sync has already switched the highlight off and logged the expiry
    if listing.get("highlight_status") == "active" and not before["depleted"]:
        append_wallet_event(
            user_id,
            "deactivate",
            balance_after=before["availableSeconds"],
            listing_id=listing["id"],
            metadata={"reason": "listing_delete"},
        )
        record_highlight_transition("delete")
    return sync_wallet(user_id, "listing-delete-after")
