"""
Partner revenue share, written once per settled checkout.

The platform's net proceeds (Stripe's balance-transaction ``net``, or an
estimate when it cannot be fetched) are split into one payout row per
recipient: the listing's server owner and the server's admin beneficiary.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import stripe
from botocore.exceptions import ClientError
from stripe import StripeError

from gimerr.core.capabilities import capabilities
from gimerr.core.ddb import ddb_get, ddb_put
from gimerr.core.errors import is_conditional_failure
from gimerr.core.money import share_of
from gimerr.core.settings import S
from gimerr.core.tables import T
from gimerr.core.time import now_ts, ts_to_iso
from gimerr.metrics import record_payout_row
from gimerr.services.payments import dig, ensure_stripe_configured
from gimerr.services.wallet import DAY_SECONDS

logger = logging.getLogger(__name__)

PAYOUT_ROLES = ("owner", "admin")
PAYOUT_STATUSES = ("pending", "eligible", "paid", "refunded")


def compute_platform_net_cents(gross_cents: int, payment_intent_id: Optional[str]) -> Tuple[int, str]:
    """Returns ``(net_cents, source)`` where source is ``"stripe"`` or ``"estimated"``."""
    if payment_intent_id and S.stripe_secret_key:
        try:
            ensure_stripe_configured()
            pi = stripe.PaymentIntent.retrieve(payment_intent_id, expand=["latest_charge.balance_transaction"])
        except StripeError as exc:
            logger.warning("Stripe net lookup failed for %s, estimating: %s", payment_intent_id, exc)
        else:
            net = dig(pi, "latest_charge", "balance_transaction", "net")
            if net is not None:
                return int(net), "stripe"
            logger.warning("PaymentIntent %s has no balance transaction yet, estimating net", payment_intent_id)
    return share_of(gross_cents, S.fallback_net_ratio), "estimated"


def payout_recipients(server: Dict[str, Any]) -> List[Tuple[str, str, str]]:
    """``(role, user_id, share_ratio)`` for every recipient entitled to a row."""
    owner_id = str(server.get("owner_id") or "").strip()
    admin_id = str(server.get("admin_beneficiary_id") or "").strip() if capabilities().admin_beneficiary else ""

    out: List[Tuple[str, str, str]] = []
    if owner_id:
        out.append(("owner", owner_id, S.owner_share_ratio))
    if admin_id:
        if admin_id == owner_id:
            logger.warning(
                "Server %s owner is also its admin beneficiary; admin share suppressed",
                server.get("id"),
            )
        else:
            out.append(("admin", admin_id, S.admin_share_ratio))
    return out


def _payout_key(checkout_session_id: str, role: str) -> Dict[str, str]:
    return {"checkout_session_id": checkout_session_id, "payout_role": role}


def record_revenue_share(
    *,
    checkout_session_id: str,
    payer_user_id: str,
    listing_id: str,
    gross_cents: int,
    payment_intent_id: Optional[str],
    currency: str,
    highlight_days: int,
) -> List[Dict[str, Any]]:
    """Write the payout rows for one checkout; replays leave existing rows untouched."""
    if not capabilities().partner_payouts:
        return []
    listing = ddb_get(T.listings, {"id": listing_id})
    server_id = (listing or {}).get("server_id")
    if not server_id:
        return []
    server = ddb_get(T.servers, {"id": server_id})
    if not server:
        return []

    recipients = [
        r for r in payout_recipients(server)
        if not ddb_get(T.payout_events, _payout_key(checkout_session_id, r[0]))
    ]
    if not recipients:
        return []

    net_cents, net_source = compute_platform_net_cents(gross_cents, payment_intent_id)
    now = now_ts()
    written: List[Dict[str, Any]] = []
    for role, recipient_id, ratio in recipients:
        row = {
            **_payout_key(checkout_session_id, role),
            "owner_user_id": recipient_id,
            "share_ratio": Decimal(ratio),
            "payer_user_id": payer_user_id,
            "listing_id": listing_id,
            "server_id": server_id,
            "payment_intent_id": payment_intent_id,
            "currency": currency,
            "gross_cents": int(gross_cents),
            "platform_net_cents": int(net_cents),
            "net_source": net_source,
            "expected_net_cents": share_of(net_cents, ratio),
            "refunded_net_cents": 0,
            "payout_status": "pending",
            "highlight_days": int(highlight_days),
            # Projection only: under the wallet model the balance decides when highlights end.
            "highlight_expires_at": ts_to_iso(now + int(highlight_days) * DAY_SECONDS),
            "created_at": now,
        }
        try:
            ddb_put(T.payout_events, row, condition_expression="attribute_not_exists(payout_role)")
        except ClientError as exc:
            if not is_conditional_failure(exc):
                raise
            continue
        record_payout_row(role)
        written.append(row)
    return written
