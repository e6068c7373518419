"""
Partner payout apportionment.

Highlight money goes into a shared, draining pool, so how much of one purchase
has been "earned" cannot be read off its payout row. It is rebuilt by walking
the payer's top-ups oldest first and charging their cumulative consumption
against them (FIFO). A payout row is available in proportion to how much of
the top-up that funded it has been consumed; the rest stays pending.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Key

from gimerr.core.capabilities import capabilities
from gimerr.core.ddb import ddb_get, ddb_query_all
from gimerr.core.money import cents_to_money, round_half_up
from gimerr.core.normalize import safe_int
from gimerr.core.settings import S
from gimerr.core.tables import T
from gimerr.core.time import now_ts
from gimerr.services.wallet import count_active_highlights, list_topup_events, project_consumed_seconds

logger = logging.getLogger(__name__)

APPORTIONMENT_METHOD = "wallet-consume-fifo-v1"


@dataclass
class PayerConsumption:
    consumed_seconds: int = 0
    ratios: Dict[str, Fraction] = field(default_factory=dict)

    def ratio_for(self, checkout_session_id: str) -> Fraction:
        return self.ratios.get(checkout_session_id, Fraction(0))


def fifo_ratios(consumed_seconds: int, topups: List[Dict[str, Any]]) -> Dict[str, Fraction]:
    """
    ``topups`` must be oldest first. Seconds of repeated sessions are summed
    and the session keeps the position of its first appearance.
    """
    order: List[str] = []
    seconds_by_session: Dict[str, int] = {}
    for event in topups:
        session_id = str(event.get("checkout_session_id") or "").strip()
        seconds = safe_int(event.get("seconds_delta"))
        if not session_id or seconds <= 0:
            continue
        if session_id not in seconds_by_session:
            order.append(session_id)
            seconds_by_session[session_id] = 0
        seconds_by_session[session_id] += seconds

    remaining = max(0, int(consumed_seconds))
    ratios: Dict[str, Fraction] = {}
    for session_id in order:
        total = seconds_by_session[session_id]
        taken = min(remaining, total)
        ratios[session_id] = min(Fraction(1), max(Fraction(0), Fraction(taken, total)))
        remaining -= taken
    return ratios


def compute_payer_consumption(payer_user_id: str, now: Optional[int] = None) -> PayerConsumption:
    """Read-only: projects the payer's wallet to ``now`` without writing it."""
    caps = capabilities()
    if not caps.wallets:
        return PayerConsumption()
    wallet = ddb_get(T.wallets, {"user_id": payer_user_id})
    if not wallet:
        return PayerConsumption()

    ts = now_ts() if now is None else now
    consumed = project_consumed_seconds(wallet, count_active_highlights(payer_user_id), ts)
    if not caps.wallet_events:
        return PayerConsumption(consumed_seconds=consumed)
    return PayerConsumption(
        consumed_seconds=consumed,
        ratios=fifo_ratios(consumed, list_topup_events(payer_user_id)),
    )


def owner_payout_rows(owner_user_id: str) -> List[Dict[str, Any]]:
    rows = ddb_query_all(
        T.payout_events,
        Key("owner_user_id").eq(owner_user_id),
        index_name=S.payout_events_owner_index,
    )
    return [r for r in rows if str(r.get("payout_status") or "").lower() != "paid"]


def payout_summary(owner_user_id: str, now: Optional[int] = None) -> Dict[str, Any]:
    if not capabilities().partner_payouts:
        return {"unsupported": True}

    rows = owner_payout_rows(owner_user_id)
    payers = {str(r.get("payer_user_id") or "").strip() for r in rows}
    consumption = {p: compute_payer_consumption(p, now) for p in payers if p}

    total_cents = available_cents = pending_cents = count = 0
    for row in rows:
        if str(row.get("payout_status") or "").lower() == "refunded":
            continue
        effective = max(0, safe_int(row.get("expected_net_cents")) - safe_int(row.get("refunded_net_cents")))
        if effective <= 0:
            continue

        payer = str(row.get("payer_user_id") or "").strip()
        session_id = str(row.get("checkout_session_id") or "").strip()
        ratio = consumption[payer].ratio_for(session_id) if payer and session_id else Fraction(0)
        row_available = min(effective, round_half_up(effective * ratio))

        total_cents += effective
        available_cents += row_available
        pending_cents += effective - row_available
        count += 1

    logger.debug(
        "Payout summary for %s: %d row(s), %d available of %d cents",
        owner_user_id, count, available_cents, total_cents,
    )
    return {
        "unsupported": False,
        "totalExpected": cents_to_money(total_cents),
        "availableAmount": cents_to_money(available_cents),
        "pendingAmount": cents_to_money(pending_cents),
        "count": count,
        "method": APPORTIONMENT_METHOD,
    }
