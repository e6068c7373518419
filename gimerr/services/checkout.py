from __future__ import annotations

import logging
import math
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import stripe
from stripe import StripeError

from gimerr.core.errors import Conflict, InvalidInput, Upstream
from gimerr.core.money import cents_to_str, money_to_cents, round_half_up
from gimerr.core.normalize import normalize_amount_brl, normalize_base_url
from gimerr.core.settings import S
from gimerr.services.highlights import get_owned_listing
from gimerr.services.payments import ensure_stripe_configured
from gimerr.services.wallet import DAY_SECONDS

logger = logging.getLogger(__name__)

PRODUCT_NAME = "Saldo da conta de anúncios"
DEFAULT_DESCRIPTION = "Crédito de destaque Gimerr"


def amount_to_seconds(total_cents: int) -> int:
    """Seconds of highlight bought by ``total_cents`` at the per-day price."""
    if total_cents <= 0:
        return 0
    return max(1, round_half_up(total_cents * DAY_SECONDS / Decimal(S.highlight_price_per_day_cents)))


def resolve_topup_amount(amount_brl: Any, days: Any = None) -> Decimal:
    """The explicit amount wins; legacy ``days`` buys ``days`` minimum top-ups."""
    amount = normalize_amount_brl(amount_brl)
    if amount is None:
        try:
            legacy_days = float(days or 0)
        except (TypeError, ValueError):
            legacy_days = 0
        if math.isfinite(legacy_days) and legacy_days > 0:
            amount = normalize_amount_brl(legacy_days * S.highlight_min_topup_cents / 100)

    minimum = Decimal(S.highlight_min_topup_cents) / 100
    if amount is None or amount < minimum:
        raise InvalidInput(f"Valor mínimo para depósito: R$ {cents_to_str(S.highlight_min_topup_cents).replace('.', ',')}")
    return amount


def _return_urls(base_url: str, listing_id: Optional[str], auto_activate: bool) -> Dict[str, str]:
    success: Dict[str, str] = {"highlight": "success"}
    cancel: Dict[str, str] = {"highlight": "cancel"}
    if listing_id:
        success["listing"] = listing_id
        cancel["listing"] = listing_id
    if auto_activate:
        success["activate"] = "1"
    return {
        "success_url": f"{base_url}/ad-wallet.html?{urlencode(success)}",
        "cancel_url": f"{base_url}/ad-wallet.html?{urlencode(cancel)}",
    }


def create_topup_checkout(
    user_id: str,
    *,
    amount_brl: Any = None,
    days: Any = None,
    listing_id: Optional[str] = None,
    auto_activate: bool = False,
    return_base_url: Optional[str] = None,
) -> Dict[str, Any]:
    ensure_stripe_configured()
    amount = resolve_topup_amount(amount_brl, days)
    total_cents = money_to_cents(amount)
    purchased_seconds = amount_to_seconds(total_cents)
    equivalent_days = max(1, math.ceil(purchased_seconds / DAY_SECONDS))

    listing = None
    if listing_id:
        listing = get_owned_listing(user_id, listing_id)
        if listing.get("status") != "active":
            raise Conflict("Apenas anúncios ativos podem receber destaque.")
    reference_id = listing["id"] if listing else None
    should_activate = bool(auto_activate and reference_id)
    base_url = normalize_base_url(return_base_url) or S.public_base_url

    metadata = {
        "user_id": user_id,
        "days": str(equivalent_days),
        "purchased_seconds": str(purchased_seconds),
        "total_cents": str(total_cents),
        "amount_brl": f"{amount:.2f}",
        "auto_activate": "1" if should_activate else "0",
    }
    if reference_id:
        metadata["listing_id"] = reference_id

    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            allow_promotion_codes=True,
            payment_method_types=["card"],
            line_items=[
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": S.stripe_currency,
                        "unit_amount": total_cents,
                        "product_data": {
                            "name": PRODUCT_NAME,
                            "description": (listing or {}).get("title") or DEFAULT_DESCRIPTION,
                        },
                    },
                }
            ],
            metadata=metadata,
            **_return_urls(base_url, reference_id, should_activate),
        )
    except StripeError as exc:
        logger.error("Stripe checkout session creation failed for %s: %s", user_id, exc)
        raise Upstream(getattr(exc, "user_message", None) or str(exc) or "Falha ao criar sessão Stripe") from exc

    return {
        "ok": True,
        "sessionId": session["id"],
        "checkoutUrl": session["url"],
        "amountBRL": float(amount),
        "totalCents": total_cents,
        "purchasedSeconds": purchased_seconds,
        "referenceListingId": reference_id,
        "autoActivate": should_activate,
    }
