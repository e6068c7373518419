from __future__ import annotations

from typing import Any

import stripe

from gimerr.core.errors import AppError
from gimerr.core.settings import S


def ensure_stripe_configured() -> None:
    if not S.stripe_secret_key:
        raise AppError("Stripe is not configured", 500)
    stripe.api_key = S.stripe_secret_key


def dig(obj: Any, *keys: str) -> Any:
    """Walk nested Stripe objects / dicts; None as soon as a level is missing."""
    cur = obj
    for key in keys:
        if cur is None:
            return None
        try:
            cur = cur[key]
        except (KeyError, IndexError, TypeError):
            return None
    return cur
