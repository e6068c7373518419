from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from gimerr.auth.deps import resolve_user_id
from gimerr.models import CheckoutReq
from gimerr.services.checkout import create_topup_checkout

router = APIRouter(tags=["highlights"])


@router.post("/functions/listing_highlight_checkout")
def listing_highlight_checkout(body: CheckoutReq, req: Request) -> Dict[str, Any]:
    user_id = resolve_user_id(req, body.user_token)
    return create_topup_checkout(
        user_id,
        amount_brl=body.amount_brl,
        days=body.days,
        listing_id=body.listing_id,
        auto_activate=body.auto_activate,
        return_base_url=body.return_base_url or str(req.base_url),
    )
