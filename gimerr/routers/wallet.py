from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from gimerr.auth.deps import resolve_user_id
from gimerr.core.errors import InvalidInput
from gimerr.models import WalletActionReq
from gimerr.services.highlights import activate_highlight, deactivate_highlight
from gimerr.services.wallet import sync_wallet

router = APIRouter(tags=["highlights"])


@router.post("/functions/listing_highlight_wallet")
def listing_highlight_wallet(body: WalletActionReq, req: Request) -> Dict[str, Any]:
    user_id = resolve_user_id(req, body.user_token)
    if body.action == "status":
        return {"ok": True, "wallet": sync_wallet(user_id, "status")}
    if not body.listing_id:
        raise InvalidInput("listingId é obrigatório")
    if body.action == "activate":
        return activate_highlight(user_id, body.listing_id)
    return deactivate_highlight(user_id, body.listing_id)
