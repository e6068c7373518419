from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from gimerr.auth.deps import resolve_user_id
from gimerr.models import ListingDeleteReq
from gimerr.services.listings import delete_listing

router = APIRouter(tags=["listings"])


@router.post("/functions/listing_delete")
def listing_delete(body: ListingDeleteReq, req: Request) -> Dict[str, Any]:
    user_id = resolve_user_id(req, body.user_token)
    return delete_listing(user_id, body.listing_id or "")
