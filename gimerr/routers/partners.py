from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from gimerr.auth.deps import resolve_user_id
from gimerr.models import PartnerOnboardReq
from gimerr.services.partners import partner_connect

router = APIRouter(tags=["partners"])


@router.post("/functions/partner_connect_onboarding")
def partner_connect_onboarding(body: PartnerOnboardReq, req: Request) -> Dict[str, Any]:
    user_id = resolve_user_id(req, body.user_token)
    return partner_connect(user_id, body.action, body.return_base_url or str(req.base_url))
