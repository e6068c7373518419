from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from gimerr.auth.deps import resolve_user_id
from gimerr.models import PayoutSummaryReq
from gimerr.services.payouts import payout_summary

router = APIRouter(tags=["partners"])


@router.get("/functions/partner_payout_summary")
def get_partner_payout_summary(req: Request) -> Dict[str, Any]:
    return {"ok": True, "summary": payout_summary(resolve_user_id(req))}


@router.post("/functions/partner_payout_summary")
def partner_payout_summary(req: Request, body: Optional[PayoutSummaryReq] = None) -> Dict[str, Any]:
    user_id = resolve_user_id(req, body.user_token if body else None)
    return {"ok": True, "summary": payout_summary(user_id)}
