from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Request

from gimerr.services.settlement import handle_stripe_event, verify_webhook

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stripe"])


@router.post("/functions/stripe_webhook")
async def stripe_webhook(req: Request) -> Dict[str, Any]:
    payload = await req.body()
    event = verify_webhook(payload, req.headers.get("stripe-signature"))
    logger.info("Stripe event %s (%s)", event.get("id"), event.get("type"))
    return handle_stripe_event(event)
