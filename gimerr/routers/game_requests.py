from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from gimerr.auth.deps import get_authenticated_user_id, require_admin
from gimerr.models import GameApproveReq
from gimerr.services.game_requests import approve_game_request

router = APIRouter(tags=["admin"])


@router.post("/functions/game_approve")
def game_approve(body: GameApproveReq, user_id: str = Depends(get_authenticated_user_id)) -> Dict[str, Any]:
    require_admin(user_id)
    return approve_game_request(
        user_id,
        body.request_id,
        approved=body.approved,
        note=body.note,
        skip_server_insert=body.skip_server_insert,
        override=body.override_fields(),
    )
