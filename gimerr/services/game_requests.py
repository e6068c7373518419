"""
Admin review of game/server requests.

Approving a request normally creates the ``servers`` row that listings hang
off. That row names who is paid from highlights on the server: ``owner_id``
(the designated revenue owner) and ``admin_beneficiary_id`` (the approving
admin). An admin can never approve a server into their own ownership.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

import requests
from boto3.dynamodb.conditions import Key

from gimerr.core.capabilities import capabilities
from gimerr.core.ddb import ddb_get, ddb_put, ddb_query_all, ddb_set
from gimerr.core.errors import Conflict, InvalidInput, NotFound
from gimerr.core.normalize import normalize_website
from gimerr.core.settings import S
from gimerr.core.tables import T
from gimerr.core.time import now_ts

logger = logging.getLogger(__name__)

REVIEWABLE_STATUSES = ("pending", "under_review")


def _override_text(override: Dict[str, Any], key: str) -> Optional[str]:
    value = override.get(key)
    if value is None:
        return None
    return str(value).strip() or None


def server_for_site(official_site: str) -> Optional[Dict[str, Any]]:
    rows = ddb_query_all(T.servers, Key("official_site").eq(official_site), index_name=S.servers_site_index)
    return rows[0] if rows else None


def notify_requester(email: str, game_name: str, approved: bool, note: str) -> None:
    if not S.approval_email_url:
        return
    headers = {"Content-Type": "application/json"}
    if S.approval_email_token:
        headers["Authorization"] = f"Bearer {S.approval_email_token}"
    try:
        r = requests.post(
            S.approval_email_url,
            headers=headers,
            json={"to": email, "gameName": game_name, "approved": approved, "note": note},
            timeout=10,
        )
        r.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Decision e-mail for %s not sent: %s", game_name, exc)


def approve_game_request(
    admin_user_id: str,
    request_id: Any,
    *,
    approved: bool,
    note: Optional[str] = None,
    skip_server_insert: bool = False,
    override: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    if request_id in (None, ""):
        raise InvalidInput("Payload inválido")
    override = override or {}

    req = ddb_get(T.game_requests, {"id": str(request_id)})
    if not req:
        raise NotFound("Solicitação não encontrada")
    if req.get("status") not in REVIEWABLE_STATUSES:
        raise Conflict("Solicitação já processada")

    final_name = _override_text(override, "name") or req.get("name")
    final_website = _override_text(override, "website") or req.get("website")
    final_currency = override.get("currency_name") if override.get("currency_name") is not None else req.get("currency_name")
    final_cover = override.get("cover_url") if override.get("cover_url") is not None else req.get("cover_url")

    server_id = None
    if approved and not skip_server_insert:
        official_site = normalize_website(final_website)
        if server_for_site(official_site):
            raise Conflict("Website já cadastrado em servers")

        owner_id = _override_text(override, "ownerUserId") or req.get("user_id")
        if owner_id and owner_id == admin_user_id:
            logger.warning("Admin %s tried to approve request %s into their own ownership", admin_user_id, request_id)
            raise Conflict("O dono do servidor não pode ser o próprio admin que aprova.")

        server_id = uuid.uuid4().hex
        server: Dict[str, Any] = {
            "id": server_id,
            "name": final_name,
            "official_site": official_site,
            "banner_url": final_cover,
            "currency_name": final_currency,
            "status": "active",
            "created_at": now_ts(),
        }
        if owner_id:
            server["owner_id"] = owner_id
        if capabilities().admin_beneficiary:
            server["admin_beneficiary_id"] = admin_user_id
        ddb_put(T.servers, server, condition_expression="attribute_not_exists(id)")

    ddb_set(T.game_requests, {"id": str(request_id)}, {
        "name": final_name,
        "website": final_website,
        "currency_name": final_currency,
        "cover_url": final_cover,
        "status": "approved" if approved else "rejected",
        "note": note or None,
        "reviewed_by": admin_user_id,
        "reviewed_at": now_ts(),
    })
    logger.info("Game request %s %s by %s", request_id, "approved" if approved else "rejected", admin_user_id)

    if req.get("user_email"):
        notify_requester(req["user_email"], final_name or "", approved, note or "")
    return {"ok": True, "serverId": server_id}
