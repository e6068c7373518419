from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import stripe
from stripe import StripeError

from gimerr.core.ddb import ddb_get, ddb_set
from gimerr.core.errors import AppError, InvalidInput, NotFound, Upstream
from gimerr.core.normalize import normalize_base_url
from gimerr.core.settings import S
from gimerr.core.tables import T
from gimerr.core.time import now_ts, ts_to_iso
from gimerr.services.payments import ensure_stripe_configured

logger = logging.getLogger(__name__)


def _stripe_call(fn, *args: Any, **kwargs: Any) -> Any:
    try:
        return fn(*args, **kwargs)
    except StripeError as exc:
        logger.error("Stripe Connect call %s failed: %s", getattr(fn, "__qualname__", fn), exc)
        raise Upstream(getattr(exc, "user_message", None) or str(exc) or "Falha na chamada Stripe") from exc


def get_partner_user(user_id: str) -> Dict[str, Any]:
    user = ddb_get(T.users, {"id": user_id})
    if not user:
        raise NotFound("Usuário não encontrado")
    return user


def connect_status(user_id: str) -> Dict[str, Any]:
    user = get_partner_user(user_id)
    account_id = user.get("stripe_connect_account_id")
    if not account_id:
        return {
            "ok": True,
            "hasAccount": False,
            "accountId": None,
            "chargesEnabled": False,
            "payoutsEnabled": False,
            "detailsSubmitted": False,
            "onboarded": False,
        }

    ensure_stripe_configured()
    account = _stripe_call(stripe.Account.retrieve, account_id)
    charges = bool(account.get("charges_enabled"))
    payouts = bool(account.get("payouts_enabled"))
    details = bool(account.get("details_submitted"))
    onboarded = charges and payouts

    updates: Dict[str, Any] = {
        "stripe_connect_charges_enabled": charges,
        "stripe_connect_payouts_enabled": payouts,
        "stripe_connect_details_submitted": details,
    }
    if onboarded:
        updates["stripe_connect_onboarded_at"] = user.get("stripe_connect_onboarded_at") or ts_to_iso(now_ts())
    if user.get("is_partner") is not True:
        updates["is_partner"] = True
    ddb_set(T.users, {"id": user_id}, updates)

    return {
        "ok": True,
        "hasAccount": True,
        "accountId": account_id,
        "chargesEnabled": charges,
        "payoutsEnabled": payouts,
        "detailsSubmitted": details,
        "onboarded": onboarded,
    }


def get_or_create_connect_account(user_id: str, email: Optional[str], current: Optional[str]) -> str:
    if current:
        return current
    params: Dict[str, Any] = {
        "type": "express",
        "country": S.stripe_connect_country,
        "capabilities": {
            "card_payments": {"requested": True},
            "transfers": {"requested": True},
        },
        "metadata": {"user_id": user_id},
    }
    if email:
        params["email"] = email
    account = _stripe_call(stripe.Account.create, **params)
    logger.info("Created Stripe Connect account %s for %s", account.get("id"), user_id)
    return str(account.get("id") or "")


def connect_onboard(user_id: str, return_base_url: Optional[str] = None) -> Dict[str, Any]:
    user = get_partner_user(user_id)
    ensure_stripe_configured()
    account_id = get_or_create_connect_account(user_id, user.get("email"), user.get("stripe_connect_account_id"))
    if not account_id:
        raise AppError("Não foi possível criar conta Connect", 500)

    base_url = normalize_base_url(return_base_url) or S.public_base_url
    link = _stripe_call(
        stripe.AccountLink.create,
        account=account_id,
        type="account_onboarding",
        refresh_url=f"{base_url}/partner.html?connect=retry",
        return_url=f"{base_url}/partner.html?connect=return",
    )
    ddb_set(T.users, {"id": user_id}, {"is_partner": True, "stripe_connect_account_id": account_id})
    return {
        "ok": True,
        "accountId": account_id,
        "onboardingUrl": link.get("url"),
        "expiresAt": link.get("expires_at"),
    }


def partner_connect(user_id: str, action: Optional[str], return_base_url: Optional[str] = None) -> Dict[str, Any]:
    action = action or "status"
    if action == "status":
        return connect_status(user_id)
    if action == "onboard":
        return connect_onboard(user_id, return_base_url)
    raise InvalidInput("Ação inválida")
