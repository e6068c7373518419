from __future__ import annotations

import base64
import json
from typing import Any, Dict, Optional

import jwt
from fastapi import Request

from gimerr.core.ddb import ddb_get
from gimerr.core.errors import Forbidden, Unauthenticated
from gimerr.core.settings import S
from gimerr.core.tables import T


def _jwt_enabled() -> bool:
    return bool(S.auth_jwt_secret)


def _decode_access_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(
            token,
            S.auth_jwt_secret,
            algorithms=["HS256"],
            audience=S.auth_jwt_audience or None,
            options={"verify_aud": bool(S.auth_jwt_audience)},
        )
    except jwt.ExpiredSignatureError as exc:
        raise Unauthenticated("Sessão expirada") from exc
    except jwt.PyJWTError as exc:
        raise Unauthenticated("Sessão inválida") from exc


def _decode_jwt_sub(token: str) -> Optional[str]:
    if token.count(".") != 2:
        return None
    _, payload, _ = token.split(".", 2)
    if not payload:
        return None
    padding = "=" * (-len(payload) % 4)
    try:
        decoded = base64.urlsafe_b64decode(payload + padding)
        data = json.loads(decoded.decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    sub = data.get("sub") if isinstance(data, dict) else None
    return sub if isinstance(sub, str) and sub.strip() else None


def extract_bearer_token(auth_header: Optional[str]) -> str:
    if not auth_header:
        raise Unauthenticated("Não autorizado")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthenticated("Não autorizado")
    return token.strip()


def user_id_from_token(token: str) -> str:
    if _jwt_enabled():
        payload = _decode_access_token(token)
        sub = payload.get("sub")
        if not isinstance(sub, str) or not sub.strip():
            raise Unauthenticated("Sessão inválida")
        return sub
    # Dev fallback: unsigned JWT subject, or the raw token as the user id.
    return _decode_jwt_sub(token) or token


def resolve_user_id(request: Request, body_token: Optional[str] = None) -> str:
    """
    A ``userToken`` in the body wins over the Authorization header, so the
    browser can call with the anon key as bearer and the session in the body.
    """
    token = (body_token or "").strip()
    if token:
        return user_id_from_token(token)

    if not _jwt_enabled():
        fallback_user = request.headers.get("x-user-id")
        if fallback_user:
            return fallback_user

    return user_id_from_token(extract_bearer_token(request.headers.get("authorization")))


async def get_authenticated_user_id(request: Request) -> str:
    return resolve_user_id(request)


def require_admin(user_id: str) -> None:
    user = ddb_get(T.users, {"id": user_id})
    if not user or not user.get("is_admin"):
        raise Forbidden("Acesso restrito a admins")
