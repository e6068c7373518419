from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple
from urllib.parse import unquote, urlsplit

from botocore.exceptions import ClientError

from gimerr.core.aws import r2_client
from gimerr.core.errors import AppError, Upstream, client_error_code
from gimerr.core.settings import S

logger = logging.getLogger(__name__)

_GONE_CODES = {"404", "NoSuchKey", "NotFound"}


def parse_r2_key(raw: Optional[str]) -> Optional[str]:
    """
    Object key for a stored image reference.

    Accepts bare keys, URLs on the public R2 host, bucket-prefixed paths,
    ``*.r2.cloudflarestorage.com`` and ``*.r2.dev`` URLs. Anything else is None.
    """
    value = str(raw or "").strip()
    if not value:
        return None
    if not value.startswith(("http://", "https://")):
        return unquote(value.lstrip("/"))

    parts = urlsplit(value)
    host = parts.netloc
    path = unquote(parts.path.lstrip("/"))
    if not path:
        return None
    if S.r2_public_url and urlsplit(S.r2_public_url).netloc == host:
        return path
    bucket = S.r2_bucket
    if bucket and path.startswith(f"{bucket}/"):
        return path[len(bucket) + 1:]
    if bucket and ".r2.cloudflarestorage.com" in host:
        marker = f"/{bucket}/"
        idx = parts.path.find(marker)
        if idx >= 0:
            return unquote(parts.path[idx + len(marker):])
    if host.endswith(".r2.dev"):
        return path
    return None


def collect_keys(refs: Iterable[object], prefix: str) -> List[str]:
    """Unique parsed keys under ``prefix``, first-seen order."""
    seen: List[str] = []
    for ref in refs:
        key = parse_r2_key(str(ref))
        if key and key.startswith(prefix) and key not in seen:
            seen.append(key)
    return seen


def delete_r2_object(key: str) -> None:
    if not (S.r2_account_id or S.r2_endpoint) or not S.r2_access_key_id or not S.r2_secret_access_key or not S.r2_bucket:
        raise AppError("R2 storage is not configured", 500)
    try:
        r2_client().delete_object(Bucket=S.r2_bucket, Key=key)
    except ClientError as exc:
        if client_error_code(exc) in _GONE_CODES:
            return
        raise Upstream(f"R2 delete failed for {key}: {client_error_code(exc)}") from exc


def delete_r2_objects(keys: Iterable[str], label: str = "object") -> Tuple[int, int]:
    """Best effort; returns ``(deleted, failed)``."""
    deleted = failed = 0
    for key in keys:
        try:
            delete_r2_object(key)
        except AppError as exc:
            failed += 1
            logger.error("Could not delete R2 %s %s: %s", label, key, exc.message)
        else:
            deleted += 1
    return deleted, failed
