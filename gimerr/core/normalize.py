from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional
from urllib.parse import urlsplit, urlunsplit

from .errors import InvalidInput


def safe_int(value: Any, fallback: int = 0) -> int:
    """Non-negative floor of a numeric value; ``fallback`` for anything non-finite or unparseable."""
    if value is None or isinstance(value, bool):
        return fallback
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(parsed):
        return fallback
    return max(0, math.floor(parsed))


def normalize_amount_brl(value: Any) -> Optional[Decimal]:
    """Accept 12.5, "12,50", "R$ 1.234,56"; returns a 2dp Decimal or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        try:
            d = Decimal(str(value))
        except InvalidOperation:
            return None
        if not d.is_finite():
            return None
        return d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    raw = str(value).strip()
    if not raw:
        return None
    normalized = re.sub(r"\s+", "", raw)
    normalized = re.sub(r"R\$", "", normalized, flags=re.IGNORECASE)
    if "," in normalized:
        normalized = normalized.replace(".", "").replace(",", ".", 1)
    normalized = re.sub(r"[^0-9.]", "", normalized)
    if not normalized:
        return None
    try:
        d = Decimal(normalized)
    except InvalidOperation:
        return None
    return d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def normalize_base_url(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    parts = urlsplit(value.strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return urlunsplit((parts.scheme, parts.netloc, "", "", ""))


def normalize_website(value: Optional[str]) -> str:
    raw = (value or "").strip()
    if not raw:
        raise InvalidInput("Invalid website")
    raw = re.sub(r"^https?://", "", raw, flags=re.IGNORECASE)
    parts = urlsplit(f"https://{raw}")
    if not parts.netloc:
        raise InvalidInput("Invalid website")
    path = "" if parts.path == "/" else parts.path.rstrip("/")
    return urlunsplit(("https", parts.netloc.lower(), path, parts.query, ""))
