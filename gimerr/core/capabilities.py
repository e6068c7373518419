from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Optional

from botocore.exceptions import ClientError

from .errors import is_missing_table
from .settings import S
from .tables import T

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capabilities:
    wallets: bool
    wallet_events: bool
    partner_payouts: bool
    admin_beneficiary: bool


def _table_exists(table: Any) -> bool:
    try:
        table.meta.client.describe_table(TableName=table.name)
    except ClientError as exc:
        if is_missing_table(exc):
            return False
        raise
    return True


def _resolve(override: Optional[bool], table: Any) -> bool:
    if override is not None:
        return override
    return _table_exists(table)


@lru_cache(maxsize=1)
def capabilities() -> Capabilities:
    caps = Capabilities(
        wallets=_resolve(S.cap_wallets, T.wallets),
        wallet_events=_resolve(S.cap_wallet_events, T.wallet_events),
        partner_payouts=_resolve(S.cap_partner_payouts, T.payout_events),
        # Older deployments predate servers.admin_beneficiary_id; the column cannot be probed.
        admin_beneficiary=True if S.cap_admin_beneficiary is None else S.cap_admin_beneficiary,
    )
    logger.info("Schema capabilities resolved: %s", caps)
    return caps


def reset_capabilities() -> None:
    capabilities.cache_clear()
