from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .aws import ddb
from .settings import S

@dataclass(frozen=True)
class Tables:
    listings: Any
    wallets: Any
    wallet_events: Any
    payout_events: Any
    servers: Any
    users: Any
    game_requests: Any
    reports: Any

T = Tables(
    listings=ddb.Table(S.listings_table_name),
    wallets=ddb.Table(S.wallets_table_name),
    wallet_events=ddb.Table(S.wallet_events_table_name),
    payout_events=ddb.Table(S.payout_events_table_name),
    servers=ddb.Table(S.servers_table_name),
    users=ddb.Table(S.users_table_name),
    game_requests=ddb.Table(S.game_requests_table_name),
    reports=ddb.Table(S.reports_table_name),
)
