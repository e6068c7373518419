from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default) not in ("0", "false", "False")


def _optional_flag(name: str) -> Optional[bool]:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    return raw not in ("0", "false", "False")


@dataclass(frozen=True)
class Settings:
    # AWS
    aws_region: str = os.environ.get("AWS_REGION", "us-east-1")
    ddb_endpoint_url: str = os.environ.get("DDB_ENDPOINT_URL", "")

    # DynamoDB tables
    listings_table_name: str = os.environ.get("LISTINGS_TABLE_NAME", "listings")
    listings_user_index: str = os.environ.get("LISTINGS_USER_INDEX", "user_id-index")
    wallets_table_name: str = os.environ.get("WALLETS_TABLE_NAME", "wallets")
    wallet_events_table_name: str = os.environ.get("WALLET_EVENTS_TABLE_NAME", "wallet_events")
    payout_events_table_name: str = os.environ.get("PAYOUT_EVENTS_TABLE_NAME", "partner_payout_events")
    payout_events_owner_index: str = os.environ.get("PAYOUT_EVENTS_OWNER_INDEX", "owner_user_id-index")
    servers_table_name: str = os.environ.get("SERVERS_TABLE_NAME", "servers")
    servers_site_index: str = os.environ.get("SERVERS_SITE_INDEX", "official_site-index")
    users_table_name: str = os.environ.get("USERS_TABLE_NAME", "users")
    game_requests_table_name: str = os.environ.get("GAME_REQUESTS_TABLE_NAME", "game_requests")
    reports_table_name: str = os.environ.get("REPORTS_TABLE_NAME", "reports")
    reports_listing_index: str = os.environ.get("REPORTS_LISTING_INDEX", "listing_id-index")

    # Schema capabilities (unset = probe the table once)
    cap_wallets: Optional[bool] = _optional_flag("CAP_WALLETS")
    cap_wallet_events: Optional[bool] = _optional_flag("CAP_WALLET_EVENTS")
    cap_partner_payouts: Optional[bool] = _optional_flag("CAP_PARTNER_PAYOUTS")
    cap_admin_beneficiary: Optional[bool] = _optional_flag("CAP_ADMIN_BENEFICIARY")

    # Auth (Supabase-style HS256 access tokens)
    auth_jwt_secret: str = os.environ.get("AUTH_JWT_SECRET", "")
    auth_jwt_audience: str = os.environ.get("AUTH_JWT_AUDIENCE", "authenticated")

    # Stripe
    stripe_secret_key: str = os.environ.get("STRIPE_SECRET_KEY", os.environ.get("STRIPE_SECRET", ""))
    stripe_webhook_secret: str = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    stripe_webhook_tolerance_seconds: int = int(os.environ.get("STRIPE_WEBHOOK_TOLERANCE_SECONDS", "300"))
    stripe_currency: str = os.environ.get("STRIPE_CURRENCY", "brl").lower()
    stripe_connect_country: str = os.environ.get("STRIPE_CONNECT_COUNTRY", "BR")
    public_base_url: str = os.environ.get("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")

    # Game request decision e-mails (POSTed to a mail function; empty = disabled)
    approval_email_url: str = os.environ.get("APPROVAL_EMAIL_URL", "")
    approval_email_token: str = os.environ.get("APPROVAL_EMAIL_TOKEN", "")

    # Highlight pricing
    highlight_price_per_day_cents: int = int(os.environ.get("HIGHLIGHT_PRICE_PER_DAY_CENTS", "500"))
    highlight_min_topup_cents: int = int(os.environ.get("HIGHLIGHT_MIN_TOPUP_CENTS", "500"))
    highlight_display_day_price: float = float(os.environ.get("HIGHLIGHT_DISPLAY_DAY_PRICE", "10"))
    highlight_display_day_discount: float = float(os.environ.get("HIGHLIGHT_DISPLAY_DAY_DISCOUNT", "0"))
    wallet_sync_max_attempts: int = int(os.environ.get("WALLET_SYNC_MAX_ATTEMPTS", "3"))

    # Revenue share
    owner_share_ratio: str = os.environ.get("OWNER_SHARE_RATIO", "0.5")
    admin_share_ratio: str = os.environ.get("ADMIN_SHARE_RATIO", "0.25")
    fallback_net_ratio: str = os.environ.get("FALLBACK_NET_RATIO", "0.921")

    # Cloudflare R2
    r2_account_id: str = os.environ.get("R2_ACCOUNT_ID", "")
    r2_access_key_id: str = os.environ.get("R2_ACCESS_KEY_ID", "")
    r2_secret_access_key: str = os.environ.get("R2_SECRET_ACCESS_KEY", "")
    r2_bucket: str = os.environ.get("R2_BUCKET", "")
    r2_public_url: str = os.environ.get("R2_PUBLIC_URL", "")
    r2_endpoint: str = os.environ.get("R2_ENDPOINT", "")

    # Observability
    log_level: str = os.environ.get("LOG_LEVEL", "INFO").upper()
    metrics_enabled: bool = _flag("METRICS_ENABLED", "1")


S = Settings()
