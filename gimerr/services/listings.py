from __future__ import annotations

import logging
from typing import Any, Dict, List

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from gimerr.core.capabilities import capabilities
from gimerr.core.ddb import ddb_del, ddb_query_all
from gimerr.core.errors import InvalidInput, is_missing_table
from gimerr.core.settings import S
from gimerr.core.tables import T
from gimerr.services.highlights import get_owned_listing, release_listing_highlight
from gimerr.services.r2 import collect_keys, delete_r2_objects

logger = logging.getLogger(__name__)


def report_evidence_refs(listing_id: str) -> List[Any]:
    try:
        rows = ddb_query_all(T.reports, Key("listing_id").eq(listing_id), index_name=S.reports_listing_index)
    except ClientError as exc:
        if is_missing_table(exc):
            return []
        raise
    refs: List[Any] = []
    for row in rows:
        refs.extend(row.get("evidence_images") or [])
    return refs


def delete_listing(user_id: str, listing_id: str) -> Dict[str, Any]:
    if not listing_id:
        raise InvalidInput("listingId é obrigatório")
    listing = get_owned_listing(user_id, listing_id)

    image_keys = collect_keys(listing.get("images") or [], f"listings/{user_id}/")
    evidence_keys = collect_keys(report_evidence_refs(listing_id), "reports/")

    wallet = release_listing_highlight(
        user_id,
        listing,
        lambda: ddb_del(T.listings, {"id": listing_id}),
        wallets_enabled=capabilities().wallets,
    )

    deleted, failed = delete_r2_objects(image_keys, "image")
    evidence_deleted, evidence_failed = delete_r2_objects(evidence_keys, "report evidence")
    logger.info(
        "Listing %s deleted by %s: %d/%d image(s), %d/%d evidence file(s) removed",
        listing_id, user_id, deleted, len(image_keys), evidence_deleted, len(evidence_keys),
    )

    summary = None
    if wallet is not None:
        summary = {k: wallet[k] for k in ("availableSeconds", "totalPurchasedSeconds", "totalConsumedSeconds", "activeListingCount")}
    return {
        "ok": True,
        "deletedKeys": deleted,
        "failedKeys": failed,
        "deletedReportEvidenceKeys": evidence_deleted,
        "failedReportEvidenceKeys": evidence_failed,
        "refundedAmount": 0,
        "wallet": summary,
    }
