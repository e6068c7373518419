from __future__ import annotations

from functools import lru_cache

import boto3

from .settings import S

_session = boto3.session.Session(region_name=S.aws_region or "us-east-1")

ddb = _session.resource("dynamodb", endpoint_url=S.ddb_endpoint_url or None)


def r2_endpoint() -> str:
    if S.r2_endpoint:
        return S.r2_endpoint.rstrip("/")
    return f"https://{S.r2_account_id}.r2.cloudflarestorage.com"


@lru_cache(maxsize=1)
def r2_client():
    # R2 speaks the S3 API; region must be "auto".
    return boto3.client(
        "s3",
        endpoint_url=r2_endpoint(),
        aws_access_key_id=S.r2_access_key_id,
        aws_secret_access_key=S.r2_secret_access_key,
        region_name="auto",
    )
