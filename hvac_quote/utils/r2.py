"""Photo blob storage on Cloudflare R2 (S3-compatible).

Customer photos are stored under one prefix per lead:
    leads/{lead_id}/{slot_key}-{millis}.jpg
The millisecond suffix keeps re-uploads to the same slot from overwriting
each other; the database keeps one row per upload.
"""

from __future__ import annotations

import time
from typing import Any

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import ClientError

from hvac_quote.config import settings

logger = structlog.get_logger()

_EXTENSIONS: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/heic": ".heic",
    "image/heif": ".heif",
}


def r2_configured() -> bool:
    """True when every credential needed for photo storage is set."""
    return bool(
        settings.r2_account_id
        and settings.r2_access_key_id
        and settings.r2_secret_access_key
        and settings.r2_bucket_name
    )


def extension_for(mime_type: str) -> str:
    return _EXTENSIONS.get(mime_type.lower(), ".jpg")


def photo_storage_key(lead_id: str, slot_key: str, mime_type: str, now_ms: int | None = None) -> str:
    """Build the object key for one uploaded photo."""
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"leads/{lead_id}/{slot_key}-{stamp}{extension_for(mime_type)}"


def _build_client() -> Any:
    return boto3.client(
        "s3",
        endpoint_url=f"https://{settings.r2_account_id}.r2.cloudflarestorage.com",
        aws_access_key_id=settings.r2_access_key_id,
        aws_secret_access_key=settings.r2_secret_access_key,
        config=Config(signature_version="s3v4"),
        region_name="auto",
    )


_client: Any = None


def _get_client() -> Any:
    global _client  # noqa: PLW0603
    if _client is None:
        _client = _build_client()
    return _client


def reset_client() -> None:
    """Drop the cached client (tests swap credentials between cases)."""
    global _client  # noqa: PLW0603
    _client = None


def upload_object(key: str, data: bytes, content_type: str = "image/jpeg") -> str:
    """Upload bytes and return the storage key."""
    _get_client().put_object(
        Bucket=settings.r2_bucket_name,
        Key=key,
        Body=data,
        ContentType=content_type,
    )
    logger.info("r2_upload", key=key, size=len(data), content_type=content_type)
    return key


def generate_presigned_url(key: str) -> str:
    """Pre-signed GET URL, valid for ``presigned_url_expiry_seconds``."""
    try:
        url: str = _get_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": settings.r2_bucket_name, "Key": key},
            ExpiresIn=settings.presigned_url_expiry_seconds,
        )
    except ClientError as e:
        logger.error("r2_presign_failed", key=key, error=str(e))
        raise
    return url


def resolve_url(key_or_url: str) -> str:
    """Storage key to presigned URL; full URLs pass through."""
    if key_or_url.startswith(("http://", "https://")):
        return key_or_url
    return generate_presigned_url(key_or_url)


def delete_object(key: str) -> None:
    _get_client().delete_object(Bucket=settings.r2_bucket_name, Key=key)
    logger.info("r2_delete", key=key)


def head_bucket() -> None:
    """Raise if the bucket is unreachable with the configured credentials."""
    _get_client().head_bucket(Bucket=settings.r2_bucket_name)
