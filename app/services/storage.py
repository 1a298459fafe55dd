"""Object storage for item photos (S3-compatible, via aioboto3)."""

import logging
import os
from asyncio import Lock
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from uuid import uuid4

import aioboto3
from aiobotocore.client import AioBaseClient
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import HTTPException

from app.config import Settings


logger = logging.getLogger("s3")  # Logger for S3 interactions


BUCKET = os.getenv("S3_BUCKET", "lemore")
_settings: Settings | None = None

_client_ctx: AbstractAsyncContextManager[AioBaseClient] | None = None
_client: AioBaseClient | None = None
_client_lock: Lock = Lock()

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/heic": "heic",
}


def _setting(env_name: str, attr: str, default: str | None) -> str | None:
    return os.getenv(
        env_name,
        getattr(_settings, attr) if _settings is not None else default,
    )


async def _make_client() -> AioBaseClient:
    session = aioboto3.Session()
    client_ctx = session.client(
        "s3",
        endpoint_url=_setting("S3_ENDPOINT", "s3_endpoint", None),
        region_name=_setting("S3_REGION", "s3_region", "us-east-1"),
        aws_access_key_id=_setting("S3_ACCESS_KEY", "s3_access_key", None),
        aws_secret_access_key=_setting("S3_SECRET_KEY", "s3_secret_key", None),
    )
    try:
        client = await client_ctx.__aenter__()
    except Exception as exc:
        try:
            await client_ctx.__aexit__(None, None, None)
        except Exception:  # pragma: no cover - best effort cleanup
            logger.exception("Failed to close S3 client after failed entry")
        logger.exception("Failed to create S3 client: %s", exc)
        raise
    global _client_ctx
    _client_ctx = client_ctx
    return client


async def get_client() -> AioBaseClient:
    """Return a cached aioboto3 client, creating it if needed."""
    global _client
    if _client is not None:
        return _client

    async with _client_lock:
        if _client is None:
            _client = await _make_client()
        return _client


async def close_client() -> None:
    """Close the cached S3 client if it exists."""
    global _client, _client_ctx
    if _client_ctx is not None:
        try:
            await _client_ctx.__aexit__(None, None, None)
        except Exception:  # pragma: no cover - best effort cleanup
            logger.exception("Failed to close S3 client")
    _client = None
    _client_ctx = None


async def init_storage(cfg: Settings) -> None:
    """Store settings and reinitialize the client."""
    global _settings
    _settings = cfg
    await close_client()


def _bucket() -> str:
    return _setting("S3_BUCKET", "s3_bucket", BUCKET) or BUCKET


async def upload_item_photo(
    user_id: str, data: bytes, content_type: str = "image/jpeg"
) -> str:
    """Upload one item photo and return its object key."""
    ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    ext = _EXTENSIONS.get(content_type.lower(), "jpg")
    key = f"{user_id}/items/{ts}-{uuid4().hex}.{ext}"
    try:
        client = await get_client()
        await client.put_object(
            Bucket=_bucket(), Key=key, Body=data, ContentType=content_type
        )
    except (BotoCoreError, ClientError) as exc:
        logger.exception("S3 upload failed: %s", exc)
        raise HTTPException(
            status_code=500,
            detail="S3 upload failed",
        ) from exc
    return key


async def delete_objects(keys: list[str]) -> None:
    """Remove photo objects after their rows were deleted."""
    if not keys:
        return
    try:
        client = await get_client()
        await client.delete_objects(
            Bucket=_bucket(),
            Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
        )
    except (BotoCoreError, ClientError):
        # rows are already gone; orphaned objects are left for lifecycle rules
        logger.exception("S3 delete failed for %d objects", len(keys))


def get_public_url(key: str) -> str:
    """Return a public URL for the object."""
    base = _setting("S3_PUBLIC_URL", "s3_public_url", None)
    if base:
        return f"{base.rstrip('/')}/{key}"

    endpoint = _setting("S3_ENDPOINT", "s3_endpoint", None)
    if endpoint:
        return f"{endpoint.rstrip('/')}/{_bucket()}/{key}"

    region = _setting("S3_REGION", "s3_region", "us-east-1")
    return f"https://{_bucket()}.s3.{region}.amazonaws.com/{key}"
