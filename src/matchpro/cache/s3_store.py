# src/matchpro/cache/s3_store.py — v1
"""S3-compatible object store (CACHE_BACKEND=s3).

Supports AWS S3, MinIO, and other S3-compatible storage. Objects live at
``{prefix}{key}.json``. A missing object (404 / NoSuchKey) is a miss; every
other client or transport error is StoreUnavailable.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from botocore.exceptions import BotoCoreError, ClientError

from matchpro.cache.base_cache_store import JSON_CONTENT_TYPE, BaseObjectStore
from matchpro.core.errors import StoreUnavailable

logger = logging.getLogger(__name__)

_SUFFIX = ".json"
_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


class S3ObjectStore(BaseObjectStore):
    """Object store on an S3 bucket."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "cache/",
        region: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        """Initialize S3 store.

        Args:
            bucket: S3 bucket name.
            prefix: Key prefix for all objects (e.g. "cache/").
            region: AWS region (optional, uses boto3 default if not set).
            endpoint_url: Custom endpoint for MinIO/compatible storage.
        """
        import boto3

        kwargs: dict = {}
        if region:
            kwargs["region_name"] = region
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url

        self._s3 = boto3.client("s3", **kwargs)
        self._bucket = bucket
        self._prefix = prefix.rstrip("/") + "/" if prefix else ""

    @property
    def backend_name(self) -> str:
        return "s3"

    def _full_key(self, key: str) -> str:
        """Build the full S3 object key from a cache key."""
        return f"{self._prefix}{key}{_SUFFIX}"

    async def get(self, key: str) -> bytes | None:
        full_key = self._full_key(key)

        def _read() -> bytes:
            response = self._s3.get_object(Bucket=self._bucket, Key=full_key)
            return response["Body"].read()

        try:
            return await self._call(_read, key=key)
        except ClientError as e:
            if _is_missing(e):
                return None
            raise StoreUnavailable(f"S3 get failed for {full_key}: {e}", key=key) from e

    async def put(
        self, key: str, body: bytes, content_type: str = JSON_CONTENT_TYPE
    ) -> None:
        full_key = self._full_key(key)
        try:
            await self._call(
                self._s3.put_object,
                Bucket=self._bucket,
                Key=full_key,
                Body=body,
                ContentType=content_type,
                key=key,
            )
        except ClientError as e:
            raise StoreUnavailable(f"S3 put failed for {full_key}: {e}", key=key) from e
        logger.debug("S3 write: s3://%s/%s (%d bytes)", self._bucket, full_key, len(body))

    async def delete(self, key: str) -> None:
        full_key = self._full_key(key)
        try:
            await self._call(
                self._s3.delete_object, Bucket=self._bucket, Key=full_key, key=key
            )
        except ClientError as e:
            raise StoreUnavailable(f"S3 delete failed for {full_key}: {e}", key=key) from e

    async def list_keys(self, prefix: str = "") -> list[str]:
        """List cache keys under a key prefix (paginates through all objects)."""
        full_prefix = f"{self._prefix}{prefix}"

        def _list() -> list[str]:
            keys: list[str] = []
            paginator = self._s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._bucket, Prefix=full_prefix):
                for obj in page.get("Contents", []):
                    name = obj["Key"][len(self._prefix):]
                    if name.endswith(_SUFFIX):
                        keys.append(name[: -len(_SUFFIX)])
            return keys

        try:
            return sorted(await self._call(_list))
        except ClientError as e:
            raise StoreUnavailable(f"S3 list failed for {full_prefix}: {e}") from e

    async def _call(self, fn: Callable[..., Any], *args: Any, key: str | None = None, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except BotoCoreError as e:
            raise StoreUnavailable(f"S3 transport error: {e}", key=key) from e


def _is_missing(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return code in _MISSING_CODES or status == 404
