# tests/unit/cache/test_remote_stores.py — v1
"""Tests for cache/redis_store.py and cache/s3_store.py — mocked clients."""

from __future__ import annotations

import fnmatch
import io
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from matchpro.core.errors import StoreUnavailable


# === Redis ===


def _redis_store(storage: dict[bytes | str, bytes]):
    import redis

    mock_redis = MagicMock()
    mock_redis.get = lambda k: storage.get(k)
    mock_redis.set = lambda k, v: storage.__setitem__(k, v)
    mock_redis.delete = lambda k: storage.pop(k, None)
    mock_redis.scan_iter = lambda match: [
        k.encode() for k in list(storage) if fnmatch.fnmatchcase(k, match.replace("\\", ""))
    ]

    with patch("matchpro.cache.redis_store.RedisObjectStore.__init__", return_value=None):
        from matchpro.cache.redis_store import RedisObjectStore
        store = RedisObjectStore.__new__(RedisObjectStore)
        store._client = mock_redis
        store._prefix = "matchpro:cache:"
        store._errors = (redis.exceptions.RedisError,)
    return store, mock_redis


class TestRedisObjectStore:
    def test_import_error_without_redis(self):
        """Clear ImportError when redis is not available."""
        import sys
        redis_mod = sys.modules.get("redis")
        sys.modules["redis"] = None  # type: ignore[assignment]
        try:
            from matchpro.cache.redis_store import RedisObjectStore
            with pytest.raises(ImportError, match="redis"):
                RedisObjectStore(redis_url="redis://localhost")
        finally:
            if redis_mod is not None:
                sys.modules["redis"] = redis_mod
            else:
                sys.modules.pop("redis", None)

    @pytest.mark.asyncio
    async def test_put_get_delete(self):
        storage: dict = {}
        store, _ = _redis_store(storage)
        await store.put("job-1/scoring/abc", b"{}")
        assert storage == {"matchpro:cache:job-1/scoring/abc": b"{}"}
        assert await store.get("job-1/scoring/abc") == b"{}"
        await store.delete("job-1/scoring/abc")
        assert await store.get("job-1/scoring/abc") is None

    @pytest.mark.asyncio
    async def test_list_keys_strips_prefix(self):
        storage = {
            "matchpro:cache:job-1/scoring/a": b"{}",
            "matchpro:cache:job-2/scoring/a": b"{}",
        }
        store, _ = _redis_store(storage)
        assert await store.list_keys("job-1/") == ["job-1/scoring/a"]
        assert await store.list_keys() == ["job-1/scoring/a", "job-2/scoring/a"]

    @pytest.mark.asyncio
    async def test_redis_error_is_store_unavailable(self):
        import redis

        store, mock_redis = _redis_store({})
        mock_redis.get = MagicMock(side_effect=redis.exceptions.ConnectionError("down"))
        with pytest.raises(StoreUnavailable):
            await store.get("job-1/scoring/abc")


# === S3 ===


def _client_error(code: str, status: int) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "GetObject",
    )


@pytest.fixture
def s3_store():
    """S3ObjectStore with a mocked boto3 client backed by a dict."""
    storage: dict[str, bytes] = {}
    mock_client = MagicMock()

    def put_object(Bucket, Key, Body, **kwargs):
        storage[Key] = Body

    def get_object(Bucket, Key):
        if Key not in storage:
            raise _client_error("NoSuchKey", 404)
        return {"Body": io.BytesIO(storage[Key])}

    def delete_object(Bucket, Key):
        storage.pop(Key, None)

    paginator = MagicMock()
    paginator.paginate = lambda Bucket, Prefix: [
        {"Contents": [{"Key": k} for k in sorted(storage) if k.startswith(Prefix)]}
    ]

    mock_client.put_object = MagicMock(side_effect=put_object)
    mock_client.get_object = get_object
    mock_client.delete_object = delete_object
    mock_client.get_paginator = lambda name: paginator

    with patch("matchpro.cache.s3_store.S3ObjectStore.__init__", return_value=None):
        from matchpro.cache.s3_store import S3ObjectStore
        store = S3ObjectStore.__new__(S3ObjectStore)
        store._s3 = mock_client
        store._bucket = "test-bucket"
        store._prefix = "cache/"
    return store, storage, mock_client


class TestS3ObjectStore:
    @pytest.mark.asyncio
    async def test_layout_and_content_type(self, s3_store):
        store, storage, client = s3_store
        await store.put("job-7/scoring/abc123", b"{}")
        assert list(storage) == ["cache/job-7/scoring/abc123.json"]
        kwargs = client.put_object.call_args.kwargs
        assert kwargs["ContentType"].startswith("application/json")
        assert kwargs["Bucket"] == "test-bucket"

    @pytest.mark.asyncio
    async def test_missing_object_is_miss(self, s3_store):
        store, _, _ = s3_store
        assert await store.get("job-7/scoring/abc123") is None

    @pytest.mark.asyncio
    async def test_round_trip_and_delete(self, s3_store):
        store, _, _ = s3_store
        await store.put("job-7/scoring/abc123", b'{"x":1}')
        assert await store.get("job-7/scoring/abc123") == b'{"x":1}'
        await store.delete("job-7/scoring/abc123")
        assert await store.get("job-7/scoring/abc123") is None

    @pytest.mark.asyncio
    async def test_list_keys(self, s3_store):
        store, _, _ = s3_store
        await store.put("job-1/scoring/a", b"{}")
        await store.put("job-1/details/a", b"{}")
        await store.put("job-2/scoring/a", b"{}")
        assert await store.list_keys("job-1/") == ["job-1/details/a", "job-1/scoring/a"]

    @pytest.mark.asyncio
    async def test_access_denied_is_store_unavailable(self, s3_store):
        store, _, client = s3_store

        def denied(Bucket, Key):
            raise _client_error("AccessDenied", 403)

        client.get_object = denied
        with pytest.raises(StoreUnavailable):
            await store.get("job-7/scoring/abc123")

    @pytest.mark.asyncio
    async def test_transport_error_is_store_unavailable(self, s3_store):
        store, _, client = s3_store
        client.put_object = MagicMock(
            side_effect=EndpointConnectionError(endpoint_url="http://minio:9000")
        )
        with pytest.raises(StoreUnavailable):
            await store.put("job-7/scoring/abc123", b"{}")

    def test_constructor_builds_client(self):
        with patch("boto3.client") as mock_client:
            from matchpro.cache.s3_store import S3ObjectStore
            store = S3ObjectStore(
                bucket="b", prefix="results", region="eu-west-3",
                endpoint_url="http://minio:9000",
            )
        mock_client.assert_called_once_with(
            "s3", region_name="eu-west-3", endpoint_url="http://minio:9000"
        )
        assert store._full_key("job-1/scoring/d") == "results/job-1/scoring/d.json"
