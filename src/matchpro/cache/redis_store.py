# src/matchpro/cache/redis_store.py — v1
"""Redis-based object store (CACHE_BACKEND=redis).

Suitable for multi-instance deployments sharing one cache. The redis-py
client is synchronous; calls run in a worker thread so a slow server never
blocks the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from matchpro.cache.base_cache_store import JSON_CONTENT_TYPE, BaseObjectStore
from matchpro.core.errors import StoreUnavailable

logger = logging.getLogger(__name__)

_KEY_PREFIX = "matchpro:cache:"
_GLOB_SPECIALS = "*?[]\\"


def _escape_glob(value: str) -> str:
    return "".join(f"\\{c}" if c in _GLOB_SPECIALS else c for c in value)


class RedisObjectStore(BaseObjectStore):
    """Redis-backed object store."""

    def __init__(self, redis_url: str, key_prefix: str = _KEY_PREFIX) -> None:
        try:
            import redis
        except ImportError as e:
            raise ImportError(
                "redis package required: pip install redis"
            ) from e

        self._client = redis.Redis.from_url(redis_url)
        self._prefix = key_prefix
        self._errors: tuple[type[BaseException], ...] = (redis.exceptions.RedisError,)

    @property
    def backend_name(self) -> str:
        return "redis"

    async def get(self, key: str) -> bytes | None:
        data = await self._call(self._client.get, self._prefix + key, key=key)
        if data is None:
            return None
        return bytes(data)

    async def put(
        self, key: str, body: bytes, content_type: str = JSON_CONTENT_TYPE
    ) -> None:
        await self._call(self._client.set, self._prefix + key, body, key=key)

    async def delete(self, key: str) -> None:
        await self._call(self._client.delete, self._prefix + key, key=key)

    async def list_keys(self, prefix: str = "") -> list[str]:
        pattern = f"{_escape_glob(self._prefix + prefix)}*"

        def _scan() -> list[str]:
            found = []
            for raw in self._client.scan_iter(match=pattern):
                name = raw.decode("utf-8") if isinstance(raw, bytes) else raw
                found.append(name[len(self._prefix):])
            return found

        return sorted(await self._call(_scan))

    async def _call(self, fn: Callable[..., Any], *args: Any, key: str | None = None) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except self._errors as e:
            raise StoreUnavailable(f"Redis call failed: {e}", key=key) from e

    def close(self) -> None:
        """Close the Redis connection."""
        self._client.close()
