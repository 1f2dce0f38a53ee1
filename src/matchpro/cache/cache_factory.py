# src/matchpro/cache/cache_factory.py — v1
"""Factory for object store instantiation from CACHE_BACKEND."""

from __future__ import annotations

from matchpro.cache.base_cache_store import BaseObjectStore
from matchpro.config.settings import Settings


def create_object_store(settings: Settings | None = None) -> BaseObjectStore:
    """Instantiate the configured cache backend.

    Args:
        settings: Application settings. Defaults to an in-memory store.

    Returns:
        Configured BaseObjectStore implementation.

    Raises:
        ValueError: If the backend is unknown or misconfigured.
    """
    if settings is None:
        from matchpro.cache.memory_store import MemoryObjectStore
        return MemoryObjectStore()

    backend = settings.cache_backend

    if backend == "memory":
        from matchpro.cache.memory_store import MemoryObjectStore
        return MemoryObjectStore()

    if backend == "local":
        from matchpro.cache.local_store import LocalObjectStore
        return LocalObjectStore(cache_root=settings.cache_root)

    if backend == "sqlite":
        from matchpro.cache.sqlite_store import SqliteObjectStore
        db_path = settings.cache_root.expanduser() / "matchpro_cache.db"
        return SqliteObjectStore(db_path=db_path)

    if backend == "redis":
        from matchpro.cache.redis_store import RedisObjectStore
        if not settings.cache_redis_url:
            raise ValueError(
                "CACHE_REDIS_URL must be set when CACHE_BACKEND=redis"
            )
        return RedisObjectStore(redis_url=settings.cache_redis_url)

    if backend == "s3":
        from matchpro.cache.s3_store import S3ObjectStore
        if not settings.cache_s3_bucket:
            raise ValueError(
                "CACHE_S3_BUCKET must be set when CACHE_BACKEND=s3"
            )
        return S3ObjectStore(
            bucket=settings.cache_s3_bucket,
            prefix=settings.cache_s3_prefix,
            region=settings.cache_s3_region or None,
            endpoint_url=settings.cache_s3_endpoint_url or None,
        )

    raise ValueError(f"Unsupported cache backend: {backend!r}")
