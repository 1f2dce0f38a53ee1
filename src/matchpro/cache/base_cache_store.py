# src/matchpro/cache/base_cache_store.py — v1
"""Abstract object store interface for cached match envelopes.

Values are opaque bytes. A miss is ``None``, never an exception; transport,
auth and I/O failures raise StoreUnavailable. Writes are last-writer-wins
overwrites, so no locking is needed around concurrent puts of one key.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

JSON_CONTENT_TYPE = "application/json; charset=utf-8"


class BaseObjectStore(ABC):
    """Unified interface for object cache backends."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Backend identifier (memory, local, sqlite, redis, s3)."""

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Return stored bytes, or None when the key does not exist."""

    @abstractmethod
    async def put(
        self, key: str, body: bytes, content_type: str = JSON_CONTENT_TYPE
    ) -> None:
        """Store bytes under key, overwriting any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key. Deleting a missing key is not an error."""

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> list[str]:
        """List keys starting with prefix, sorted."""

    def close(self) -> None:
        """Release client resources. No-op by default."""
