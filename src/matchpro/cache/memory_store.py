# src/matchpro/cache/memory_store.py — v1
"""In-process object store (CACHE_BACKEND=memory).

Nothing survives the process. Used for development and tests.
"""

from __future__ import annotations

from matchpro.cache.base_cache_store import JSON_CONTENT_TYPE, BaseObjectStore


class MemoryObjectStore(BaseObjectStore):
    """Dict-backed object store."""

    def __init__(self) -> None:
        self._objects: dict[str, bytes] = {}
        self._content_types: dict[str, str] = {}

    @property
    def backend_name(self) -> str:
        return "memory"

    async def get(self, key: str) -> bytes | None:
        return self._objects.get(key)

    async def put(
        self, key: str, body: bytes, content_type: str = JSON_CONTENT_TYPE
    ) -> None:
        self._objects[key] = bytes(body)
        self._content_types[key] = content_type

    async def delete(self, key: str) -> None:
        self._objects.pop(key, None)
        self._content_types.pop(key, None)

    async def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._objects if k.startswith(prefix))

    def content_type(self, key: str) -> str | None:
        return self._content_types.get(key)

    def __len__(self) -> int:
        return len(self._objects)
