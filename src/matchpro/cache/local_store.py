# src/matchpro/cache/local_store.py — v1
"""Local filesystem object store (default CACHE_BACKEND=local).

Each key maps to ``CACHE_ROOT/{key}.json``; the key hierarchy becomes the
directory hierarchy. Writes go through a temporary file and os.replace so a
concurrent reader never sees a half-written envelope. File I/O runs in
worker threads so a slow disk does not stall the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from pathlib import Path

from matchpro.cache.base_cache_store import JSON_CONTENT_TYPE, BaseObjectStore
from matchpro.core.errors import InvalidInput, StoreUnavailable

logger = logging.getLogger(__name__)

_SUFFIX = ".json"


class LocalObjectStore(BaseObjectStore):
    """File-based object store rooted at a directory."""

    def __init__(self, cache_root: Path | str) -> None:
        self._root = Path(cache_root).expanduser().resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def backend_name(self) -> str:
        return "local"

    @property
    def root(self) -> Path:
        return self._root

    async def get(self, key: str) -> bytes | None:
        path = self._entry_path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreUnavailable(f"Cannot read {path}: {e}", key=key) from e

    async def put(
        self, key: str, body: bytes, content_type: str = JSON_CONTENT_TYPE
    ) -> None:
        path = self._entry_path(key)
        try:
            await asyncio.to_thread(_write_atomic, path, body)
        except OSError as e:
            raise StoreUnavailable(f"Cannot write {path}: {e}", key=key) from e
        logger.debug("Local write: %s (%d bytes)", path, len(body))

    async def delete(self, key: str) -> None:
        path = self._entry_path(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise StoreUnavailable(f"Cannot delete {path}: {e}", key=key) from e

    async def list_keys(self, prefix: str = "") -> list[str]:
        return await asyncio.to_thread(self._scan, prefix)

    def _scan(self, prefix: str) -> list[str]:
        keys: list[str] = []
        for path in self._root.rglob(f"*{_SUFFIX}"):
            if path.name.startswith("."):
                continue
            key = path.relative_to(self._root).as_posix()[: -len(_SUFFIX)]
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    def _entry_path(self, key: str) -> Path:
        """Return file path for a key, refusing paths that escape the root."""
        if not key or key.startswith("/") or "\\" in key:
            raise InvalidInput(f"Invalid object key {key!r}")
        path = (self._root / f"{key}{_SUFFIX}").resolve()
        if not path.is_relative_to(self._root):
            raise InvalidInput(f"Object key {key!r} escapes the cache root")
        return path


def _write_atomic(path: Path, body: bytes) -> None:
    tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_bytes(body)
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
