# src/matchpro/progress/store.py — v1
"""Durable client-side snapshot of batch progress.

One JSON record at a well-known path. Only the latest run is kept; loading
it for another subject (or another resume digest) yields nothing. Storage
failures never break a batch: save/clear log a warning and carry on.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from matchpro.core.models import (
    SNAPSHOT_VERSION,
    ClientProgressSnapshot,
    ItemFailure,
    MatchResultItem,
    utc_now,
)

logger = logging.getLogger(__name__)


class ClientProgressStore:
    """Persist and restore ClientProgressSnapshot records."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def save(
        self,
        subject_id: str,
        is_complete: bool,
        processed_count: int,
        total_count: int,
        results: Iterable[MatchResultItem],
        failures: Iterable[ItemFailure] = (),
        content_digest: str | None = None,
    ) -> ClientProgressSnapshot:
        """Write the snapshot, replacing any previous one."""
        snapshot = ClientProgressSnapshot(
            subject_id=subject_id,
            content_digest=content_digest,
            is_complete=is_complete,
            processed_count=processed_count,
            total_count=total_count,
            results=list(results),
            failures=list(failures),
            saved_at=utc_now(),
        )
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".progress-")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(snapshot.model_dump_json())
                os.replace(tmp, self._path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.warning("Failed to save batch progress to %s: %s", self._path, e)
        return snapshot

    def load(
        self, subject_id: str, content_digest: str | None = None
    ) -> ClientProgressSnapshot | None:
        """Return the stored snapshot if it belongs to this subject."""
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Failed to read batch progress from %s: %s", self._path, e)
            return None

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Discarding unreadable batch progress record: %s", e)
            return None
        if not isinstance(data, dict) or data.get("version") != SNAPSHOT_VERSION:
            logger.info("Discarding batch progress record with unknown version")
            return None
        try:
            snapshot = ClientProgressSnapshot.model_validate(data)
        except ValidationError as e:
            logger.warning("Discarding invalid batch progress record: %s", e)
            return None

        if snapshot.subject_id != subject_id:
            logger.debug(
                "Stored progress is for subject %s, not %s", snapshot.subject_id, subject_id
            )
            return None
        if content_digest is not None and snapshot.content_digest != content_digest:
            logger.debug("Stored progress is for another resume version of %s", subject_id)
            return None
        return snapshot

    def clear(self) -> None:
        """Delete the stored snapshot."""
        try:
            self._path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to clear batch progress at %s: %s", self._path, e)
