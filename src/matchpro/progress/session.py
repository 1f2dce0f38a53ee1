# src/matchpro/progress/session.py — v1
"""Batch session: a coordinator run bound to the client progress store.

Loads the snapshot at start (incremental mode) or clears it (fresh start),
and saves the running state after every progress tick.
"""

from __future__ import annotations

import inspect
import logging
from typing import AsyncIterator, Sequence

from matchpro.batch.coordinator import BatchCoordinator, BatchStream, ProgressCallback
from matchpro.cache.fingerprint import content_digest as compute_digest
from matchpro.core.errors import BatchFailed
from matchpro.core.models import BatchRun, Phase, ProgressEvent, ReferenceItem
from matchpro.progress.store import ClientProgressStore

logger = logging.getLogger(__name__)


class BatchSession:
    """Resumable batch runs persisted through a ClientProgressStore."""

    def __init__(
        self, coordinator: BatchCoordinator, progress_store: ClientProgressStore
    ) -> None:
        self._coordinator = coordinator
        self._store = progress_store

    @property
    def progress_store(self) -> ClientProgressStore:
        return self._store

    def stream(
        self,
        subject_text: str,
        reference_items: Sequence[ReferenceItem],
        *,
        subject_id: str | None = None,
        phase: Phase = "scoring",
        incremental: bool = False,
        concurrency_limit: int | None = None,
    ) -> BatchStream:
        digest = compute_digest(subject_text)
        sid = subject_id or digest

        snapshot = None
        if incremental:
            snapshot = self._store.load(sid, digest)
        else:
            self._store.clear()

        batch = self._coordinator.stream(
            subject_text,
            reference_items,
            subject_id=sid,
            phase=phase,
            concurrency_limit=concurrency_limit,
            resume_from=snapshot,
        )
        return BatchStream(batch.run, self._persisting(batch))

    async def run(
        self,
        subject_text: str,
        reference_items: Sequence[ReferenceItem],
        *,
        subject_id: str | None = None,
        phase: Phase = "scoring",
        incremental: bool = False,
        concurrency_limit: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BatchRun:
        """Run to completion; raises BatchFailed like BatchCoordinator.run_batch."""
        batch = self.stream(
            subject_text,
            reference_items,
            subject_id=subject_id,
            phase=phase,
            incremental=incremental,
            concurrency_limit=concurrency_limit,
        )
        async for event in batch:
            if on_progress is not None:
                outcome = on_progress(event)
                if inspect.isawaitable(outcome):
                    await outcome
        if batch.run.complete and batch.run.error:
            raise BatchFailed(batch.run)
        return batch.run

    async def _persisting(self, batch: BatchStream) -> AsyncIterator[ProgressEvent]:
        try:
            async for event in batch:
                self.save(batch.run)
                yield event
        finally:
            await batch.aclose()

    def save(self, run: BatchRun) -> None:
        """Persist the current state of a run."""
        self._store.save(
            subject_id=run.subject_id,
            is_complete=run.complete and run.error is None,
            processed_count=run.processed_count,
            total_count=run.total_count,
            results=run.ordered_results(),
            failures=run.ordered_failures(),
            content_digest=run.content_digest,
        )
