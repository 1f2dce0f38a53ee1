# src/matchpro/batch/coordinator.py — v1
"""Batch coordinator — bounded fan-out of one subject over many references.

Workflow:
    1. Validate items, hash the subject once, take a new generation token
    2. Seed results from a matching progress snapshot (incremental mode)
    3. Start min(concurrency_limit, pending) workers pulling from a queue
    4. Yield one ProgressEvent per terminal item outcome
    5. Complete once every item is terminal; zero successes is a batch error

Starting another run or calling cancel() supersedes the current one: it
stops dispatching, yields nothing further and drops in-flight results.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, AsyncIterator, Callable, Sequence

from matchpro.cache.fingerprint import content_digest as compute_digest
from matchpro.compute.retry import RetryConfig, with_retry
from matchpro.core.errors import BatchFailed, InvalidInput, MatchProError, RetryExhausted
from matchpro.core.models import (
    BatchRun,
    ClientProgressSnapshot,
    ItemFailure,
    MatchResultItem,
    Phase,
    ProgressEvent,
    ReferenceItem,
    utc_now,
)
from matchpro.logging.context import set_item_context, set_run_context
from matchpro.resolver.resolver import MatchResolver

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], Any]

# Wakes a superseded run's consumer blocked on its outcome queue.
_SUPERSEDED = None


class BatchStream:
    """Async iterator of ProgressEvents for one run, exposing the run state."""

    def __init__(self, run: BatchRun, events: AsyncIterator[ProgressEvent]) -> None:
        self.run = run
        self._events = events

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._events

    async def aclose(self) -> None:
        await self._events.aclose()  # type: ignore[attr-defined]


class BatchCoordinator:
    """Run many resolves for one subject with bounded concurrency."""

    def __init__(
        self,
        resolver: MatchResolver,
        concurrency_limit: int = 3,
        retry_configs: dict[str, RetryConfig] | None = None,
    ) -> None:
        if concurrency_limit < 1:
            raise InvalidInput("concurrency_limit must be >= 1")
        self._resolver = resolver
        self._concurrency_limit = concurrency_limit
        self._retry_configs = retry_configs
        self._generation = 0
        self._active: dict[int, asyncio.Queue] = {}
        self._tasks: set[asyncio.Task] = set()

    @property
    def current_generation(self) -> int:
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def cancel(self) -> None:
        """Supersede the running batch (if any) without starting a new one."""
        self._advance_generation()

    def stream(
        self,
        subject_text: str,
        reference_items: Sequence[ReferenceItem],
        *,
        subject_id: str | None = None,
        phase: Phase = "scoring",
        concurrency_limit: int | None = None,
        resume_from: ClientProgressSnapshot | None = None,
    ) -> BatchStream:
        """Start a run and return its progress event stream.

        The run takes its generation immediately, superseding any earlier run.

        Raises:
            InvalidInput: Duplicate reference ids or a bad concurrency limit.
        """
        limit = self._concurrency_limit if concurrency_limit is None else concurrency_limit
        if limit < 1:
            raise InvalidInput("concurrency_limit must be >= 1")
        _check_unique(reference_items)

        digest = compute_digest(subject_text)
        generation = self._advance_generation()
        run = BatchRun(
            subject_id=subject_id or digest,
            content_digest=digest,
            phase=phase,
            generation=generation,
            reference_ids=[item.reference_id for item in reference_items],
            total_count=len(reference_items),
        )
        self._seed(run, resume_from)
        run.processed_count = len(run.results)

        outcomes: asyncio.Queue = asyncio.Queue()
        self._active[generation] = outcomes
        events = self._drive(run, list(reference_items), subject_text, limit, outcomes)
        return BatchStream(run, events)

    async def run_batch(
        self,
        subject_text: str,
        reference_items: Sequence[ReferenceItem],
        *,
        subject_id: str | None = None,
        phase: Phase = "scoring",
        on_progress: ProgressCallback | None = None,
        concurrency_limit: int | None = None,
        resume_from: ClientProgressSnapshot | None = None,
    ) -> BatchRun:
        """Run a batch to completion and return its final state.

        on_progress (sync or async) receives every ProgressEvent.

        Raises:
            BatchFailed: Non-empty batch finished with zero successes.
            InvalidInput: See stream().
        """
        batch = self.stream(
            subject_text,
            reference_items,
            subject_id=subject_id,
            phase=phase,
            concurrency_limit=concurrency_limit,
            resume_from=resume_from,
        )
        async for event in batch:
            if on_progress is not None:
                outcome = on_progress(event)
                if inspect.isawaitable(outcome):
                    await outcome

        run = batch.run
        if not run.complete:
            logger.info("Batch generation %d superseded before completion", run.generation)
        elif run.error:
            raise BatchFailed(run)
        return run

    # --- Internals ---

    def _advance_generation(self) -> int:
        self._generation += 1
        for queue in self._active.values():
            queue.put_nowait(_SUPERSEDED)
        self._active.clear()
        return self._generation

    @staticmethod
    def _seed(run: BatchRun, snapshot: ClientProgressSnapshot | None) -> None:
        if snapshot is None:
            return
        if snapshot.subject_id != run.subject_id or (
            snapshot.content_digest is not None
            and snapshot.content_digest != run.content_digest
        ):
            logger.info(
                "Ignoring progress snapshot for another subject (%s)", snapshot.subject_id
            )
            return
        wanted = set(run.reference_ids)
        for result in snapshot.results:
            if result.reference_id in wanted:
                run.results[result.reference_id] = result
        logger.info(
            "Resuming batch: %d/%d items already resolved",
            len(run.results), run.total_count,
        )

    async def _drive(
        self,
        run: BatchRun,
        items: list[ReferenceItem],
        subject_text: str,
        limit: int,
        outcomes: asyncio.Queue,
    ) -> AsyncIterator[ProgressEvent]:
        generation = run.generation
        set_run_context(run.subject_id, str(generation))
        pending = [item for item in items if item.reference_id not in run.results]
        stop = asyncio.Event()

        if not pending:
            self._finish(run)
        yield self._event(run)
        if run.complete:
            self._active.pop(generation, None)
            return

        queue: asyncio.Queue[ReferenceItem] = asyncio.Queue()
        for item in pending:
            queue.put_nowait(item)
        n_workers = min(limit, len(pending))
        logger.info(
            "Batch generation %d: %d pending of %d items, %d workers",
            generation, len(pending), run.total_count, n_workers,
        )
        for _ in range(n_workers):
            task = asyncio.create_task(
                self._worker(run, subject_text, queue, outcomes, stop)
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        try:
            while run.processed_count < run.total_count:
                outcome = await outcomes.get()
                if outcome is _SUPERSEDED or not self.is_current(generation):
                    logger.info("Batch generation %d superseded", generation)
                    return
                reference_id, result, failure = outcome
                if reference_id in run.results or reference_id in run.failures:
                    continue
                if result is not None:
                    run.results[reference_id] = result
                else:
                    run.failures[reference_id] = failure
                run.processed_count += 1
                if run.processed_count == run.total_count:
                    self._finish(run)
                yield self._event(run, reference_id, result, failure)
        finally:
            stop.set()
            if self._active.get(generation) is outcomes:
                del self._active[generation]

    async def _worker(
        self,
        run: BatchRun,
        subject_text: str,
        queue: asyncio.Queue[ReferenceItem],
        outcomes: asyncio.Queue,
        stop: asyncio.Event,
    ) -> None:
        while not stop.is_set() and self.is_current(run.generation):
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            outcome = await self._process(run, subject_text, item)
            if stop.is_set() or not self.is_current(run.generation):
                logger.debug("Dropping result for %s from superseded run", item.reference_id)
                return
            outcomes.put_nowait(outcome)

    async def _process(
        self, run: BatchRun, subject_text: str, item: ReferenceItem
    ) -> tuple[str, MatchResultItem | None, ItemFailure | None]:
        rid = item.reference_id
        set_item_context(rid, run.phase)
        try:
            envelope = await with_retry(
                self._resolver.resolve,
                rid,
                subject_text,
                item.reference_text,
                item.auxiliary_score,
                run.phase,
                content_digest=run.content_digest,
                label=f"resolve {rid}",
                retry_configs=self._retry_configs,
            )
        except RetryExhausted as e:
            logger.warning("Item %s failed after %d attempts: %s", rid, e.attempts, e.last_error)
            return rid, None, _failure(rid, e.last_error, e.attempts)
        except MatchProError as e:
            logger.warning("Item %s failed: %s", rid, e)
            return rid, None, _failure(rid, e, 1)
        except Exception as e:
            logger.exception("Unexpected error resolving %s", rid)
            return rid, None, ItemFailure(
                reference_id=rid,
                kind="internal_error",
                message=f"{type(e).__name__}: {e}",
            )
        return rid, MatchResultItem.from_envelope(envelope), None

    @staticmethod
    def _finish(run: BatchRun) -> None:
        run.complete = True
        run.completed_at = utc_now()
        if run.total_count > 0 and not run.results:
            run.error = f"All {run.total_count} items failed to resolve"
            logger.error("Batch generation %d failed: %s", run.generation, run.error)
        else:
            logger.info(
                "Batch generation %d complete: %d results, %d failures",
                run.generation, len(run.results), len(run.failures),
            )

    @staticmethod
    def _event(
        run: BatchRun,
        reference_id: str | None = None,
        result: MatchResultItem | None = None,
        failure: ItemFailure | None = None,
    ) -> ProgressEvent:
        return ProgressEvent(
            generation=run.generation,
            subject_id=run.subject_id,
            processed_count=run.processed_count,
            total_count=run.total_count,
            reference_id=reference_id,
            result=result,
            failure=failure,
            complete=run.complete,
            error=run.error,
        )


def _check_unique(items: Sequence[ReferenceItem]) -> None:
    seen: set[str] = set()
    for item in items:
        if item.reference_id in seen:
            raise InvalidInput(f"Duplicate reference_id in batch: {item.reference_id!r}")
        seen.add(item.reference_id)


def _failure(reference_id: str, error: MatchProError, attempts: int) -> ItemFailure:
    return ItemFailure(
        reference_id=reference_id,
        kind=error.kind,
        message=str(error),
        retryable=error.retryable,
        attempts=attempts,
    )
