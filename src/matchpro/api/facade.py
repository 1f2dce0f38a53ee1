# src/matchpro/api/facade.py — v1
"""Public API facade — single entry point for Python callers.

Usage:
    from matchpro.api.facade import match_single, match_batch
    envelope = await match_single(resume_text, "job-7", job_text)
    run = await match_batch(resume_text, reference_items, incremental=True)

Long-lived callers (the HTTP server, the CLI) build one MatchComponents and
pass it in so single-flight and run generations are shared between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Sequence

from matchpro.batch.coordinator import BatchCoordinator, ProgressCallback
from matchpro.cache.base_cache_store import BaseObjectStore
from matchpro.cache.memory_store import MemoryObjectStore
from matchpro.compute.base_provider import BaseComputeProvider
from matchpro.compute.retry import retry_configs_from_settings
from matchpro.config.settings import Settings
from matchpro.core.models import (
    BatchRun,
    MatchEnvelope,
    Phase,
    ProgressEvent,
    ReferenceItem,
    Subject,
)
from matchpro.progress.session import BatchSession
from matchpro.progress.store import ClientProgressStore
from matchpro.resolver.resolver import MatchResolver
from matchpro.subjects.subject_store import SubjectStore

logger = logging.getLogger(__name__)


@dataclass
class MatchComponents:
    """Wired object graph for one process."""

    settings: Settings
    store: BaseObjectStore | None
    provider: BaseComputeProvider
    resolver: MatchResolver
    coordinator: BatchCoordinator
    progress_store: ClientProgressStore
    session: BatchSession
    subjects: SubjectStore

    async def aclose(self) -> None:
        await self.provider.aclose()
        if self.store is not None:
            self.store.close()


def build_components(
    settings: Settings | None = None,
    cache_store: BaseObjectStore | None = None,
    provider: BaseComputeProvider | None = None,
    progress_store: ClientProgressStore | None = None,
) -> MatchComponents:
    """Wire store, provider, resolver, coordinator and session.

    Args:
        settings: Global settings. Loaded from .env if None.
        cache_store: Cache backend. Built from CACHE_BACKEND if None;
            CACHE_ENABLED=false disables caching.
        provider: Compute provider. Built from WORKFLOW_* if None.
        progress_store: Snapshot store. Built from PROGRESS_STORE_PATH if None.
    """
    if settings is None:
        settings = Settings()

    if cache_store is None and settings.cache_enabled:
        from matchpro.cache.cache_factory import create_object_store
        cache_store = create_object_store(settings)
    if provider is None:
        from matchpro.compute.provider_factory import create_compute_provider
        provider = create_compute_provider(settings)
    if progress_store is None:
        progress_store = ClientProgressStore(settings.progress_store_path)

    resolver = MatchResolver(
        store=cache_store,
        provider=provider,
        compute_timeout_s=settings.compute_timeout_s,
        schema_version=settings.schema_version,
        single_flight=settings.single_flight_enabled,
    )
    coordinator = BatchCoordinator(
        resolver,
        concurrency_limit=settings.batch_concurrency_limit,
        retry_configs=retry_configs_from_settings(settings),
    )
    logger.debug(
        "Components ready: cache=%s provider=%s",
        cache_store.backend_name if cache_store else "disabled",
        provider.provider_name,
    )
    return MatchComponents(
        settings=settings,
        store=cache_store,
        provider=provider,
        resolver=resolver,
        coordinator=coordinator,
        progress_store=progress_store,
        session=BatchSession(coordinator, progress_store),
        # with caching disabled, stored subjects only live for the process
        subjects=SubjectStore(cache_store or MemoryObjectStore()),
    )


async def match_single(
    subject_text: str,
    reference_id: str,
    reference_text: str,
    phase: Phase = "scoring",
    auxiliary_score: float | None = None,
    settings: Settings | None = None,
    components: MatchComponents | None = None,
) -> MatchEnvelope:
    """Resolve one (resume, job, phase) match, from cache when possible.

    Raises:
        InvalidInput: Malformed reference id.
        UpstreamError: Compute failure.
    """
    owned = components is None
    comps = components or build_components(settings)
    try:
        return await comps.resolver.resolve(
            reference_id, subject_text, reference_text, auxiliary_score, phase
        )
    finally:
        if owned:
            await comps.aclose()


async def match_batch(
    subject_text: str,
    reference_items: Sequence[ReferenceItem],
    subject_id: str | None = None,
    incremental: bool = False,
    phase: Phase = "scoring",
    on_progress: ProgressCallback | None = None,
    settings: Settings | None = None,
    components: MatchComponents | None = None,
) -> BatchRun:
    """Run a resumable batch to completion.

    Raises:
        BatchFailed: Every item failed.
        InvalidInput: Duplicate reference ids.
    """
    owned = components is None
    comps = components or build_components(settings)
    try:
        return await comps.session.run(
            subject_text,
            reference_items,
            subject_id=subject_id,
            phase=phase,
            incremental=incremental,
            on_progress=on_progress,
        )
    finally:
        if owned:
            await comps.aclose()


async def stream_batch(
    subject_text: str,
    reference_items: Sequence[ReferenceItem],
    subject_id: str | None = None,
    incremental: bool = False,
    phase: Phase = "scoring",
    settings: Settings | None = None,
    components: MatchComponents | None = None,
) -> AsyncIterator[ProgressEvent]:
    """Yield the progress events of a resumable batch run."""
    owned = components is None
    comps = components or build_components(settings)
    try:
        batch = comps.session.stream(
            subject_text,
            reference_items,
            subject_id=subject_id,
            phase=phase,
            incremental=incremental,
        )
        async for event in batch:
            yield event
    finally:
        if owned:
            await comps.aclose()


async def store_subject(
    subject_text: str,
    settings: Settings | None = None,
    components: MatchComponents | None = None,
) -> Subject:
    """Store a resume text and return its id and digest.

    Raises:
        InvalidInput: Blank text.
        StoreUnavailable: The object store rejected the write.
    """
    owned = components is None
    comps = components or build_components(settings)
    try:
        return await comps.subjects.save(subject_text)
    finally:
        if owned:
            await comps.aclose()
