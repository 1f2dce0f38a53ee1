# src/matchpro/resolver/resolver.py — v1
"""Cache-or-compute resolution of one (reference, phase, subject) key.

Per key: Unchecked -> CacheHit, or Unchecked -> CacheMiss -> Computing ->
Persisted | ComputeFailed. Cache trouble (unreachable store, undecodable
entry) degrades to a miss; compute failures propagate and nothing is
written. Concurrent resolves of one key inside a resolver share a single
in-flight computation.
"""

from __future__ import annotations

import asyncio
import json
import logging

from pydantic import ValidationError

from matchpro.cache.base_cache_store import JSON_CONTENT_TYPE, BaseObjectStore
from matchpro.cache.fingerprint import content_digest as compute_digest
from matchpro.cache.keys import build_key
from matchpro.compute.base_provider import BaseComputeProvider
from matchpro.core.errors import CorruptPayload, StoreUnavailable, UpstreamTimeout
from matchpro.core.models import EnvelopeMeta, MatchEnvelope, Phase, utc_now
from matchpro.logging.context import set_item_context

logger = logging.getLogger(__name__)


class MatchResolver:
    """Resolve match envelopes from the object store or the compute provider."""

    def __init__(
        self,
        store: BaseObjectStore | None,
        provider: BaseComputeProvider,
        compute_timeout_s: float = 60.0,
        schema_version: str = "v2",
        single_flight: bool = True,
    ) -> None:
        """Initialize resolver.

        Args:
            store: Object store; None disables caching entirely.
            provider: Compute provider called on cache misses.
            compute_timeout_s: Upper bound for one compute call.
            schema_version: Version stamped into written envelopes. Entries
                written under another version are treated as misses.
            single_flight: Share in-flight computations per key.
        """
        self._store = store
        self._provider = provider
        self._timeout_s = compute_timeout_s
        self._schema_version = schema_version
        self._single_flight = single_flight
        self._inflight: dict[str, asyncio.Task[MatchEnvelope]] = {}

    @property
    def store(self) -> BaseObjectStore | None:
        return self._store

    @property
    def provider(self) -> BaseComputeProvider:
        return self._provider

    @property
    def inflight_count(self) -> int:
        """Number of keys currently being computed."""
        return len(self._inflight)

    async def resolve(
        self,
        reference_id: str,
        subject_text: str,
        reference_text: str,
        auxiliary_score: float | None = None,
        phase: Phase = "scoring",
        *,
        content_digest: str | None = None,
    ) -> MatchEnvelope:
        """Return the cached envelope for the key, computing it on a miss.

        Args:
            content_digest: Precomputed digest of subject_text (batch callers
                hash the subject once).

        Raises:
            InvalidInput: Malformed key components.
            UpstreamError: Compute failure (nothing is cached).
        """
        digest = content_digest or compute_digest(subject_text)
        key = build_key(reference_id, phase, digest)
        set_item_context(reference_id, phase)

        if not self._single_flight:
            return await self._resolve_key(
                key, reference_id, digest, subject_text, reference_text,
                auxiliary_score, phase,
            )

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(
                self._resolve_key(
                    key, reference_id, digest, subject_text, reference_text,
                    auxiliary_score, phase,
                )
            )
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        else:
            logger.debug("Joining in-flight computation for %s", key)
        # A cancelled caller must not cancel the computation shared with others.
        return await asyncio.shield(task)

    async def lookup(
        self,
        reference_id: str,
        subject_text: str,
        phase: Phase = "scoring",
        *,
        content_digest: str | None = None,
    ) -> MatchEnvelope | None:
        """Cache-only read: the stored envelope or None. Never computes."""
        digest = content_digest or compute_digest(subject_text)
        key = build_key(reference_id, phase, digest)
        return await self._read_cached(key, reference_id, digest, phase)

    async def _resolve_key(
        self,
        key: str,
        reference_id: str,
        digest: str,
        subject_text: str,
        reference_text: str,
        auxiliary_score: float | None,
        phase: Phase,
    ) -> MatchEnvelope:
        cached = await self._read_cached(key, reference_id, digest, phase)
        if cached is not None:
            logger.debug("Cache hit: %s", key)
            return cached

        logger.debug("Cache miss: %s, computing", key)
        try:
            data = await asyncio.wait_for(
                self._provider.compute(subject_text, reference_text, auxiliary_score, phase),
                timeout=self._timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise UpstreamTimeout(
                f"Compute for {reference_id!r} exceeded {self._timeout_s:.1f}s"
            ) from e

        envelope = MatchEnvelope(
            meta=EnvelopeMeta(
                reference_id=reference_id,
                content_digest=digest,
                phase=phase,
                source="computed",
                timestamp=utc_now(),
                schema_version=self._schema_version,
            ),
            data=data,
        )
        await self._write(key, envelope)
        return envelope

    async def _read_cached(
        self, key: str, reference_id: str, digest: str, phase: Phase
    ) -> MatchEnvelope | None:
        if self._store is None:
            return None
        try:
            body = await self._store.get(key)
        except StoreUnavailable as e:
            logger.warning("Cache read failed for %s, treating as miss: %s", key, e)
            return None
        if body is None:
            return None

        try:
            envelope = self._decode(key, body, reference_id, digest, phase)
        except CorruptPayload as e:
            logger.warning("%s; recomputing", e)
            return None
        if envelope.meta.schema_version != self._schema_version:
            logger.info(
                "Ignoring %s cached under schema %s (current %s)",
                key, envelope.meta.schema_version, self._schema_version,
            )
            return None
        return envelope.with_source("cache")

    @staticmethod
    def _decode(
        key: str, body: bytes, reference_id: str, digest: str, phase: Phase
    ) -> MatchEnvelope:
        try:
            raw = json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptPayload(key, f"invalid JSON: {e}") from e
        try:
            envelope = MatchEnvelope.model_validate(raw)
        except ValidationError as e:
            raise CorruptPayload(key, f"{e.error_count()} validation error(s)") from e
        meta = envelope.meta
        if (meta.reference_id, meta.content_digest, meta.phase) != (reference_id, digest, phase):
            raise CorruptPayload(key, "envelope metadata does not match its key")
        return envelope

    async def _write(self, key: str, envelope: MatchEnvelope) -> None:
        if self._store is None:
            return
        body = envelope.model_dump_json().encode("utf-8")
        try:
            await self._store.put(key, body, JSON_CONTENT_TYPE)
        except StoreUnavailable as e:
            logger.warning("Cache write failed for %s, result not persisted: %s", key, e)
