# tests/unit/resolver/test_match_resolver.py — v1
"""Tests for resolver/resolver.py — cache precedence, write-back, single-flight."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from conftest import FakeComputeProvider

from matchpro.cache.fingerprint import content_digest
from matchpro.cache.memory_store import MemoryObjectStore
from matchpro.core.errors import (
    InvalidInput,
    StoreUnavailable,
    UpstreamRejected,
    UpstreamTimeout,
)
from matchpro.core.models import DetailsData, MatchEnvelope, ScoringData
from matchpro.resolver.resolver import MatchResolver


class CountingStore(MemoryObjectStore):
    def __init__(self):
        super().__init__()
        self.puts = 0
        self.gets = 0

    async def get(self, key):
        self.gets += 1
        return await super().get(key)

    async def put(self, key, body, content_type="application/json"):
        self.puts += 1
        await super().put(key, body, content_type)


class TestCacheOrCompute:
    @pytest.mark.asyncio
    async def test_documented_scenario(self):
        store = CountingStore()
        provider = FakeComputeProvider()
        resolver = MatchResolver(store, provider)

        first = await resolver.resolve(
            "job-7", "resume", "job text", None, "scoring", content_digest="abc123"
        )
        assert provider.call_count == 1
        assert store.puts == 1
        assert await store.list_keys() == ["job-7/scoring/abc123"]
        assert first.meta.source == "computed"

        second = await resolver.resolve(
            "job-7", "resume", "job text", None, "scoring", content_digest="abc123"
        )
        assert provider.call_count == 1
        assert store.puts == 1
        assert second.meta.source == "cache"
        assert second.data == first.data

    @pytest.mark.asyncio
    async def test_digest_computed_from_subject(self, resolver, memory_store):
        await resolver.resolve("job-1", "resume text", "job", None, "scoring")
        assert await memory_store.list_keys() == [
            f"job-1/scoring/{content_digest('resume text')}"
        ]

    @pytest.mark.asyncio
    async def test_persisted_envelope_shape(self, resolver, memory_store):
        env = await resolver.resolve("job-1", "resume", "job", None, "scoring")
        (key,) = await memory_store.list_keys()
        stored = json.loads(await memory_store.get(key))
        assert stored["meta"]["reference_id"] == "job-1"
        assert stored["meta"]["phase"] == "scoring"
        assert stored["meta"]["source"] == "computed"
        assert stored["meta"]["schema_version"] == "v2"
        assert stored["data"]["overall"] == env.data.overall

    @pytest.mark.asyncio
    async def test_phases_cached_separately(self, resolver, fake_provider):
        scoring = await resolver.resolve("job-1", "resume", "job", None, "scoring")
        details = await resolver.resolve("job-1", "resume", "job", 80.0, "details")
        assert isinstance(scoring.data, ScoringData)
        assert isinstance(details.data, DetailsData)
        assert fake_provider.call_count == 2

    @pytest.mark.asyncio
    async def test_new_resume_version_misses(self, resolver, fake_provider):
        await resolver.resolve("job-1", "resume v1", "job", None, "scoring")
        await resolver.resolve("job-1", "resume v2", "job", None, "scoring")
        assert fake_provider.call_count == 2

    @pytest.mark.asyncio
    async def test_invalid_reference_id(self, resolver, fake_provider):
        with pytest.raises(InvalidInput):
            await resolver.resolve("bad/id", "resume", "job", None, "scoring")
        assert fake_provider.call_count == 0


class TestDegradedCache:
    @pytest.mark.asyncio
    async def test_corrupt_entry_recomputed_and_overwritten(self, resolver, memory_store, fake_provider):
        key = f"job-1/scoring/{content_digest('resume')}"
        await memory_store.put(key, b"{not json")
        env = await resolver.resolve("job-1", "resume", "job", None, "scoring")
        assert env.meta.source == "computed"
        assert fake_provider.call_count == 1
        MatchEnvelope.model_validate_json(await memory_store.get(key))

    @pytest.mark.asyncio
    async def test_schema_mismatch_entry_recomputed(self, memory_store, fake_provider):
        old = MatchResolver(memory_store, fake_provider, schema_version="v1")
        await old.resolve("job-1", "resume", "job", None, "scoring")
        new = MatchResolver(memory_store, fake_provider, schema_version="v2")
        env = await new.resolve("job-1", "resume", "job", None, "scoring")
        assert env.meta.schema_version == "v2"
        assert fake_provider.call_count == 2

    @pytest.mark.asyncio
    async def test_unreachable_store_still_computes(self, fake_provider):
        store = MemoryObjectStore()
        store.get = AsyncMock(side_effect=StoreUnavailable("down"))
        store.put = AsyncMock(side_effect=StoreUnavailable("down"))
        resolver = MatchResolver(store, fake_provider)
        env = await resolver.resolve("job-1", "resume", "job", None, "scoring")
        assert env.meta.source == "computed"
        assert fake_provider.call_count == 1

    @pytest.mark.asyncio
    async def test_no_store_means_no_caching(self, fake_provider):
        resolver = MatchResolver(None, fake_provider)
        await resolver.resolve("job-1", "resume", "job", None, "scoring")
        await resolver.resolve("job-1", "resume", "job", None, "scoring")
        assert fake_provider.call_count == 2
        assert await resolver.lookup("job-1", "resume") is None


class TestComputeFailures:
    @pytest.mark.asyncio
    async def test_failure_writes_nothing(self, memory_store):
        provider = FakeComputeProvider(failures={"job": UpstreamRejected("400")})
        resolver = MatchResolver(memory_store, provider)
        with pytest.raises(UpstreamRejected):
            await resolver.resolve("job-1", "resume", "job", None, "scoring")
        assert len(memory_store) == 0

    @pytest.mark.asyncio
    async def test_timeout(self, memory_store):
        provider = FakeComputeProvider(delay_s=1.0)
        resolver = MatchResolver(memory_store, provider, compute_timeout_s=0.05)
        with pytest.raises(UpstreamTimeout):
            await resolver.resolve("job-1", "resume", "job", None, "scoring")
        assert len(memory_store) == 0


class TestLookup:
    @pytest.mark.asyncio
    async def test_lookup_never_computes(self, resolver, fake_provider):
        assert await resolver.lookup("job-1", "resume") is None
        await resolver.resolve("job-1", "resume", "job", None, "scoring")
        env = await resolver.lookup("job-1", "resume")
        assert env is not None and env.meta.source == "cache"
        assert fake_provider.call_count == 1


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_resolves_share_one_compute(self, memory_store):
        gate = asyncio.Event()
        provider = FakeComputeProvider(gate=gate)
        resolver = MatchResolver(memory_store, provider)

        tasks = [
            asyncio.create_task(resolver.resolve("job-1", "resume", "job", None, "scoring"))
            for _ in range(5)
        ]
        await asyncio.sleep(0.01)
        assert resolver.inflight_count == 1
        gate.set()
        envelopes = await asyncio.gather(*tasks)

        assert provider.call_count == 1
        assert len({e.meta.timestamp for e in envelopes}) == 1
        assert resolver.inflight_count == 0

    @pytest.mark.asyncio
    async def test_shared_failure(self, memory_store):
        gate = asyncio.Event()
        provider = FakeComputeProvider(gate=gate, failures={"job": UpstreamRejected("400")})
        resolver = MatchResolver(memory_store, provider)
        tasks = [
            asyncio.create_task(resolver.resolve("job-1", "resume", "job", None, "scoring"))
            for _ in range(3)
        ]
        await asyncio.sleep(0.01)
        gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        assert all(isinstance(r, UpstreamRejected) for r in results)
        assert provider.call_count == 1

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_others(self, memory_store):
        gate = asyncio.Event()
        provider = FakeComputeProvider(gate=gate)
        resolver = MatchResolver(memory_store, provider)
        t1 = asyncio.create_task(resolver.resolve("job-1", "resume", "job", None, "scoring"))
        t2 = asyncio.create_task(resolver.resolve("job-1", "resume", "job", None, "scoring"))
        await asyncio.sleep(0.01)
        t1.cancel()
        gate.set()
        env = await t2
        await asyncio.gather(t1, return_exceptions=True)
        assert env.meta.source == "computed"
        assert t1.cancelled()

    @pytest.mark.asyncio
    async def test_disabled(self, memory_store):
        gate = asyncio.Event()
        provider = FakeComputeProvider(gate=gate)
        resolver = MatchResolver(memory_store, provider, single_flight=False)
        tasks = [
            asyncio.create_task(resolver.resolve("job-1", "resume", "job", None, "scoring"))
            for _ in range(3)
        ]
        await asyncio.sleep(0.01)
        gate.set()
        await asyncio.gather(*tasks)
        assert provider.call_count == 3
