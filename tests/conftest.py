# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides a scripted compute provider, in-memory stores, wired resolver and
coordinator, and sample reference items. No network I/O: the workflow
provider is exercised through httpx.MockTransport in its own tests.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from matchpro.batch.coordinator import BatchCoordinator
from matchpro.cache.memory_store import MemoryObjectStore
from matchpro.compute.base_provider import BaseComputeProvider
from matchpro.compute.retry import RetryConfig
from matchpro.config.settings import Settings
from matchpro.core.models import DetailsData, ReferenceItem, ScoringData
from matchpro.progress.store import ClientProgressStore
from matchpro.resolver.resolver import MatchResolver

SAMPLE_RESUME = (
    "Jane Doe\nSenior backend engineer. 8 years of Python, FastAPI, PostgreSQL, "
    "AWS. Led a team of four building a payments platform."
)

# No sleeping between attempts in tests.
FAST_RETRY = {
    "upstream_unavailable": RetryConfig(max_retries=2, base_delay_s=0.0, jitter=False),
    "upstream_timeout": RetryConfig(max_retries=2, base_delay_s=0.0, jitter=False),
}


def job_text(reference_id: str) -> str:
    return f"Job description for {reference_id}: Python backend role."


class FakeComputeProvider(BaseComputeProvider):
    """Scripted provider recording every call.

    failures maps reference_text to an exception (raised on every call) or a
    list of exceptions (raised one per call, then success).
    """

    def __init__(
        self,
        failures: dict[str, Exception | list[Exception]] | None = None,
        delay_s: float = 0.0,
        gate: asyncio.Event | None = None,
        overall: float = 80.0,
    ) -> None:
        self.calls: list[tuple[str, str]] = []
        self.failures = failures or {}
        self.delay_s = delay_s
        self.gate = gate
        self.overall = overall
        self.active = 0
        self.max_active = 0

    @property
    def provider_name(self) -> str:
        return "fake"

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def compute(self, subject_text, reference_text, auxiliary_score, phase):
        self.calls.append((reference_text, phase))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            failure = self.failures.get(reference_text)
            if isinstance(failure, list):
                if failure:
                    raise failure.pop(0)
            elif failure is not None:
                raise failure
        finally:
            self.active -= 1

        if phase == "scoring":
            return ScoringData(
                overall=self.overall,
                scores={"skills": 85.0, "experience": 75.0, "education": 70.0},
            )
        return DetailsData(
            advantages=["Strong Python background"],
            disadvantages=["No Kubernetes experience"],
            overview="Good overall fit.",
        )


# === FIXTURES: Sample data ===


@pytest.fixture
def resume_text() -> str:
    return SAMPLE_RESUME


@pytest.fixture
def reference_items() -> list[ReferenceItem]:
    """Five jobs, job-1 .. job-5."""
    return [
        ReferenceItem(reference_id=f"job-{i}", reference_text=job_text(f"job-{i}"))
        for i in range(1, 6)
    ]


# === FIXTURES: Components ===


@pytest.fixture
def memory_store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
def fake_provider() -> FakeComputeProvider:
    return FakeComputeProvider()


@pytest.fixture
def resolver(memory_store, fake_provider) -> MatchResolver:
    return MatchResolver(store=memory_store, provider=fake_provider, compute_timeout_s=5.0)


@pytest.fixture
def coordinator(resolver) -> BatchCoordinator:
    return BatchCoordinator(resolver, concurrency_limit=2, retry_configs=FAST_RETRY)


@pytest.fixture
def progress_path(tmp_path: Path) -> Path:
    return tmp_path / "progress" / "batch-match-metadata.json"


@pytest.fixture
def progress_store(progress_path: Path) -> ClientProgressStore:
    return ClientProgressStore(progress_path)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings isolated from any .env file."""
    return Settings(
        _env_file=None,
        cache_backend="memory",
        cache_root=tmp_path / "cache",
        progress_store_path=tmp_path / "progress.json",
        retry_base_delay_s=0.0,
    )
