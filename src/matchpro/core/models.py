# src/matchpro/core/models.py — v1
"""Shared Pydantic domain models used across modules.

No module redefines these types — all imports come from core.models.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

Phase = Literal["scoring", "details"]
PHASES: tuple[str, ...] = ("scoring", "details")

EnvelopeSource = Literal["cache", "computed"]

SNAPSHOT_VERSION = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# === INPUTS ===


class Subject(BaseModel):
    """The text being evaluated (a resume), identified by id and digest."""

    subject_id: str
    content_digest: str


class StoredSubject(Subject):
    """Subject text kept in the object store so callers can send only its id."""

    subject_text: str
    stored_at: datetime = Field(default_factory=utc_now)


class ReferenceItem(BaseModel):
    """One comparison target (a job posting) supplied per batch call."""

    reference_id: str
    reference_text: str
    auxiliary_score: float | None = None


# === PHASE PAYLOADS ===


class ScoringData(BaseModel):
    """Overall match score plus per-dimension scores."""

    overall: float
    scores: dict[str, float] = Field(default_factory=dict)


class AdviceItem(BaseModel):
    """A single actionable piece of advice."""

    title: str = ""
    detail: str = ""


class DetailsData(BaseModel):
    """Qualitative analysis of a resume against one job."""

    advantages: list[str] = Field(default_factory=list)
    disadvantages: list[str] = Field(default_factory=list)
    advice: list[AdviceItem] = Field(default_factory=list)
    overview: str = ""


PhasePayload = ScoringData | DetailsData

_PAYLOAD_MODELS: dict[str, type[BaseModel]] = {
    "scoring": ScoringData,
    "details": DetailsData,
}


def payload_model(phase: str) -> type[BaseModel]:
    """Return the payload model for a phase (KeyError if unknown)."""
    return _PAYLOAD_MODELS[phase]


# === ENVELOPE ===


class EnvelopeMeta(BaseModel):
    """Provenance of a cached or computed result."""

    reference_id: str
    content_digest: str
    phase: Phase
    source: EnvelopeSource
    timestamp: datetime
    schema_version: str


class MatchEnvelope(BaseModel):
    """Persisted/returned artifact: provenance metadata + phase payload."""

    meta: EnvelopeMeta
    data: ScoringData | DetailsData

    @model_validator(mode="before")
    @classmethod
    def _coerce_data_by_phase(cls, values: Any) -> Any:
        # The payload shape is decided by meta.phase, not by union guessing.
        if not isinstance(values, dict):
            return values
        meta = values.get("meta")
        data = values.get("data")
        phase = meta.get("phase") if isinstance(meta, dict) else getattr(meta, "phase", None)
        if isinstance(data, dict) and phase in _PAYLOAD_MODELS:
            values = {**values, "data": _PAYLOAD_MODELS[phase].model_validate(data)}
        return values

    def with_source(self, source: EnvelopeSource) -> MatchEnvelope:
        """Copy of this envelope tagged with another provenance source."""
        return self.model_copy(
            update={"meta": self.meta.model_copy(update={"source": source})}
        )


# === BATCH ===


class MatchResultItem(BaseModel):
    """Per-job projection of a scoring envelope shown in batch listings."""

    reference_id: str
    overall: float
    scores: dict[str, float] = Field(default_factory=dict)
    source: EnvelopeSource = "computed"

    @classmethod
    def from_envelope(cls, envelope: MatchEnvelope) -> MatchResultItem:
        data = envelope.data
        if isinstance(data, ScoringData):
            overall, scores = data.overall, dict(data.scores)
        else:
            overall, scores = 0.0, {}
        return cls(
            reference_id=envelope.meta.reference_id,
            overall=overall,
            scores=scores,
            source=envelope.meta.source,
        )


class ItemFailure(BaseModel):
    """Terminal failure of one reference item, surfaced per item."""

    reference_id: str
    kind: str
    message: str
    retryable: bool = False
    attempts: int = 1


class BatchRun(BaseModel):
    """In-memory state of one batch invocation (owned by BatchCoordinator)."""

    subject_id: str
    content_digest: str
    phase: Phase = "scoring"
    generation: int
    reference_ids: list[str] = Field(default_factory=list)
    results: dict[str, MatchResultItem] = Field(default_factory=dict)
    failures: dict[str, ItemFailure] = Field(default_factory=dict)
    processed_count: int = 0
    total_count: int = 0
    complete: bool = False
    error: str | None = None
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None

    @property
    def pending_ids(self) -> list[str]:
        """Reference ids not yet in a terminal state, in submission order."""
        return [
            rid for rid in self.reference_ids
            if rid not in self.results and rid not in self.failures
        ]

    def ordered_results(self) -> list[MatchResultItem]:
        """Successful results in submission order."""
        return [self.results[rid] for rid in self.reference_ids if rid in self.results]

    def ordered_failures(self) -> list[ItemFailure]:
        """Failures in submission order."""
        return [self.failures[rid] for rid in self.reference_ids if rid in self.failures]


class ProgressEvent(BaseModel):
    """One progress tick of a batch run."""

    generation: int
    subject_id: str
    processed_count: int
    total_count: int
    reference_id: str | None = None
    result: MatchResultItem | None = None
    failure: ItemFailure | None = None
    complete: bool = False
    error: str | None = None


# === CLIENT PROGRESS ===


class ClientProgressSnapshot(BaseModel):
    """Persisted projection of a BatchRun used to resume after a reload."""

    version: int = SNAPSHOT_VERSION
    subject_id: str
    content_digest: str | None = None
    is_complete: bool = False
    processed_count: int = 0
    total_count: int = 0
    results: list[MatchResultItem] = Field(default_factory=list)
    failures: list[ItemFailure] = Field(default_factory=list)
    saved_at: datetime = Field(default_factory=utc_now)

    @property
    def resolved_ids(self) -> set[str]:
        """Reference ids that completed successfully in the saved run."""
        return {r.reference_id for r in self.results}
