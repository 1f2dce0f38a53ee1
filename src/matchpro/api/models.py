# src/matchpro/api/models.py — v1
"""Request/response models of the HTTP API.

Match requests carry the resume either inline (``subject_text``) or as the
id of a text stored through ``POST /api/resume`` (``subject_id``).
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from matchpro.core.models import (
    BatchRun,
    ItemFailure,
    MatchResultItem,
    Phase,
    ReferenceItem,
)


class _SubjectRef(BaseModel):
    subject_text: str | None = Field(default=None, min_length=1)
    subject_id: str | None = Field(default=None, min_length=1)

    @model_validator(mode="after")
    def _text_or_id(self):
        if self.subject_text is None and self.subject_id is None:
            raise ValueError("Provide subject_text or subject_id")
        return self


class SubjectUploadRequest(BaseModel):
    subject_text: str


class StoredSubjectResponse(BaseModel):
    subject_id: str
    content_digest: str
    subject_text: str


class MatchRequest(_SubjectRef):
    """Single (resume, job) match request."""

    reference_id: str = Field(min_length=1)
    reference_text: str = Field(min_length=1)
    auxiliary_score: float | None = None


class LookupRequest(_SubjectRef):
    """Cache-only lookup of a previously computed match."""

    reference_id: str = Field(min_length=1)


class BatchMatchRequest(_SubjectRef):
    """Batch match request: one resume against many jobs.

    subject_id alone loads the stored text and also names the run; with
    subject_text it only names the run.
    """

    reference_items: list[ReferenceItem]
    incremental: bool = False
    phase: Phase = "scoring"
    concurrency_limit: int | None = Field(default=None, ge=1)
class BatchMatchResponse(BaseModel):
    """Final state of a batch run."""

    subject_id: str
    content_digest: str
    results: list[MatchResultItem] = Field(default_factory=list)
    failures: list[ItemFailure] = Field(default_factory=list)
    processed_count: int = 0
    total_count: int = 0
    is_complete: bool = False
    error: str | None = None

    @classmethod
    def from_run(cls, run: BatchRun) -> BatchMatchResponse:
        return cls(
            subject_id=run.subject_id,
            content_digest=run.content_digest,
            results=run.ordered_results(),
            failures=run.ordered_failures(),
            processed_count=run.processed_count,
            total_count=run.total_count,
            is_complete=run.complete and run.error is None,
            error=run.error,
        )


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx answer."""

    error: str
    kind: str
    hint: str | None = None
