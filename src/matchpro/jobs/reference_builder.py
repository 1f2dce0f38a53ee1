# src/matchpro/jobs/reference_builder.py — v1
"""Turn job-listing records into ReferenceItems for batch matching.

Only the fields that matter for matching are serialized into the reference
text; display-only fields (logo, posting date) are dropped. Missing optional
sections become empty collections.
"""

from __future__ import annotations

import json
from typing import Any, Iterable

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from matchpro.core.errors import InvalidInput
from matchpro.core.models import ReferenceItem


class JobDescription(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    who_we_are: str = Field(default="", alias="whoWeAre")
    products: str = ""
    product_intro: str = Field(default="", alias="productIntro")
    responsibilities: list[str] = Field(default_factory=list)


class JobRequirements(BaseModel):
    model_config = ConfigDict(extra="ignore")

    must: list[str] = Field(default_factory=list)
    want: list[str] = Field(default_factory=list)


class JobRecord(BaseModel):
    """Job listing as served by the job-listing collaborator."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    title: str = ""
    company: str = ""
    category: str = ""
    location: str = ""
    tags: list[str] = Field(default_factory=list)
    salary: str = ""
    employment_type: str = Field(default="", alias="employmentType")
    language_requirements: dict[str, str] = Field(
        default_factory=dict, alias="languageRequirements"
    )
    description: JobDescription = Field(default_factory=JobDescription)
    dev_info: dict[str, Any] = Field(default_factory=dict, alias="devInfo")
    requirements: JobRequirements = Field(default_factory=JobRequirements)
    candidate_requirements: list[str] = Field(
        default_factory=list, alias="candidateRequirements"
    )
    working_conditions: dict[str, Any] = Field(
        default_factory=dict, alias="workingConditions"
    )
    selection_process: list[str] = Field(default_factory=list, alias="selectionProcess")


def parse_job(job: dict[str, Any] | JobRecord) -> JobRecord:
    """Validate a raw job record.

    Raises:
        InvalidInput: Missing id or malformed record.
    """
    if isinstance(job, JobRecord):
        return job
    if not isinstance(job, dict):
        raise InvalidInput(f"Job record must be an object, got {type(job).__name__}")
    # Nulls from the listing API mean "absent"
    cleaned = {k: v for k, v in job.items() if v is not None}
    if "id" in cleaned and not isinstance(cleaned["id"], str):
        cleaned["id"] = str(cleaned["id"])
    if not cleaned.get("id"):
        raise InvalidInput("Job record has no id")
    try:
        return JobRecord.model_validate(cleaned)
    except ValidationError as e:
        raise InvalidInput(f"Invalid job record {cleaned['id']!r}: {e}") from e


def serialize_job_for_matching(job: dict[str, Any] | JobRecord) -> str:
    """Serialize the matching-relevant parts of a job as compact JSON."""
    record = parse_job(job)
    payload = record.model_dump(
        by_alias=True, exclude={"id", "tags", "selection_process"}
    )
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def build_reference_items(
    jobs: Iterable[dict[str, Any] | JobRecord],
    scores: dict[str, float] | None = None,
) -> list[ReferenceItem]:
    """Build ReferenceItems from job records.

    Args:
        jobs: Job records (id required).
        scores: Optional overall scores per job id, passed through as the
            auxiliary score for the details phase.
    """
    scores = scores or {}
    items = []
    for job in jobs:
        record = parse_job(job)
        items.append(
            ReferenceItem(
                reference_id=record.id,
                reference_text=serialize_job_for_matching(record),
                auxiliary_score=scores.get(record.id),
            )
        )
    return items
