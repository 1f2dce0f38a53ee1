# src/matchpro/compute/payloads.py — v1
"""Coercion and validation of raw workflow outputs into phase payloads.

The workflow returns loosely typed JSON (numbers as strings, missing lists,
advice entries with stray fields). Everything is coerced here; an output that
carries no usable analysis is rejected as UpstreamUnavailable because it
usually means the workflow's model call failed and a retry may succeed.
"""

from __future__ import annotations

import math
from typing import Any

from matchpro.core.errors import UpstreamUnavailable
from matchpro.core.models import AdviceItem, DetailsData, ScoringData


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _to_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item.strip()]


def parse_scoring_data(outputs: dict[str, Any]) -> ScoringData:
    """Coerce raw outputs into ScoringData (non-numeric scores are dropped)."""
    overall = _to_float(outputs.get("overall")) or 0.0
    scores: dict[str, float] = {}
    raw_scores = outputs.get("scores")
    if isinstance(raw_scores, dict):
        for name, value in raw_scores.items():
            number = _to_float(value)
            if number is not None:
                scores[str(name)] = number
    return ScoringData(overall=overall, scores=scores)


def parse_details_data(outputs: dict[str, Any]) -> DetailsData:
    """Coerce raw outputs into DetailsData (missing fields become empty)."""
    advice: list[AdviceItem] = []
    raw_advice = outputs.get("advice")
    if isinstance(raw_advice, list):
        for item in raw_advice:
            if not isinstance(item, dict):
                continue
            title = item.get("title") if isinstance(item.get("title"), str) else ""
            detail = item.get("detail") if isinstance(item.get("detail"), str) else ""
            if title or detail:
                advice.append(AdviceItem(title=title, detail=detail))

    overview = outputs.get("overview")
    return DetailsData(
        advantages=_to_str_list(outputs.get("advantages")),
        disadvantages=_to_str_list(outputs.get("disadvantages")),
        advice=advice,
        overview=overview if isinstance(overview, str) else "",
    )


def validate_scoring_data(data: ScoringData) -> None:
    """Raise UpstreamUnavailable when the workflow produced no scores."""
    if not data.scores or data.overall <= 0:
        raise UpstreamUnavailable(
            "Invalid scoring output: the workflow returned no scores"
        )


def validate_details_data(data: DetailsData) -> None:
    """Raise UpstreamUnavailable when every details field is empty."""
    if not (data.advantages or data.disadvantages or data.advice or data.overview.strip()):
        raise UpstreamUnavailable(
            "Invalid details output: the workflow returned an empty analysis"
        )


def coerce_outputs(phase: str, outputs: Any) -> ScoringData | DetailsData:
    """Parse and validate raw outputs for a phase."""
    if not isinstance(outputs, dict):
        raise UpstreamUnavailable(
            f"Workflow outputs must be an object, got {type(outputs).__name__}"
        )
    if phase == "scoring":
        scoring = parse_scoring_data(outputs)
        validate_scoring_data(scoring)
        return scoring
    details = parse_details_data(outputs)
    validate_details_data(details)
    return details
