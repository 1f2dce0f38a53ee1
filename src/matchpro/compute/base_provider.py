# src/matchpro/compute/base_provider.py — v1
"""Abstract compute provider interface (the external scoring workflow)."""

from __future__ import annotations

from abc import ABC, abstractmethod

from matchpro.core.models import DetailsData, Phase, ScoringData


class BaseComputeProvider(ABC):
    """Unified interface for scoring backends.

    Implementations validate and coerce raw outputs into ScoringData or
    DetailsData before returning; loosely typed payloads never cross this
    boundary. Failures are raised as UpstreamRejected, UpstreamUnavailable
    or UpstreamTimeout. Providers do not retry.
    """

    @abstractmethod
    async def compute(
        self,
        subject_text: str,
        reference_text: str,
        auxiliary_score: float | None,
        phase: Phase,
    ) -> ScoringData | DetailsData:
        """Run one analysis of subject_text against reference_text."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (workflow, ...)."""

    async def aclose(self) -> None:
        """Release network resources. No-op by default."""
