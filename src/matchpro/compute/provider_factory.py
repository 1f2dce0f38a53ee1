# src/matchpro/compute/provider_factory.py — v1
"""Factory for compute provider instantiation from settings."""

from __future__ import annotations

from matchpro.compute.base_provider import BaseComputeProvider
from matchpro.config.settings import Settings


def create_compute_provider(settings: Settings) -> BaseComputeProvider:
    """Instantiate the workflow provider from WORKFLOW_* settings.

    An unconfigured provider is still returned; its calls fail with
    UpstreamRejected so cached results stay reachable without credentials.
    """
    from matchpro.compute.workflow_provider import WorkflowComputeProvider

    return WorkflowComputeProvider(
        workflow_url=settings.workflow_url,
        api_key=settings.workflow_api_key,
        user=settings.workflow_user,
        timeout_s=settings.compute_timeout_s,
    )
