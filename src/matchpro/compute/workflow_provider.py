# src/matchpro/compute/workflow_provider.py — v1
"""HTTP workflow provider implementing BaseComputeProvider.

Calls a blocking-mode AI workflow endpoint:

    POST {workflow_url}
    Authorization: Bearer {api_key}
    {"inputs": {...}, "response_mode": "blocking", "user": "..."}

and reads the analysis from ``data.outputs`` of the JSON response.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from matchpro.compute.base_provider import BaseComputeProvider
from matchpro.compute.payloads import coerce_outputs
from matchpro.core.errors import (
    UpstreamRejected,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from matchpro.core.models import DetailsData, Phase, ScoringData

logger = logging.getLogger(__name__)

# Throttling and request timeouts are transient, unlike other 4xx.
_TRANSIENT_4XX = {408, 429}
_MAX_ERROR_BODY = 500


class WorkflowComputeProvider(BaseComputeProvider):
    """Provider backed by a hosted workflow HTTP API."""

    def __init__(
        self,
        workflow_url: str,
        api_key: str,
        user: str = "MatchPro User",
        timeout_s: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = workflow_url
        self._api_key = api_key
        self._user = user
        self._timeout_s = timeout_s
        self._transport = transport
        self.__client: httpx.AsyncClient | None = None  # Lazy initialization

    @property
    def provider_name(self) -> str:
        return "workflow"

    @property
    def _client(self) -> httpx.AsyncClient:
        if self.__client is None:
            self.__client = httpx.AsyncClient(
                timeout=self._timeout_s, transport=self._transport
            )
        return self.__client

    async def compute(
        self,
        subject_text: str,
        reference_text: str,
        auxiliary_score: float | None,
        phase: Phase,
    ) -> ScoringData | DetailsData:
        if not self._url or not self._api_key:
            raise UpstreamRejected("Workflow URL or API key is not configured")
        if not subject_text.strip() or not reference_text.strip():
            raise UpstreamRejected("Missing resume text or job description")
        if phase == "details" and auxiliary_score is None:
            raise UpstreamRejected("Missing overall_from_scoring for details request")

        inputs: dict[str, Any] = {
            "resume_text": subject_text,
            "job_description": reference_text,
            "phase": phase,
        }
        if phase == "details":
            inputs["overall_from_scoring"] = auxiliary_score

        body = {"inputs": inputs, "response_mode": "blocking", "user": self._user}
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            response = await self._client.post(self._url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(f"Workflow request timed out: {e}") from e
        except httpx.TransportError as e:
            raise UpstreamUnavailable(f"Workflow transport error: {e}") from e

        status = response.status_code
        if status >= 400:
            msg = f"Workflow HTTP {status}: {response.text[:_MAX_ERROR_BODY]}"
            if status >= 500 or status in _TRANSIENT_4XX:
                raise UpstreamUnavailable(msg, status_code=status)
            raise UpstreamRejected(msg, status_code=status)

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamUnavailable(
                f"Workflow returned non-JSON body: {e}", status_code=status
            ) from e

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            data = {}
        run_status = data.get("status")
        if run_status is not None and run_status != "succeeded":
            raise UpstreamUnavailable(
                f"Workflow run ended with status {run_status!r}: {data.get('error') or ''}",
                status_code=status,
            )

        outputs = data.get("outputs") or {}
        result = coerce_outputs(phase, outputs)
        logger.debug("Workflow %s call succeeded (status %d)", phase, status)
        return result

    async def aclose(self) -> None:
        if self.__client is not None:
            await self.__client.aclose()
            self.__client = None
