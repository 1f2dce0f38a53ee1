# tests/unit/compute/test_workflow_provider.py — v1
"""Tests for compute/workflow_provider.py — httpx.MockTransport backed."""

from __future__ import annotations

import json

import httpx
import pytest

from matchpro.compute.provider_factory import create_compute_provider
from matchpro.compute.workflow_provider import WorkflowComputeProvider
from matchpro.config.settings import Settings
from matchpro.core.errors import UpstreamRejected, UpstreamTimeout, UpstreamUnavailable
from matchpro.core.models import DetailsData, ScoringData

URL = "https://workflow.example/v1/workflows/run"

SCORING_OUTPUTS = {"overall": 76, "scores": {"skills": 80, "experience": "72", "soft": "?"}}
DETAILS_OUTPUTS = {
    "advantages": ["Python"],
    "disadvantages": [],
    "advice": [{"title": "Cloud", "detail": "Get AWS certified"}],
    "overview": "Good fit",
}


def _provider(handler) -> WorkflowComputeProvider:
    return WorkflowComputeProvider(
        workflow_url=URL,
        api_key="app-secret",
        user="Test User",
        timeout_s=5.0,
        transport=httpx.MockTransport(handler),
    )


def _ok(outputs, status="succeeded"):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": {"status": status, "outputs": outputs}})
    return handler


class TestRequestShape:
    @pytest.mark.asyncio
    async def test_scoring_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {"outputs": SCORING_OUTPUTS}})

        provider = _provider(handler)
        data = await provider.compute("resume", "job text", None, "scoring")
        await provider.aclose()

        assert seen["auth"] == "Bearer app-secret"
        assert seen["body"]["response_mode"] == "blocking"
        assert seen["body"]["user"] == "Test User"
        assert seen["body"]["inputs"]["resume_text"] == "resume"
        assert seen["body"]["inputs"]["job_description"] == "job text"
        assert "overall_from_scoring" not in seen["body"]["inputs"]
        assert isinstance(data, ScoringData)
        assert data.scores == {"skills": 80.0, "experience": 72.0}

    @pytest.mark.asyncio
    async def test_details_sends_overall(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {"outputs": DETAILS_OUTPUTS}})

        data = await _provider(handler).compute("resume", "job", 76.0, "details")
        assert seen["body"]["inputs"]["overall_from_scoring"] == 76.0
        assert isinstance(data, DetailsData)
        assert data.advice[0].title == "Cloud"


class TestFailureMapping:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [500, 502, 503, 429, 408])
    async def test_transient_statuses(self, status):
        provider = _provider(lambda r: httpx.Response(status, text="busy"))
        with pytest.raises(UpstreamUnavailable) as exc_info:
            await provider.compute("resume", "job", None, "scoring")
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    async def test_rejected_statuses(self, status):
        provider = _provider(lambda r: httpx.Response(status, text="no"))
        with pytest.raises(UpstreamRejected) as exc_info:
            await provider.compute("resume", "job", None, "scoring")
        assert f"HTTP {status}" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(UpstreamTimeout):
            await _provider(handler).compute("resume", "job", None, "scoring")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(UpstreamUnavailable):
            await _provider(handler).compute("resume", "job", None, "scoring")

    @pytest.mark.asyncio
    async def test_failed_run_status(self):
        with pytest.raises(UpstreamUnavailable, match="failed"):
            await _provider(_ok(SCORING_OUTPUTS, status="failed")).compute(
                "resume", "job", None, "scoring"
            )

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        provider = _provider(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(UpstreamUnavailable):
            await provider.compute("resume", "job", None, "scoring")

    @pytest.mark.asyncio
    async def test_empty_outputs_are_unavailable(self):
        with pytest.raises(UpstreamUnavailable):
            await _provider(_ok({})).compute("resume", "job", None, "scoring")


class TestPreflight:
    @pytest.mark.asyncio
    async def test_details_without_score_rejected_before_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        with pytest.raises(UpstreamRejected, match="overall_from_scoring"):
            await _provider(handler).compute("resume", "job", None, "details")
        assert calls == []

    @pytest.mark.asyncio
    async def test_missing_configuration(self):
        provider = WorkflowComputeProvider(workflow_url="", api_key="")
        with pytest.raises(UpstreamRejected, match="not configured"):
            await provider.compute("resume", "job", None, "scoring")

    @pytest.mark.asyncio
    async def test_blank_texts_rejected(self):
        with pytest.raises(UpstreamRejected):
            await _provider(_ok(SCORING_OUTPUTS)).compute("  ", "job", None, "scoring")


class TestProviderFactory:
    def test_from_settings(self):
        s = Settings(_env_file=None, workflow_url=URL, workflow_api_key="k", compute_timeout_s=9)
        provider = create_compute_provider(s)
        assert isinstance(provider, WorkflowComputeProvider)
        assert provider.provider_name == "workflow"
        assert provider._timeout_s == 9
