# src/matchpro/api/server.py — v1
"""FastAPI application exposing single, batch and streamed matching.

Resume texts can be stored once (``POST /api/resume``) and then referenced
by ``subject_id`` in every match request.

Run with ``matchpro serve`` or
``uvicorn matchpro.api.server:create_app --factory``.
"""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from matchpro.api.facade import MatchComponents, build_components
from matchpro.api.models import (
    BatchMatchRequest,
    BatchMatchResponse,
    ErrorResponse,
    LookupRequest,
    MatchRequest,
    StoredSubjectResponse,
    SubjectUploadRequest,
)
from matchpro.config.settings import Settings
from matchpro.core.errors import (
    BatchFailed,
    InvalidInput,
    MatchProError,
    NotFound,
    UpstreamError,
    UpstreamTimeout,
)
from matchpro.core.models import PHASES, ClientProgressSnapshot, MatchEnvelope, Subject
from matchpro.logging.logger import LOGGER_NAMESPACE, setup_logging
from matchpro.version import __version__

logger = logging.getLogger(__name__)

_UPSTREAM_HINT = (
    "The scoring workflow failed or is unavailable; retrying later may succeed."
)


def _status_for(error: MatchProError) -> int:
    if isinstance(error, InvalidInput):
        return 400
    if isinstance(error, NotFound):
        return 404
    if isinstance(error, UpstreamTimeout):
        return 504
    if isinstance(error, (UpstreamError, BatchFailed)):
        return 502
    return 500


def _check_phase(phase: str) -> None:
    if phase not in PHASES:
        raise InvalidInput(
            "Missing or invalid type parameter. Must be 'scoring' or 'details'"
        )


def _error_body(error: MatchProError) -> dict:
    body: dict = {"error": str(error), "kind": error.kind}
    if isinstance(error, (UpstreamError, BatchFailed)):
        body["hint"] = _UPSTREAM_HINT
    if isinstance(error, BatchFailed):
        body["batch"] = BatchMatchResponse.from_run(error.run).model_dump(mode="json")
    return body


def _validation_details(exc: RequestValidationError) -> list[dict]:
    # the rejected input itself may not be encodable (lone surrogates)
    return [
        {"loc": [str(part) for part in err["loc"]], "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]


_ERROR_RESPONSES: dict = {
    status: {"model": ErrorResponse} for status in (400, 404, 500, 502, 504)
}


def _sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def _ensure_logging(settings: Settings) -> None:
    """Configure logging from settings unless the launcher already did."""
    if logging.getLogger(LOGGER_NAMESPACE).handlers:
        return
    setup_logging(
        level=settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


def create_app(
    settings: Settings | None = None,
    components: MatchComponents | None = None,
) -> FastAPI:
    """Build the application around one shared MatchComponents graph."""
    comps = components or build_components(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_logging(comps.settings)
        logger.info("API startup (version %s)", __version__)
        yield
        await comps.aclose()
        logger.info("API shutdown")

    app = FastAPI(
        title="MatchPro API",
        description="Cached resume/job matching over an external scoring workflow",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.components = comps

    @app.exception_handler(MatchProError)
    async def _matchpro_error(request: Request, exc: MatchProError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content=_error_body(exc))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "kind": "invalid_input",
                     "details": _validation_details(exc)},
        )

    async def _subject_text(body) -> str:
        if body.subject_text is not None:
            return body.subject_text
        return (await comps.subjects.require(body.subject_id)).subject_text

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "version": __version__,
            "cache_backend": comps.store.backend_name if comps.store else None,
            "workflow_configured": comps.settings.workflow_configured,
        }

    @app.post("/api/resume", response_model=Subject, responses=_ERROR_RESPONSES)
    async def upload_subject(body: SubjectUploadRequest) -> Subject:
        return await comps.subjects.save(body.subject_text)

    @app.get("/api/resume", response_model=StoredSubjectResponse, responses=_ERROR_RESPONSES)
    async def get_subject(subject_id: str = Query(min_length=1)) -> StoredSubjectResponse:
        record = await comps.subjects.require(subject_id)
        return StoredSubjectResponse(
            subject_id=record.subject_id,
            content_digest=record.content_digest,
            subject_text=record.subject_text,
        )

    @app.post("/api/match", response_model=MatchEnvelope, responses=_ERROR_RESPONSES)
    async def match(
        body: MatchRequest,
        type: str = Query(default="scoring"),  # noqa: A002
    ) -> MatchEnvelope:
        _check_phase(type)
        if type == "details" and body.auxiliary_score is None:
            raise InvalidInput("Missing auxiliary_score for details request")
        return await comps.resolver.resolve(
            body.reference_id,
            await _subject_text(body),
            body.reference_text,
            body.auxiliary_score,
            type,  # type: ignore[arg-type]
        )

    @app.post("/api/match/cached", response_model=MatchEnvelope, responses=_ERROR_RESPONSES)
    async def match_cached(
        body: LookupRequest,
        type: str = Query(default="scoring"),  # noqa: A002
    ):
        _check_phase(type)
        envelope = await comps.resolver.lookup(
            body.reference_id, await _subject_text(body), type  # type: ignore[arg-type]
        )
        if envelope is None:
            return JSONResponse(
                status_code=404,
                content={"error": "No cached result for this match", "kind": "not_found"},
            )
        return envelope

    @app.post("/api/match/batch", response_model=BatchMatchResponse, responses=_ERROR_RESPONSES)
    async def match_batch(body: BatchMatchRequest) -> BatchMatchResponse:
        if not body.reference_items:
            raise InvalidInput("reference_items must not be empty")
        run = await comps.session.run(
            await _subject_text(body),
            body.reference_items,
            subject_id=body.subject_id,
            phase=body.phase,
            incremental=body.incremental,
            concurrency_limit=body.concurrency_limit,
        )
        return BatchMatchResponse.from_run(run)

    @app.post("/api/match/batch/stream", responses=_ERROR_RESPONSES)
    async def match_batch_stream(body: BatchMatchRequest, request: Request) -> StreamingResponse:
        if not body.reference_items:
            raise InvalidInput("reference_items must not be empty")
        batch = comps.session.stream(
            await _subject_text(body),
            body.reference_items,
            subject_id=body.subject_id,
            phase=body.phase,
            incremental=body.incremental,
            concurrency_limit=body.concurrency_limit,
        )

        async def event_stream() -> AsyncIterator[str]:
            try:
                async for event in batch:
                    yield _sse("progress", event.model_dump(mode="json"))
                    if await request.is_disconnected():
                        logger.info("Client disconnected from batch stream")
                        return
                run = batch.run
                if run.complete:
                    yield _sse("done", BatchMatchResponse.from_run(run).model_dump(mode="json"))
                else:
                    yield _sse("superseded", {"generation": run.generation})
            finally:
                await batch.aclose()

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.get(
        "/api/match/batch/progress",
        response_model=ClientProgressSnapshot,
        responses=_ERROR_RESPONSES,
    )
    async def batch_progress(
        subject_id: str = Query(min_length=1),
        content_digest: str | None = Query(default=None),
    ):
        snapshot = comps.progress_store.load(subject_id, content_digest)
        if snapshot is None:
            return JSONResponse(
                status_code=404,
                content={"error": "No stored progress for this subject", "kind": "not_found"},
            )
        return snapshot

    return app
