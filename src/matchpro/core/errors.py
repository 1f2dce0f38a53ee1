# src/matchpro/core/errors.py — v1
"""Error taxonomy shared by the cache, compute, resolver and batch layers.

Every error carries a stable ``kind`` (used in per-item failure records and
API payloads) and a ``retryable`` flag read by the retry policy.

Cache-layer errors (StoreUnavailable, CorruptPayload) are recovered inside
the resolver. Compute-layer errors are per item. Only BatchFailed is
batch-level.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from matchpro.core.models import BatchRun


class MatchProError(Exception):
    """Base class for all matchpro errors."""

    kind: str = "error"
    retryable: bool = False


class NotFound(MatchProError):
    """Missing stored subject or record.

    Cache misses are not errors: object stores return None instead.
    """

    kind = "not_found"


class InvalidInput(MatchProError, ValueError):
    """Malformed key component or request (caller bug)."""

    kind = "invalid_input"


class StoreUnavailable(MatchProError):
    """Object store transport, auth or I/O failure."""

    kind = "store_unavailable"
    retryable = True

    def __init__(self, message: str, key: str | None = None) -> None:
        self.key = key
        super().__init__(message)


class CorruptPayload(MatchProError):
    """Cached bytes could not be decoded into a MatchEnvelope."""

    kind = "corrupt_payload"

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"Corrupt cache entry {key!r}: {reason}")


class UpstreamError(MatchProError):
    """Base for failures of the external compute workflow."""

    kind = "upstream_error"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class UpstreamUnavailable(UpstreamError):
    """Network failure, 5xx, rate limiting or unusable workflow output."""

    kind = "upstream_unavailable"
    retryable = True


class UpstreamRejected(UpstreamError):
    """4xx or malformed request. Never retried."""

    kind = "upstream_rejected"


class UpstreamTimeout(UpstreamError):
    """The compute call exceeded its timeout."""

    kind = "upstream_timeout"
    retryable = True


class RetryExhausted(UpstreamError):
    """All retries exhausted for a compute call."""

    def __init__(self, label: str, attempts: int, last_error: MatchProError) -> None:
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"'{label}' failed after {attempts} attempts ({last_error.kind}): {last_error}",
            status_code=getattr(last_error, "status_code", None),
        )

    @property
    def kind(self) -> str:  # type: ignore[override]
        return self.last_error.kind

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.last_error.retryable


class BatchFailed(MatchProError):
    """A non-empty batch completed without a single successful item."""

    kind = "batch_failed"

    def __init__(self, run: BatchRun) -> None:
        self.run = run
        super().__init__(
            run.error
            or f"All {run.total_count} items failed for subject {run.subject_id!r}"
        )
