# src/matchpro/compute/retry.py — v1
"""Per-error-type retry policy with exponential backoff.

Errors are classified by their ``kind``. Kinds without a RetryConfig
(upstream_rejected, invalid_input, ...) are never retried and propagate
unchanged; a retryable error that exhausts its budget is wrapped in
RetryExhausted.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from matchpro.core.errors import MatchProError, RetryExhausted

if TYPE_CHECKING:
    from matchpro.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Retry configuration for a specific error kind."""

    max_retries: int
    base_delay_s: float
    backoff_factor: float = 2.0
    jitter: bool = True


DEFAULT_RETRY_CONFIGS: dict[str, RetryConfig] = {
    "upstream_unavailable": RetryConfig(max_retries=2, base_delay_s=1.0),
    "upstream_timeout": RetryConfig(max_retries=1, base_delay_s=1.0, backoff_factor=1.0),
}


def retry_configs_from_settings(settings: Settings) -> dict[str, RetryConfig]:
    """Build the retry table from RETRY_* settings."""
    config = RetryConfig(
        max_retries=settings.retry_max_retries,
        base_delay_s=settings.retry_base_delay_s,
        backoff_factor=settings.retry_backoff_factor,
    )
    return {"upstream_unavailable": config, "upstream_timeout": config}


def classify_error(error: Exception) -> str:
    """Map an exception to a retry error kind."""
    if isinstance(error, MatchProError):
        return error.kind
    return "unknown"


def _compute_delay(config: RetryConfig, attempt: int) -> float:
    """Compute delay for a given attempt (0-based)."""
    delay = config.base_delay_s * (config.backoff_factor ** attempt)
    if config.jitter:
        delay *= 0.5 + random.random()  # noqa: S311
    return delay


async def with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    label: str = "compute",
    retry_configs: dict[str, RetryConfig] | None = None,
    **kwargs: Any,
) -> Any:
    """Execute an async function with retry logic.

    Raises:
        RetryExhausted: If a retryable error outlives its budget.
        MatchProError: Non-retryable errors, unchanged.
    """
    configs = DEFAULT_RETRY_CONFIGS if retry_configs is None else retry_configs
    attempts = 0

    while True:
        try:
            return await fn(*args, **kwargs)
        except MatchProError as e:
            error_kind = classify_error(e)
            attempts += 1
            config = configs.get(error_kind) if e.retryable else None

            if config is None:
                raise

            if attempts > config.max_retries:
                raise RetryExhausted(label, attempts, e) from e

            delay = _compute_delay(config, attempts - 1)
            logger.warning(
                "%s: %s (attempt %d/%d), retrying in %.1fs",
                label, error_kind, attempts, config.max_retries + 1, delay,
            )
            await asyncio.sleep(delay)
