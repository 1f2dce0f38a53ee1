# src/matchpro/logging/context.py — v1
"""Batch and item identifiers carried into every log record.

A BatchCoordinator run sets the subject and its generation; each worker then
tags the reference item and phase it is resolving. The state lives in one
ContextVar, so every asyncio task sees the values of the task that created
it and item tags set inside a worker never leak into its siblings.
"""

from __future__ import annotations

import contextvars
from dataclasses import asdict, dataclass, replace
from typing import Any


@dataclass(frozen=True)
class LogContext:
    """Identifiers of the batch run and item being processed."""

    subject_id: str | None = None
    run_id: str | None = None
    reference_id: str | None = None
    phase: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Only the identifiers that are set (JSON ``context`` field)."""
        return {k: v for k, v in asdict(self).items() if v is not None}


_EMPTY = LogContext()
_current: contextvars.ContextVar[LogContext] = contextvars.ContextVar(
    "matchpro_log_context", default=_EMPTY
)


def get_context() -> LogContext:
    return _current.get()


def set_run_context(subject_id: str, run_id: str) -> None:
    """Start a batch run: subject and generation, no item yet."""
    _current.set(LogContext(subject_id=subject_id, run_id=run_id))


def set_item_context(reference_id: str, phase: str | None = None) -> None:
    """Tag the item being resolved, keeping the run identifiers."""
    _current.set(replace(_current.get(), reference_id=reference_id, phase=phase))


def clear_context() -> None:
    _current.set(_EMPTY)
