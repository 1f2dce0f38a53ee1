# src/matchpro/logging/logger.py — v1
"""Log formatting and setup for the ``matchpro`` logger tree.

Two renderings of the same record: one JSON object per line for services,
a compact single line for the CLI. Both carry the batch/item context set
through matchpro.logging.context.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Iterable

from matchpro.logging.context import LogContext, get_context

LOGGER_NAMESPACE = "matchpro"

# HTTP and AWS client libraries are chatty at INFO.
NOISY_LIBRARIES = ("httpx", "httpcore", "botocore", "boto3", "urllib3")


def _record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JsonFormatter(logging.Formatter):
    """One JSON object per record, context under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _record_time(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = get_context().as_dict()
        if context:
            entry["context"] = context

        # logger.info(..., extra={"data": {...}})
        data = getattr(record, "data", None)
        if data:
            entry["data"] = data

        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """``2024-01-01 12:00:00 [INFO    ] matchpro.x [run 3] (job-7) message``."""

    def format(self, record: logging.LogRecord) -> str:
        head = " ".join([
            _record_time(record).strftime("%Y-%m-%d %H:%M:%S"),
            f"[{record.levelname:8s}]",
            record.name,
            *self._tags(get_context()),
        ])
        line = f"{head} - {record.getMessage()}"
        if record.exc_info and record.exc_info[1] is not None:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line

    @staticmethod
    def _tags(ctx: LogContext) -> list[str]:
        tags = []
        if ctx.run_id:
            tags.append(f"[run {ctx.run_id}]")
        if ctx.reference_id:
            tags.append(f"({ctx.reference_id})")
        return tags


def get_logger(name: str) -> logging.Logger:
    """Logger under the matchpro namespace (``get_logger("batch")``)."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    log_file: str | None = None,
    rotation: str = "10MB",
    retention: int = 30,
    quiet: Iterable[str] = NOISY_LIBRARIES,
) -> None:
    """(Re)configure the matchpro logger. Safe to call more than once.

    Args:
        level: DEBUG, INFO, WARNING or ERROR.
        log_format: "json" or "text".
        log_file: Also write to this file, rotated by size.
        rotation: Max file size before rotation (e.g. "10MB").
        retention: Number of rotated files to keep.
        quiet: Third-party loggers capped at WARNING.
    """
    formatter = JsonFormatter() if log_format == "json" else TextFormatter()

    # stdout carries CLI output
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        from matchpro.logging.handlers import create_rotating_handler

        handlers.append(
            create_rotating_handler(log_file, rotation=rotation, retention=retention)
        )

    root = logging.getLogger(LOGGER_NAMESPACE)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)
