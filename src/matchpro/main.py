# src/matchpro/main.py — v1
"""CLI entry point — match, batch, cache and serve commands.

Usage:
    matchpro match <resume.txt> <job.json> [--phase details --score N]
    matchpro batch <resume.txt> <jobs.json> [--subject-id ID] [--incremental]
    matchpro cache list [--prefix P]
    matchpro cache purge --prefix P
    matchpro serve [--host H] [--port N]
"""

from __future__ import annotations

import argparse
import asyncio
import inspect
import json
import logging
import sys
from pathlib import Path
from typing import Any

from matchpro.version import __version__

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = _load_settings(args)
        # the server logs for collectors (LOG_FORMAT); other commands log for a terminal
        log_format = settings.log_format if args.command == "serve" else "text"
        _setup_logging(settings, args.verbose, log_format)
        if inspect.iscoroutinefunction(args.func):
            return asyncio.run(args.func(args, settings))
        return args.func(args, settings)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="matchpro",
        description=f"MatchPro v{__version__}: cached resume/job matching",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--env-file", type=Path, default=None,
        help="Settings file (default: ./.env)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- match ---
    p_match = subparsers.add_parser("match", help="Match one resume against one job")
    p_match.add_argument("resume", type=Path, help="Resume text file")
    p_match.add_argument("job", type=Path, help="Job record (JSON object)")
    p_match.add_argument(
        "--phase", choices=["scoring", "details"], default="scoring",
        help="Analysis phase (default: scoring)",
    )
    p_match.add_argument(
        "--score", type=float, default=None,
        help="Overall score from scoring (required for --phase details)",
    )
    p_match.set_defaults(func=_cmd_match)

    # --- batch ---
    p_batch = subparsers.add_parser("batch", help="Match one resume against many jobs")
    p_batch.add_argument("resume", type=Path, help="Resume text file")
    p_batch.add_argument("jobs", type=Path, help="Job records (JSON array)")
    p_batch.add_argument("--subject-id", default=None, help="Stable resume id")
    p_batch.add_argument(
        "--incremental", action="store_true",
        help="Resume from the stored progress snapshot",
    )
    p_batch.add_argument(
        "--concurrency", type=int, default=None,
        help="Override BATCH_CONCURRENCY_LIMIT",
    )
    p_batch.set_defaults(func=_cmd_batch)

    # --- cache ---
    p_cache = subparsers.add_parser("cache", help="Inspect or purge cached results")
    cache_sub = p_cache.add_subparsers(dest="cache_command")
    p_list = cache_sub.add_parser("list", help="List cache keys")
    p_list.add_argument("--prefix", default="", help="Key prefix (e.g. job-7/)")
    p_list.set_defaults(func=_cmd_cache_list)
    p_purge = cache_sub.add_parser("purge", help="Delete cache keys under a prefix")
    p_purge.add_argument("--prefix", required=True, help="Key prefix to delete")
    p_purge.set_defaults(func=_cmd_cache_purge)

    # --- serve ---
    p_serve = subparsers.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default=None, help="Bind host (default: API_HOST)")
    p_serve.add_argument("--port", type=int, default=None, help="Bind port (default: API_PORT)")
    p_serve.set_defaults(func=_cmd_serve)

    return parser


def _load_settings(args: argparse.Namespace) -> Any:
    from matchpro.config.settings import Settings

    if args.env_file is not None:
        return Settings(_env_file=args.env_file)  # type: ignore[call-arg]
    return Settings()


async def _cmd_match(args: argparse.Namespace, settings: Any) -> int:
    """Resolve a single match and print the envelope."""
    from matchpro.api.facade import match_single
    from matchpro.jobs.reference_builder import build_reference_items

    resume_text = _read_text(args.resume)
    job = _read_json(args.job)
    if not isinstance(job, dict):
        logger.error("Job file must contain a JSON object: %s", args.job)
        return 1
    if args.phase == "details" and args.score is None:
        logger.error("--score is required with --phase details")
        return 1

    (item,) = build_reference_items([job])
    envelope = await match_single(
        resume_text,
        item.reference_id,
        item.reference_text,
        phase=args.phase,
        auxiliary_score=args.score,
        settings=settings,
    )
    print(envelope.model_dump_json(indent=2))
    return 0


async def _cmd_batch(args: argparse.Namespace, settings: Any) -> int:
    """Run a batch and print progress plus a summary."""
    from matchpro.api.facade import build_components
    from matchpro.core.errors import BatchFailed
    from matchpro.core.models import ProgressEvent
    from matchpro.jobs.reference_builder import build_reference_items

    resume_text = _read_text(args.resume)
    jobs = _read_json(args.jobs)
    if not isinstance(jobs, list):
        logger.error("Jobs file must contain a JSON array: %s", args.jobs)
        return 1
    items = build_reference_items(jobs)

    def _print_progress(event: ProgressEvent) -> None:
        if event.result is not None:
            status = f"{event.result.overall:.0f} ({event.result.source})"
        elif event.failure is not None:
            status = f"FAILED [{event.failure.kind}]"
        else:
            status = "started"
        label = event.reference_id or "-"
        print(f"[{event.processed_count}/{event.total_count}] {label}: {status}")

    components = build_components(settings)
    try:
        run = await components.session.run(
            resume_text,
            items,
            subject_id=args.subject_id,
            incremental=args.incremental,
            concurrency_limit=args.concurrency,
            on_progress=_print_progress,
        )
    except BatchFailed as exc:
        print(f"\nBatch failed: {exc}")
        for failure in exc.run.ordered_failures():
            print(f"  {failure.reference_id}: {failure.kind}: {failure.message}")
        return 1
    finally:
        await components.aclose()

    print("\nBatch complete:")
    print(f"  Subject:    {run.subject_id}")
    print(f"  Processed:  {run.processed_count}/{run.total_count}")
    print(f"  Results:    {len(run.results)}")
    print(f"  Failures:   {len(run.failures)}")
    for failure in run.ordered_failures():
        retry = " (retryable)" if failure.retryable else ""
        print(f"    {failure.reference_id}: {failure.kind}{retry}")
    return 0


async def _cmd_cache_list(args: argparse.Namespace, settings: Any) -> int:
    """Print cache keys under a prefix."""
    from matchpro.cache.cache_factory import create_object_store

    store = create_object_store(settings)
    try:
        keys = await store.list_keys(args.prefix)
    finally:
        store.close()
    for key in keys:
        print(key)
    print(f"\n{len(keys)} key(s) in {store.backend_name} cache", file=sys.stderr)
    return 0


async def _cmd_cache_purge(args: argparse.Namespace, settings: Any) -> int:
    """Delete cache keys under a prefix."""
    from matchpro.cache.cache_factory import create_object_store

    store = create_object_store(settings)
    try:
        keys = await store.list_keys(args.prefix)
        for key in keys:
            await store.delete(key)
    finally:
        store.close()
    print(f"Deleted {len(keys)} key(s) under {args.prefix!r}")
    return 0


def _cmd_serve(args: argparse.Namespace, settings: Any) -> int:
    """Run the FastAPI app with uvicorn."""
    import uvicorn

    from matchpro.api.server import create_app

    host = args.host or settings.api_host
    port = args.port or settings.api_port
    logger.info("Serving on http://%s:%d", host, port)
    uvicorn.run(create_app(settings), host=host, port=port, log_level="warning")
    return 0


def _read_text(path: Path) -> str:
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")
    return path.read_text(encoding="utf-8")


def _read_json(path: Path) -> Any:
    return json.loads(_read_text(path))


def _setup_logging(settings: Any, verbose: bool, log_format: str = "text") -> None:
    """Configure the matchpro logger from settings."""
    from matchpro.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
