"""Command-line entry point.

Usage:
    python -m solana_whale_tracker run --parser my_pkg.parsers:build_parser
    python -m solana_whale_tracker run --parser ... --sink my_pkg.telegram:build_sink

Factories are given the loaded Settings and must return the component.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import importlib
import logging
import signal
import sys
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from solana_whale_tracker.config import Settings, get_settings
from solana_whale_tracker.pipeline import Pipeline

logger = logging.getLogger(__name__)


def load_factory(spec: str) -> Callable[[Settings], Any]:
    """Resolve a ``module:attribute`` reference to a callable."""
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Expected 'module:factory', got {spec!r}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ValueError(f"{spec!r} is not callable")
    return factory


async def run_pipeline(pipeline: Pipeline) -> None:
    """Run the pipeline until SIGINT or SIGTERM."""
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _on_stop() -> None:
        logger.info("Shutdown signal received")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _on_stop)

    async with pipeline:
        await stop_event.wait()


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solana_whale_tracker",
        description="Solana whale, cluster and KOL alert pipeline",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="run the live pipeline")
    run.add_argument(
        "--parser",
        required=True,
        help="transaction parser factory as module:callable",
    )
    run.add_argument(
        "--sink",
        default=None,
        help="notification sink factory as module:callable (default: log only)",
    )
    run.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="log alerts instead of delivering them",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)

    try:
        settings = get_settings()
        settings.validate_requirements(command=args.command)
    except (ValidationError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Settings: %s", settings.redacted_summary())

    try:
        parser = load_factory(args.parser)(settings)
        sink = load_factory(args.sink)(settings) if args.sink else None
    except (ImportError, ValueError) as e:
        logger.error("Failed to load component: %s", e)
        return 2

    pipeline = Pipeline(settings, parser=parser, sink=sink, dry_run=args.dry_run)
    asyncio.run(run_pipeline(pipeline))
    return 0


if __name__ == "__main__":
    sys.exit(main())
