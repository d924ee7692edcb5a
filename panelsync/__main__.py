#!/usr/bin/env python3
"""Command line entry point: run a sync cycle, retry failures, show stats."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from .bootstrap import build_engine, configure_logging
from .config import get_settings
from .errors import SyncInProgressError


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="panelsync",
        description="Drain the offline sync queue against the remote service.",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("sync", help="Run one sync cycle over every pending item")
    sub.add_parser("retry", help="Retry items with retryable failures")
    sub.add_parser("stats", help="Print queue statistics as JSON")
    cleanup = sub.add_parser("cleanup", help="Purge old failed items")
    cleanup.add_argument("--days", type=int, default=None, help="Age threshold in days")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    engine = build_engine(settings)
    orchestrator = engine.orchestrator
    try:
        if args.command == "stats":
            print(json.dumps(orchestrator.get_sync_stats().to_dict(), indent=2))
            return 0

        if args.command == "cleanup":
            days = args.days if args.days is not None else settings.CLEANUP_MAX_AGE_DAYS
            removed = orchestrator.cleanup_old_items(days)
            logging.info("Removed %d old items", removed)
            return 0

        runner = orchestrator.sync_when_online if args.command == "sync" else orchestrator.retry_failed_items
        result = runner()
        print(json.dumps(result.to_dict(), indent=2))
        return 1 if result.failed else 0
    except SyncInProgressError as e:
        logging.error(str(e))
        return 2
    finally:
        engine.close()


if __name__ == "__main__":  # pragma: no cover - manual run
    sys.exit(main())
