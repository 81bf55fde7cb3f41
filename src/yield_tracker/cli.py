#!/usr/bin/env python3
"""
Command line entry point.

    yield-tracker snapshot
    yield-tracker query <token> [hours]
    yield-tracker export <token> [--out PATH]
    yield-tracker serve [--host HOST] [--port PORT]
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from yield_tracker.config import ConfigManager, TrackerSettings, load_tokens
from yield_tracker.exceptions import TokenNotFoundError, YieldTrackerError
from yield_tracker.indexer import export_csv, format_history, query_history, run_snapshot_cycle
from yield_tracker.logger import setup_service_logger
from yield_tracker.price_sources import PriceSourceAdapter
from yield_tracker.publisher import build_publisher
from yield_tracker.store import SnapshotStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="yield-tracker",
        description="Track share prices of yield-bearing tokens and their trailing APR",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("snapshot", help="Take one snapshot of every configured token")

    query = subparsers.add_parser("query", help="Show recent snapshots of a token")
    query.add_argument("token", type=str, help="Token id")
    query.add_argument("hours", type=float, nargs="?", default=24, help="Lookback in hours")

    export = subparsers.add_parser("export", help="Export the full history of a token as CSV")
    export.add_argument("token", type=str, help="Token id")
    export.add_argument("--out", type=str, default=None, help="Output path (default: <data_dir>/<token>.csv)")

    serve = subparsers.add_parser("serve", help="Run the read API")
    serve.add_argument("--host", type=str, default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = ConfigManager(args.config)
        settings = TrackerSettings.from_config(config)
        setup_service_logger(settings, "api" if args.command == "serve" else "indexer")
        store = SnapshotStore(settings.snapshots_path)

        if args.command == "snapshot":
            tokens = load_tokens(config)
            run_snapshot_cycle(
                tokens,
                store,
                PriceSourceAdapter(settings),
                settings,
                publisher=build_publisher(settings),
            )
        elif args.command == "query":
            history = query_history(store, args.token, args.hours)
            print(format_history(history, args.hours))
        elif args.command == "export":
            out_path = args.out or os.path.join(settings.data_dir, f"{args.token}.csv")
            rows = export_csv(store, args.token, out_path)
            print(f"Exported {rows} snapshots to {out_path}")
        elif args.command == "serve":
            from yield_tracker.api import start_api_server

            start_api_server(settings, args.host, args.port)
    except TokenNotFoundError as e:
        print(f"{e}. Available: {', '.join(e.available) or '(none)'}", file=sys.stderr)
        return 1
    except YieldTrackerError as e:
        logger.critical(f"{args.command} failed: {e}", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
