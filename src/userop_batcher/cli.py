"""
Command-line interface for the UserOperation batcher.

Provides commands for running a batching pass and inspecting the queue.
"""

import argparse
import asyncio
import logging
import sys
from collections import Counter
from typing import List, Optional

import structlog

from userop_batcher import __version__
from userop_batcher.config import BatcherConfig, set_config
from userop_batcher.core.batcher import Batcher
from userop_batcher.engine.fees import EstimationError
from userop_batcher.engine.submitter import ExhaustedRetriesError
from userop_batcher.state.queue_store import QueueStore, QueueStoreError


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        stream=sys.stdout,
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="userop-batcher",
        description="Batch queued ERC-4337 user operations and send them to a bundler",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Run command
    run_parser = subparsers.add_parser("run", help="Process the queue once")
    run_parser.add_argument(
        "--relay",
        "--bundler",
        dest="relay",
        help="Relay JSON-RPC URL (default: http://127.0.0.1:3000)",
    )
    run_parser.add_argument(
        "--entrypoint",
        help="EntryPoint contract address",
    )
    run_parser.add_argument(
        "--queue",
        help="Path of the queue file (default: queue.json)",
    )
    run_parser.add_argument(
        "--database-url",
        help="Database URL for rate windows (default: sqlite+aiosqlite:///batcher.db)",
    )
    run_parser.add_argument(
        "--max-per-target",
        type=int,
        help="Maximum operations per target per window (default: 20)",
    )
    run_parser.add_argument(
        "--window",
        type=int,
        help="Rate window length in seconds (default: 60)",
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Select and price operations without sending",
    )
    run_parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    run_parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs in JSON format",
    )

    # Status command
    status_parser = subparsers.add_parser("status", help="Show queued entries per target")
    status_parser.add_argument(
        "--queue",
        help="Path of the queue file (default: BATCHER_QUEUE_PATH or queue.json)",
    )

    return parser


def build_config(args: argparse.Namespace) -> BatcherConfig:
    """Build configuration from environment defaults and CLI overrides."""
    overrides = {
        "relay_url": args.relay,
        "entrypoint": args.entrypoint,
        "queue_path": args.queue,
        "database_url": args.database_url,
        "max_per_target_per_window": args.max_per_target,
        "rate_window_seconds": args.window,
        "log_level": args.log_level,
    }
    values = {key: value for key, value in overrides.items() if value is not None}
    if args.dry_run:
        values["dry_run"] = True
    if args.log_json:
        values["log_json"] = True
    return BatcherConfig(**values)


async def run_batcher(config: BatcherConfig, batcher: Optional[Batcher] = None) -> int:
    """Run one batching pass and return the process exit status."""
    batcher = batcher or Batcher(config)

    try:
        outcome = await batcher.run()
    except (EstimationError, ExhaustedRetriesError, QueueStoreError) as e:
        print(f"Run failed: {e}", file=sys.stderr)
        return 1

    print(f"Run finished: {outcome.status.value}")
    print(f"  Selected: {len(outcome.selected)}")
    print(f"  Retained: {len(outcome.retained)}")
    print(f"  Dropped:  {len(outcome.dropped) + len(outcome.malformed)}")
    if outcome.receipt is not None:
        print(f"  Receipt:  {outcome.receipt}")
    return 0


def show_status(queue_path: str) -> int:
    """Print queued entries per target."""
    try:
        entries, malformed = QueueStore.parse_lenient(QueueStore(queue_path).load_raw())
    except QueueStoreError as e:
        print(f"Cannot read queue: {e}", file=sys.stderr)
        return 1

    if malformed:
        print(f"{len(malformed)} malformed (dropped on next run)")

    if not entries:
        print("Queue empty.")
        return 0

    print(f"{len(entries)} queued entr{'y' if len(entries) == 1 else 'ies'}:")
    for target, count in Counter(entry.target_key for entry in entries).most_common():
        print(f"  {target}: {count}")
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "run":
        config = build_config(args)
        set_config(config)
        setup_logging(config.log_level, config.log_json)
        sys.exit(asyncio.run(run_batcher(config)))
    elif args.command == "status":
        sys.exit(show_status(args.queue or BatcherConfig().queue_path))


if __name__ == "__main__":
    main()
