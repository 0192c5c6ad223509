"""Command line entry point for cronbell."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config_loader import load_config
from .notifiers import MailError
from .rules import SchedulerError
from .services import CronBellService

LOG_FORMAT = "[%(asctime)s %(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Cron-style job scheduler")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("CRONBELL_LOG_LEVEL", "INFO"),
        help="Logging level (default: $CRONBELL_LOG_LEVEL or INFO)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the scheduler until interrupted")
    run.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the YAML configuration file",
    )

    listing = sub.add_parser("list", help="Print configured jobs and their next fire times")
    listing.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the YAML configuration file",
    )

    return parser


def configure_logging(level: str) -> None:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        config = load_config(args.config)
        service = CronBellService(config)
        service.bootstrap(build_units=args.command != "list")
    except (OSError, ValueError, KeyError, SchedulerError, MailError) as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2

    if args.command == "list":
        return _command_list(service)
    if args.command == "run":
        return _command_run(service)

    parser.error("unknown command")
    return 1


def _command_list(service: CronBellService) -> int:
    output = []
    for slot in service.scheduler.slots:
        name, rule = slot.describe()
        output.append(
            {
                "name": name,
                "rule": rule,
                "upcoming": [instant.isoformat() for instant in slot.pending],
            }
        )
    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0


def _command_run(service: CronBellService) -> int:
    try:
        snapshot = asyncio.run(service.run_forever())
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        print("Interrupted, compiling snapshot...", file=sys.stderr)
        snapshot = service.stats.snapshot()
    print(json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
