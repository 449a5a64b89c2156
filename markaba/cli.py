"""
Operator command line for the cached weather/prayer data.

Usage examples:

    python -m markaba.cli status
    python -m markaba.cli refresh weather
    python -m markaba.cli show prayer
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Optional, Sequence

from markaba.config import settings
from markaba.errors import RefreshError
from markaba.runtime import JOB_NAMES, Runtime
from utils.logging_utils import get_tagged_logger, setup_logging

logger = get_tagged_logger(__name__, tag="cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="markaba", description="Inspect and refresh cached domain data.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show cache freshness and the configured schedules")

    refresh = sub.add_parser("refresh", help="Fetch a domain now and overwrite its cache")
    refresh.add_argument("domain", choices=sorted(JOB_NAMES))

    show = sub.add_parser("show", help="Print a domain's current document (refreshing if stale)")
    show.add_argument("domain", choices=sorted(JOB_NAMES))
    return parser


def _print(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


def main(argv: Optional[Sequence[str]] = None, runtime: Optional[Runtime] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=settings.log_level, job_name="markaba-cli")
    runtime = runtime or Runtime.from_settings()

    if args.command == "status":
        _print({
            "domains": {name: service.status() for name, service in runtime.services.items()},
            "jobs": runtime.scheduler.status()["jobs"],
        })
        return 0

    try:
        if args.command == "refresh":
            document = runtime.trigger_domain(args.domain)
        else:
            document = runtime.service(args.domain).get_current()
    except RefreshError as exc:
        logger.error(f"{args.command} {args.domain} failed: {exc}")
        return 1

    _print(document.to_dict())
    return 0


if __name__ == "__main__":
    sys.exit(main())
