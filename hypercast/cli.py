"""
Poller command line.

    hypercast-poller --once
    hypercast-poller --max-pages 8 --timeout-ms 20000
"""

from __future__ import annotations
from typing import List, Optional
import argparse
import asyncio
import logging
import sys

from .config import load_config
from .errors import ConfigError
from .logging_utils import configure_logging
from .poller import CursorPoller
from .sink import SqliteRecordSink


logger = logging.getLogger(__name__)


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {raw!r}")
    if value <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {raw!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Hypercast hub event poller")
    parser.add_argument("--once", action="store_true", help="Run a single poll cycle and exit (for Cron/CI).")
    parser.add_argument("--max-pages", type=_positive_int, default=None, help="Pages per cycle.")
    parser.add_argument("--timeout-ms", type=_positive_int, default=None, help="Per-page timeout in milliseconds.")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file.")
    parser.add_argument("--verbose", action="store_true", help="Debug logging.")
    return parser


async def run_poller(once: bool, max_pages: Optional[int], timeout_ms: Optional[int]) -> int:
    config = load_config()
    sink = SqliteRecordSink(config.poller.db_path)
    poller = CursorPoller(
        config.poller,
        sink,
        max_pages=max_pages,
        timeout_ms=timeout_ms
    )

    try:
        if once:
            summary = await poller.run_cycle('once completed')
            return 0 if summary is not None and summary.success else 1

        logger.info(
            "Polling %s every %ss",
            config.poller.hub_url, config.poller.poll_interval_ms / 1000
        )
        await poller.run_forever()
        return 0
    finally:
        sink.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)

    try:
        return asyncio.run(run_poller(args.once, args.max_pages, args.timeout_ms))
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 2
    except KeyboardInterrupt:
        logger.info("Poller stopped.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
