"""Invoke the analysis scheduler on a fixed interval."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys
import time

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from confluence_trader.cli import configure_logging
from confluence_trader.config import settings
from confluence_trader.runner.scheduler import AnalysisScheduler


logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the analysis scheduler on schedule.")
    parser.add_argument(
        "--interval",
        type=int,
        default=300,
        help="Loop interval seconds (default: 300 = 5min).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single invocation and exit.",
    )
    return parser.parse_args()


def main() -> None:
    configure_logging()
    args = parse_args()
    scheduler = AnalysisScheduler.from_settings(settings)

    while True:
        try:
            summary = scheduler.run()
            for result in summary.failed:
                logger.warning("Ticker %s failed: %s", result.ticker, result.error)
        except Exception as exc:
            logger.exception("Scheduler cycle error: %s", exc)
        if args.once:
            return
        time.sleep(args.interval)


if __name__ == "__main__":
    main()
