"""Command line entry point: migrations, single runs, the loop and the webhook server."""

from __future__ import annotations

import argparse
import json
import logging
import time
from typing import List, Optional

from confluence_trader.config import settings
from confluence_trader.db.migrate import migrate

logger = logging.getLogger(__name__)


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="confluence-trader", description="Multi-timeframe signal confluence trader."
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("migrate", help="Apply database migrations.")

    sub.add_parser("run-once", help="Run a single scheduler invocation and print its summary.")

    loop = sub.add_parser("loop", help="Invoke the scheduler on a fixed interval.")
    loop.add_argument(
        "--interval",
        type=int,
        default=300,
        help="Loop interval seconds (default: 300 = 5min).",
    )

    serve = sub.add_parser("serve", help="Serve the signal webhook.")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def cmd_migrate() -> int:
    applied = migrate()
    print(f"Database migrations applied: {applied or 'none pending'}")
    return 0


def cmd_run_once() -> int:
    from confluence_trader.runner.scheduler import AnalysisScheduler

    summary = AnalysisScheduler.from_settings(settings).run()
    print(json.dumps(summary.to_dict(), indent=2, default=str))
    return 1 if summary.failed else 0


def cmd_loop(interval: int) -> int:
    from confluence_trader.runner.scheduler import AnalysisScheduler

    scheduler = AnalysisScheduler.from_settings(settings)
    while True:
        try:
            scheduler.run()
        except Exception as exc:
            logger.exception("Scheduler cycle error: %s", exc)
        time.sleep(interval)


def cmd_serve(host: str, port: int) -> int:
    import uvicorn

    from confluence_trader.webhook import create_app

    uvicorn.run(create_app(), host=host, port=port)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    if args.command == "migrate":
        return cmd_migrate()
    if args.command == "run-once":
        return cmd_run_once()
    if args.command == "loop":
        return cmd_loop(args.interval)
    return cmd_serve(args.host, args.port)


if __name__ == "__main__":
    raise SystemExit(main())
