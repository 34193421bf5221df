"""Signal webhook server."""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

import uvicorn

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from confluence_trader.cli import configure_logging
from confluence_trader.webhook import create_app


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve the TradingView signal webhook.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    return parser.parse_args()


def main() -> None:
    configure_logging()
    args = parse_args()
    uvicorn.run(create_app(), host=args.host, port=args.port)


if __name__ == "__main__":
    main()
