"""Run orchestration exports."""

from confluence_trader.runner.scheduler import (
    AnalysisScheduler,
    RunMode,
    RunSummary,
    TickerResult,
    pair_for_ticker,
)

__all__ = [
    "AnalysisScheduler",
    "RunMode",
    "RunSummary",
    "TickerResult",
    "pair_for_ticker",
]
