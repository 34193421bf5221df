"""Signal analysis exports."""

from confluence_trader.analysis.confluence import (
    ConfluenceAnalyzer,
    ConfluenceResult,
    latest_per_timeframe,
    leverage_for_confidence,
)

__all__ = [
    "ConfluenceAnalyzer",
    "ConfluenceResult",
    "latest_per_timeframe",
    "leverage_for_confidence",
]
