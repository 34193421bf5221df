"""Data access layer exports."""

from confluence_trader.data.aggregator import MarketDataAggregator
from confluence_trader.data.models import NO_NEWS, MarketData
from confluence_trader.data.news import NewsSource
from confluence_trader.data.price_sources import (
    CoinGeckoPriceSource,
    JupiterPriceSource,
    PriceSource,
)

__all__ = [
    "CoinGeckoPriceSource",
    "JupiterPriceSource",
    "MarketData",
    "MarketDataAggregator",
    "NO_NEWS",
    "NewsSource",
    "PriceSource",
]
