"""Concurrent market data fetch: prices, open positions and news."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from confluence_trader.config import Settings, settings as default_settings
from confluence_trader.data.models import NO_NEWS, MarketData
from confluence_trader.data.news import NewsSource
from confluence_trader.data.price_sources import (
    CoinGeckoPriceSource,
    JupiterPriceSource,
    PriceSource,
)
from confluence_trader.errors import TransientFetchError
from confluence_trader.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)


class MarketDataAggregator:
    """Fetch the three inputs of a decision in parallel.

    Only prices are required: a price failure fails the whole fetch, while
    positions degrade to ``[]`` and news to a "no data" sentinel.
    """

    def __init__(
        self,
        position_fetcher: Callable[[], List[dict]],
        primary: Optional[PriceSource] = None,
        fallback: Optional[PriceSource] = None,
        news_source: Optional[NewsSource] = None,
        assets: Optional[Sequence[str]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        s = settings or default_settings
        self.position_fetcher = position_fetcher
        self.primary = primary or JupiterPriceSource(settings=s)
        self.fallback = fallback or CoinGeckoPriceSource(settings=s)
        self.news_source = news_source or NewsSource(settings=s)
        self.assets = tuple(assets or s.assets)
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=s.price_max_retries, retry_on=(TransientFetchError,)
        )

    def fetch(self) -> MarketData:
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="market-data") as pool:
            prices_future = pool.submit(self.fetch_prices_with_source)
            positions_future = pool.submit(self.fetch_positions)
            news_future = pool.submit(self.fetch_news)
            # Wait on every future so no fetch outlives the pool.
            positions = positions_future.result()
            news = news_future.result()
            prices, source = prices_future.result()
        return MarketData(prices=prices, positions=positions, news=news, price_source=source)

    def fetch_prices(self) -> Dict[str, float]:
        prices, _source = self.fetch_prices_with_source()
        return prices

    def fetch_prices_with_source(self) -> Tuple[Dict[str, float], str]:
        try:
            prices = self.retry_policy.call(
                lambda: self.primary.fetch(self.assets),
                label=f"{self.primary.name} prices",
            )
            return prices, self.primary.name
        except TransientFetchError as exc:
            logger.error(
                "All %s attempts failed (%s), falling back to %s",
                self.primary.name,
                exc,
                self.fallback.name,
            )
        try:
            return self.fallback.fetch(self.assets), self.fallback.name
        except TransientFetchError as exc:
            logger.error("%s fallback also failed: %s", self.fallback.name, exc)
            raise

    def fetch_positions(self) -> List[dict]:
        try:
            return list(self.position_fetcher() or [])
        except Exception as exc:
            logger.error("Error fetching positions: %s", exc)
            return []

    def fetch_news(self) -> str:
        try:
            return self.news_source.fetch(self.assets)
        except Exception as exc:
            logger.error("Error fetching news: %s", exc)
            return NO_NEWS
