"""Data layer models for market snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

NO_NEWS = "No news available"


@dataclass(frozen=True)
class MarketData:
    prices: Dict[str, float]
    positions: List[dict] = field(default_factory=list)
    news: str = NO_NEWS
    price_source: str = ""
