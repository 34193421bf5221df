"""Multi-timeframe signal confluence."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Dict, Iterable, Optional, Sequence

from confluence_trader.models import Signal, SignalDirection

logger = logging.getLogger(__name__)

DEFAULT_TIMEFRAMES = ("30min", "1h", "4h", "1d")
# Checked in order; the first one present is the higher-timeframe bias.
HIGHER_TIMEFRAMES = ("1d", "4h")


@dataclass(frozen=True)
class ConfluenceResult:
    action: SignalDirection
    confidence: int
    confluence_count: int
    buy_count: int = 0
    sell_count: int = 0
    hold_count: int = 0
    overridden: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "action": self.action.value,
            "confidence": self.confidence,
            "confluence": self.confluence_count,
            "buy_count": self.buy_count,
            "sell_count": self.sell_count,
            "hold_count": self.hold_count,
            "overridden": self.overridden,
        }


def latest_per_timeframe(signals: Iterable[Signal]) -> Dict[str, Signal]:
    """Latest signal per timeframe; on equal timestamps the last one seen wins."""
    latest: Dict[str, Signal] = {}
    for signal in signals:
        current = latest.get(signal.timeframe)
        if current is None or signal.timestamp >= current.timestamp:
            latest[signal.timeframe] = signal
    return latest


class ConfluenceAnalyzer:
    """Reduce per-timeframe signals to one action and a 1-10 confidence.

    Confidence is not clamped after the higher-timeframe override, so a
    weak buy vetoed by a daily sell can end below the nominal range.
    """

    def __init__(self, timeframes: Optional[Sequence[str]] = None) -> None:
        self.timeframes = tuple(timeframes or DEFAULT_TIMEFRAMES)

    def analyze(self, signals: Iterable[Signal]) -> ConfluenceResult:
        latest = latest_per_timeframe(signals)

        buy_count = sell_count = hold_count = 0
        for timeframe in self.timeframes:
            signal = latest.get(timeframe)
            if signal is None:
                continue
            if signal.direction == SignalDirection.BUY:
                buy_count += 1
            elif signal.direction == SignalDirection.SELL:
                sell_count += 1
            else:
                hold_count += 1

        if buy_count >= 2 and sell_count == 0:
            action, confidence = SignalDirection.BUY, min(10, buy_count * 2 + 5)
        elif sell_count >= 2 and buy_count == 0:
            action, confidence = SignalDirection.SELL, min(10, sell_count * 2 + 5)
        elif sell_count > buy_count:
            action, confidence = SignalDirection.SELL, 6
        elif buy_count > sell_count:
            action, confidence = SignalDirection.BUY, 6
        else:
            action, confidence = SignalDirection.HOLD, 5

        overridden = False
        high_tf = self._higher_timeframe_signal(latest)
        if (
            high_tf is not None
            and high_tf.direction == SignalDirection.SELL
            and action == SignalDirection.BUY
        ):
            action = SignalDirection.HOLD
            confidence -= 2
            overridden = True

        result = ConfluenceResult(
            action=action,
            confidence=confidence,
            confluence_count=buy_count + sell_count,
            buy_count=buy_count,
            sell_count=sell_count,
            hold_count=hold_count,
            overridden=overridden,
        )
        logger.debug("Confluence: %s", result.to_dict())
        return result

    @staticmethod
    def _higher_timeframe_signal(latest: Dict[str, Signal]) -> Optional[Signal]:
        for timeframe in HIGHER_TIMEFRAMES:
            if timeframe in latest:
                return latest[timeframe]
        return None


def leverage_for_confidence(
    confidence: float, low: float, med: float, high: float
) -> float:
    if confidence > 7:
        return high
    if confidence >= 4:
        return med
    return low
