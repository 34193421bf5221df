import pytest

from confluence_trader.analysis.confluence import (
    ConfluenceAnalyzer,
    latest_per_timeframe,
    leverage_for_confidence,
)
from confluence_trader.models import Signal, SignalDirection

BUY, SELL, HOLD = SignalDirection.BUY, SignalDirection.SELL, SignalDirection.HOLD


def _signals(*items, ticker="SOLUSDT", ts=1_700_000_000):
    return [
        Signal.create(timeframe=tf, direction=direction, ticker=ticker, timestamp=ts + i)
        for i, (tf, direction) in enumerate(items)
    ]


def test_two_buys_and_a_hold_is_a_strong_buy():
    result = ConfluenceAnalyzer().analyze(_signals(("30min", "buy"), ("1h", "buy"), ("4h", "hold")))
    assert result.action == BUY
    assert result.confidence == 9
    assert result.confluence_count == 2
    assert not result.overridden


def test_higher_timeframe_sell_vetoes_buy():
    result = ConfluenceAnalyzer().analyze(_signals(("30min", "buy"), ("1h", "buy"), ("4h", "sell")))
    assert result.action == HOLD
    assert result.confidence == 4
    assert result.overridden


@pytest.mark.parametrize(
    "items,action,confidence",
    [
        ([("30min", "buy"), ("1h", "buy"), ("4h", "buy"), ("1d", "buy")], BUY, 10),
        ([("30min", "sell"), ("1h", "sell")], SELL, 9),
        ([("30min", "sell"), ("1h", "sell"), ("4h", "buy")], SELL, 6),
        ([("30min", "buy"), ("1h", "sell")], HOLD, 5),
        ([("30min", "hold"), ("1h", "hold")], HOLD, 5),
        ([("30min", "buy")], BUY, 6),
        ([], HOLD, 5),
    ],
)
def test_decision_table(items, action, confidence):
    result = ConfluenceAnalyzer().analyze(_signals(*items))
    assert result.action == action
    assert result.confidence == confidence


def test_daily_bias_takes_priority_over_four_hour():
    result = ConfluenceAnalyzer().analyze(
        _signals(("30min", "buy"), ("1h", "buy"), ("4h", "sell"), ("1d", "buy"))
    )
    # 3 buys vs 1 sell -> buy 6; the 1d buy is the bias, so no veto
    assert result.action == BUY
    assert result.confidence == 6
    assert not result.overridden


def test_unknown_timeframes_are_ignored():
    result = ConfluenceAnalyzer().analyze(_signals(("15m", "sell"), ("30min", "buy"), ("1h", "buy")))
    assert result.action == BUY
    assert result.sell_count == 0


def test_only_latest_signal_per_timeframe_counts():
    old = Signal.create("30min", "sell", "SOLUSDT", 100)
    new = Signal.create("30min", "buy", "SOLUSDT", 200)
    latest = latest_per_timeframe([new, old])
    assert latest["30min"].direction == BUY

    tie_a = Signal.create("1h", "sell", "SOLUSDT", 300)
    tie_b = Signal.create("1h", "buy", "SOLUSDT", 300)
    assert latest_per_timeframe([tie_a, tie_b])["1h"].direction == BUY


@pytest.mark.parametrize("confidence,expected", [(10, 4.0), (8, 4.0), (7, 3.3), (4, 3.3), (3, 2.5)])
def test_leverage_tiers(confidence, expected):
    assert leverage_for_confidence(confidence, 2.5, 3.3, 4.0) == expected
