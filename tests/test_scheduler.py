from dataclasses import replace
import json

import httpx
import pytest
from pydantic import ValidationError

from confluence_trader.data.aggregator import MarketDataAggregator
from confluence_trader.decision.engine import DecisionEngine
from confluence_trader.errors import SignalValidationError, TransientFetchError
from confluence_trader.execution.ledger import PositionLedger
from confluence_trader.execution.simulated_connector import SimulatedConnector
from confluence_trader.execution.trade_executor import TradeExecutor
from confluence_trader.models import Position, Signal
from confluence_trader.runner.scheduler import AnalysisScheduler, RunMode, pair_for_ticker
from confluence_trader.state.signal_store import SignalStore
from confluence_trader.state.store import AccountStore

from fakes import FakeLLMClient, FakeNewsSource, FakePriceSource, decision_json, no_sleep_policy


def _scheduler(settings, store, replies, primary=None):
    connector = SimulatedConnector(free_balance=1000.0, price_lookup=lambda pair: 150.0)
    aggregator = MarketDataAggregator(
        connector.list_positions,
        primary=primary or FakePriceSource("jupiter"),
        fallback=FakePriceSource("coingecko", failures=-1),
        news_source=FakeNewsSource(),
        retry_policy=no_sleep_policy(retry_on=(TransientFetchError,)),
        settings=settings,
    )
    client = FakeLLMClient(replies)
    engine = DecisionEngine(
        client=client,
        retry_policy=no_sleep_policy(
            retry_on=(httpx.HTTPError, json.JSONDecodeError, ValidationError)
        ),
        settings=settings,
    )
    executor = TradeExecutor(connector, PositionLedger(store), settings=settings)
    scheduler = AnalysisScheduler(store, aggregator, engine, executor, settings=settings)
    return scheduler, client, connector


def _trigger(store, settings, now, *items):
    signals = SignalStore(store, settings=settings)
    for ticker, timeframe, direction in items:
        signals.add_signal(Signal.create(timeframe, direction, ticker, now), now=now)


@pytest.mark.parametrize(
    "ticker,pair",
    [
        ("SOLUSDT", "SOL/USDC"),
        ("BINANCE:SOLUSDT", "SOL/USDC"),
        ("SOLUSDT.P", "SOL/USDC"),
        ("btc/usdc", "BTC/USDC"),
        ("BTC", "BTC/USDC"),
    ],
)
def test_pair_for_ticker(settings, ticker, pair):
    assert pair_for_ticker(ticker, settings.trading_pairs) == pair


@pytest.mark.parametrize("ticker", ["DOGEUSDT", "SOLANA", "UNKNOWN"])
def test_pair_for_unknown_ticker(settings, ticker):
    with pytest.raises(SignalValidationError):
        pair_for_ticker(ticker, settings.trading_pairs)


def test_locked_out_run_has_no_side_effects(settings, store, now):
    _trigger(store, settings, now, ("SOLUSDT", "30min", "buy"))
    store.acquire_lease("someone-else", ttl_s=300, now=now)
    scheduler, client, connector = _scheduler(settings, store, [])

    summary = scheduler.run(now=now + 5)

    assert summary.mode == RunMode.LOCKED_OUT
    assert client.prompts == []
    assert store.load().analysis_lock.owner == "someone-else"
    assert store.load().last_analysis is None


def test_full_analysis_trades_and_isolates_failing_ticker(settings, store, now):
    _trigger(
        store,
        settings,
        now,
        ("SOLUSDT", "30min", "buy"),
        ("SOLUSDT", "1h", "buy"),
        ("BTCUSDT", "30min", "sell"),
    )
    replies = ["garbage", "still garbage", "{}"] + [decision_json("hold", confidence=5, leverage=2.5)]
    scheduler, client, connector = _scheduler(settings, store, replies)

    summary = scheduler.run(now=now + 60)

    assert summary.mode == RunMode.FULL_ANALYSIS
    sol, btc = summary.results
    assert sol.ticker == "SOLUSDT" and not sol.ok
    assert "DecisionServiceError" in sol.error
    assert sol.confluence["action"] == "buy"
    assert btc.ok and btc.trade == {"status": "noop"}
    assert len(client.prompts) == 4
    state = store.load()
    assert state.analysis_lock is None
    assert state.last_analysis == now + 60
    assert store.recent_runs()[0]["run_id"] == summary.run_id


def test_full_analysis_buy_updates_ledger(settings, store, now):
    _trigger(store, settings, now, ("SOLUSDT", "30min", "buy"), ("SOLUSDT", "1h", "buy"))
    scheduler, client, connector = _scheduler(
        settings, store, [decision_json("buy_sol", confidence=9, leverage=4.0)]
    )

    summary = scheduler.run(now=now + 60)

    [result] = summary.results
    assert result.ok, result.error
    assert result.trade["status"] == "opened"
    assert len(connector.open_calls) == 1
    assert "SOL/USDC" in client.prompts[0]
    [position] = PositionLedger(store).positions()
    assert position.amount == pytest.approx(300.0)


def test_dry_run_when_trading_disabled(settings, store, now):
    settings = replace(settings, trading_enabled=False)
    _trigger(store, settings, now, ("SOLUSDT", "30min", "buy"))
    scheduler, _, connector = _scheduler(settings, store, [decision_json("buy_sol")])

    summary = scheduler.run(now=now + 60)

    assert summary.results[0].trade == {"status": "dry_run", "action": "buy_sol", "pair": "SOL/USDC"}
    assert connector.open_calls == []
    assert PositionLedger(store).positions() == []


def test_decision_for_another_pair_is_rejected(settings, store, now):
    _trigger(store, settings, now, ("SOLUSDT", "30min", "buy"))
    scheduler, _, connector = _scheduler(settings, store, [decision_json("buy_btc")])

    summary = scheduler.run(now=now + 60)

    assert not summary.results[0].ok
    assert connector.open_calls == []


def test_unknown_ticker_fails_alone(settings, store, now):
    _trigger(store, settings, now, ("DOGEUSDT", "30min", "buy"), ("SOLUSDT", "1h", "hold"))
    scheduler, client, _ = _scheduler(settings, store, [decision_json("hold", confidence=5, leverage=2.5)])

    summary = scheduler.run(now=now + 60)

    doge, sol = summary.results
    assert "SignalValidationError" in doge.error
    assert sol.ok
    assert len(client.prompts) == 1


def test_light_check_records_price_sample(settings, store, now):
    scheduler, client, _ = _scheduler(settings, store, [])

    summary = scheduler.run(now=now)

    assert summary.mode == RunMode.LIGHT_CHECK
    assert summary.light_check["prices"] == {"SOL": 150.0, "BTC": 60000.0}
    assert client.prompts == []
    history = store.load().price_history
    assert [(e.timestamp, e.prices["SOL"]) for e in history] == [(now, 150.0)]


def test_stale_trigger_falls_back_to_light_check(settings, store, now):
    _trigger(store, settings, now, ("SOLUSDT", "30min", "buy"))
    scheduler, client, _ = _scheduler(settings, store, [])

    summary = scheduler.run(now=now + settings.trigger_window_s)

    assert summary.mode == RunMode.LIGHT_CHECK
    assert client.prompts == []


def test_light_check_errors_are_swallowed(settings, store, now):
    scheduler, _, _ = _scheduler(settings, store, [], primary=FakePriceSource("jupiter", failures=-1))

    summary = scheduler.run(now=now)

    assert "TransientFetchError" in summary.light_check["error"]
    assert store.load().analysis_lock is None
    assert store.load().price_history == []


class _BrokenLoadStore(AccountStore):
    def load(self):
        raise RuntimeError("disk on fire")


def test_lease_released_when_run_crashes(settings, now):
    store = _BrokenLoadStore(settings.database_url)
    scheduler, _, _ = _scheduler(settings, store, [])

    with pytest.raises(RuntimeError):
        scheduler.run(now=now)

    assert store.acquire_lease("next-run", ttl_s=300, now=now + 1) is not None
    [run] = store.recent_runs()
    assert "disk on fire" in run["summary"]["error"]


class _ReentrantLLMClient(FakeLLMClient):
    """Starts another scheduler run while this one is waiting on the reasoning service."""

    def __init__(self, replies, during_call):
        super().__init__(replies)
        self.during_call = during_call
        self.overlapping = []

    def chat(self, user_prompt, system_prompt=None, **kwargs):
        if not self.overlapping:
            self.overlapping.append(self.during_call())
        return super().chat(user_prompt, system_prompt, **kwargs)


def test_overlapping_runs_reach_the_reasoning_service_once(settings, store, now):
    _trigger(store, settings, now, ("SOLUSDT", "30min", "buy"))
    second, second_client, _ = _scheduler(settings, store, [])
    first, _, first_connector = _scheduler(settings, store, [])
    first_client = _ReentrantLLMClient(
        [decision_json("hold", confidence=5, leverage=2.5)],
        during_call=lambda: second.run(now=now + 61),
    )
    first.decision_engine.client = first_client

    summary = first.run(now=now + 60)

    [overlapped] = first_client.overlapping
    assert overlapped.mode == RunMode.LOCKED_OUT
    assert second_client.prompts == []
    assert summary.mode == RunMode.FULL_ANALYSIS
    assert len(first_client.prompts) == 1
    assert [r.ok for r in summary.results] == [True]
    assert store.load().analysis_lock is None
    assert first_connector.open_calls == []


class _UnrecordableStore(AccountStore):
    def record_run(self, *args, **kwargs):
        raise RuntimeError("run log unavailable")


def test_run_log_failure_keeps_the_summary(settings, now):
    store = _UnrecordableStore(settings.database_url)
    scheduler, _, _ = _scheduler(settings, store, [])

    summary = scheduler.run(now=now)

    assert summary.mode == RunMode.LIGHT_CHECK
    assert summary.light_check["price_samples"] == 1
    assert store.load().analysis_lock is None


class _BrokenEverythingStore(_UnrecordableStore):
    def load(self):
        raise RuntimeError("disk on fire")


def test_run_log_failure_does_not_mask_the_run_error(settings, now):
    store = _BrokenEverythingStore(settings.database_url)
    scheduler, _, _ = _scheduler(settings, store, [])

    with pytest.raises(RuntimeError, match="disk on fire"):
        scheduler.run(now=now)


def test_simulated_balance_excludes_stored_positions(settings, store, now):
    PositionLedger(store).append(
        Position.open("SOL/USDC", amount=300.0, entry_price=150.0, leverage=4.0, timestamp=now)
    )

    scheduler = AnalysisScheduler.from_settings(settings, store=store)

    assert scheduler.executor.connector.get_free_balance() == pytest.approx(700.0)
