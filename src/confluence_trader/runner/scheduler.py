"""Analysis run admission and orchestration.

One invocation moves IDLE -> LOCKED -> (FULL_ANALYSIS | LIGHT_CHECK) -> IDLE.
The lease is released on every exit path; a crashed run's lease expires
after ``analysis_lock_ttl_s``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from confluence_trader.analysis.confluence import ConfluenceAnalyzer
from confluence_trader.config import Settings, settings as default_settings
from confluence_trader.data.aggregator import MarketDataAggregator
from confluence_trader.decision.engine import DecisionEngine
from confluence_trader.errors import DecisionServiceError, SignalValidationError
from confluence_trader.execution.base_connector import BasePositionConnector
from confluence_trader.execution.ledger import PositionLedger, ensure_valid_stack
from confluence_trader.execution.live_connector import LiveConnector
from confluence_trader.execution.simulated_connector import SimulatedConnector
from confluence_trader.execution.trade_executor import TradeExecutor
from confluence_trader.models import PriceHistoryEntry, Signal
from confluence_trader.state.signal_store import SignalStore, group_by_ticker
from confluence_trader.state.store import AccountState, AccountStore
from confluence_trader.utils.time import utc_now_s

logger = logging.getLogger(__name__)

_QUOTE_SUFFIXES = ("", "USD", "USDT", "USDC", "PERP", "USDPERP")


class RunMode(str, Enum):
    LOCKED_OUT = "locked_out"
    FULL_ANALYSIS = "full_analysis"
    LIGHT_CHECK = "light_check"


@dataclass
class TickerResult:
    ticker: str
    ok: bool
    pair: Optional[str] = None
    confluence: Optional[Dict[str, Any]] = None
    decision: Optional[Dict[str, Any]] = None
    trade: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ticker": self.ticker,
            "ok": self.ok,
            "pair": self.pair,
            "confluence": self.confluence,
            "decision": self.decision,
            "trade": self.trade,
            "error": self.error,
        }


@dataclass
class RunSummary:
    run_id: str
    mode: RunMode
    started_at: int
    finished_at: Optional[int] = None
    results: List[TickerResult] = field(default_factory=list)
    light_check: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def failed(self) -> List[TickerResult]:
        return [r for r in self.results if not r.ok]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "mode": self.mode.value,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "results": [r.to_dict() for r in self.results],
            "light_check": self.light_check,
            "error": self.error,
        }


def pair_for_ticker(ticker: str, pairs: Sequence[str]) -> str:
    """Map a chart ticker such as ``BINANCE:SOLUSDT`` to a configured pair."""
    symbol = ticker.split(":")[-1].upper().replace("/", "").replace("-", "")
    if symbol.endswith(".P"):
        symbol = symbol[:-2]
    for pair in pairs:
        base = pair.split("/")[0].upper()
        if symbol.startswith(base) and symbol[len(base):] in _QUOTE_SUFFIXES:
            return pair
    raise SignalValidationError(f"ticker {ticker} does not map to a tradable pair")


class AnalysisScheduler:
    def __init__(
        self,
        store: AccountStore,
        aggregator: MarketDataAggregator,
        decision_engine: DecisionEngine,
        executor: TradeExecutor,
        signal_store: Optional[SignalStore] = None,
        analyzer: Optional[ConfluenceAnalyzer] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.store = store
        self.aggregator = aggregator
        self.decision_engine = decision_engine
        self.executor = executor
        self.signal_store = signal_store or SignalStore(store, settings=self.settings)
        self.analyzer = analyzer or ConfluenceAnalyzer(self.settings.signal_timeframes)

    @classmethod
    def from_settings(
        cls, settings: Optional[Settings] = None, store: Optional[AccountStore] = None
    ) -> "AnalysisScheduler":
        s = settings or default_settings
        store = store or AccountStore(s.database_url)
        ledger = PositionLedger(store)
        connector: BasePositionConnector
        if s.execution_backend == "live":
            connector = LiveConnector(settings=s)
            aggregator = MarketDataAggregator(connector.list_positions, settings=s)
        else:
            # Collateral already committed to the stored stacks is not free.
            committed = sum(p.amount for p in ledger.positions())
            sim = SimulatedConnector(free_balance=max(s.simulated_free_balance - committed, 0.0))
            aggregator = MarketDataAggregator(sim.list_positions, settings=s)
            sim.price_lookup = lambda pair: aggregator.fetch_prices()[pair.split("/")[0]]
            connector = sim
        executor = TradeExecutor(connector, ledger, settings=s)
        return cls(
            store=store,
            aggregator=aggregator,
            decision_engine=DecisionEngine(settings=s),
            executor=executor,
            settings=s,
        )

    def run(self, now: Optional[int] = None) -> RunSummary:
        now = utc_now_s() if now is None else now
        s = self.settings
        run_id = str(uuid4())

        lease = self.store.acquire_lease(run_id, s.analysis_lock_ttl_s, now=now)
        if lease is None:
            logger.info("Analysis already running; skipping this invocation")
            return RunSummary(
                run_id=run_id, mode=RunMode.LOCKED_OUT, started_at=now, finished_at=now
            )

        summary = RunSummary(run_id=run_id, mode=RunMode.LIGHT_CHECK, started_at=now)
        try:
            state = self.store.load()
            if state.last_trigger and now - int(state.last_trigger) < s.trigger_window_s:
                summary.mode = RunMode.FULL_ANALYSIS
                logger.info("Performing full analysis due to recent 30min trigger")
                self._full_analysis(state, summary, now)
            else:
                logger.info("Performing light check (no AI)")
                self._light_check(summary, now)
        except Exception as exc:
            summary.error = f"{type(exc).__name__}: {exc}"
            logger.exception("Analysis run %s failed", run_id)
            raise
        finally:
            released = self.store.release_lease(run_id)
            if not released:
                logger.warning("Lease for run %s was already gone at release", run_id)
            summary.finished_at = utc_now_s()
            try:
                self.store.record_run(
                    run_id,
                    summary.mode.value,
                    summary.started_at,
                    summary.finished_at,
                    summary.to_dict(),
                )
            except Exception:
                logger.exception("Failed to record run %s", run_id)
        logger.info(
            "Run %s finished: mode=%s tickers=%d failed=%d",
            run_id,
            summary.mode.value,
            len(summary.results),
            len(summary.failed),
        )
        return summary

    def _full_analysis(self, state: AccountState, summary: RunSummary, now: int) -> None:
        groups = group_by_ticker(state.signals)
        # One ticker at a time.
        for ticker, signals in groups.items():
            result = self._process_ticker(ticker, signals, state, now)
            summary.results.append(result)
            self.store.renew_lease(summary.run_id, self.settings.analysis_lock_ttl_s)
        self.store.update_meta(last_analysis=now)

    def _process_ticker(
        self, ticker: str, signals: List[Signal], state: AccountState, now: int
    ) -> TickerResult:
        result = TickerResult(ticker=ticker, ok=False)
        try:
            pair = pair_for_ticker(ticker, self.settings.trading_pairs)
            result.pair = pair
            confluence = self.analyzer.analyze(signals)
            result.confluence = confluence.to_dict()

            market = self.aggregator.fetch()
            positions = self.executor.ledger.positions()
            ensure_valid_stack(positions)
            free_balance = self.executor.connector.get_free_balance()

            prompt = self.decision_engine.build_prompt(
                signals,
                positions,
                market,
                state.price_history,
                pair=pair,
                free_balance=free_balance,
                confluence=confluence,
                now=now,
            )
            decision_result = self.decision_engine.decide(prompt)
            decision = decision_result.decision
            result.decision = decision_result.to_dict()

            if decision.action != "hold" and decision.pair(self.executor.quote_currency) != pair:
                raise DecisionServiceError(
                    f"decision {decision.action} does not target {pair}"
                )

            if decision.action == "hold":
                result.trade = {"status": "noop"}
            elif not self.settings.trading_enabled:
                logger.info("Trading disabled; would execute %s on %s", decision.action, pair)
                result.trade = {"status": "dry_run", "action": decision.action, "pair": pair}
            else:
                result.trade = self.executor.execute(decision).to_dict()
            result.ok = True
        except Exception as exc:
            result.error = f"{type(exc).__name__}: {exc}"
            logger.exception("Ticker %s failed; continuing with the next ticker", ticker)
        return result

    def _light_check(self, summary: RunSummary, now: int) -> None:
        try:
            prices = self.aggregator.fetch_prices()
            samples = self.signal_store.append_price_sample(
                PriceHistoryEntry(timestamp=now, prices=prices), now=now
            )
            removed_signals, removed_prices = self.signal_store.cleanup(now=now)
            summary.light_check = {
                "prices": prices,
                "price_samples": samples,
                "removed_signals": removed_signals,
                "removed_price_samples": removed_prices,
            }
        except Exception as exc:
            logger.error("Light check failed: %s", exc)
            summary.light_check = {"error": f"{type(exc).__name__}: {exc}"}
