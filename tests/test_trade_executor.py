import pytest

from confluence_trader.decision.models import TradeDecision
from confluence_trader.errors import ExecutionError, LedgerInvariantError
from confluence_trader.execution.ledger import PositionLedger
from confluence_trader.execution.simulated_connector import SimulatedConnector
from confluence_trader.execution.trade_executor import TradeExecutor
from confluence_trader.models import Position

from fakes import FailingOpenConnector, FlakyCloseConnector


def _decision(action, leverage=3.0):
    return TradeDecision(action=action, confidence=8, leverage=leverage, reason="test")


def _pos(pid, ts, amount, pair="SOL/USDC"):
    return Position(position_id=pid, timestamp=ts, amount=amount, pair=pair, entry_price=140.0)


@pytest.fixture
def ledger(store):
    return PositionLedger(store)


def test_buy_opens_long_and_appends_to_ledger(settings, ledger):
    connector = SimulatedConnector(free_balance=1000.0, price_lookup=lambda pair: 150.0)
    executor = TradeExecutor(connector, ledger, settings=settings)

    outcome = executor.execute(_decision("buy_sol", leverage=3.0))

    assert outcome.status == "opened"
    assert outcome.amount == pytest.approx(300.0)
    assert connector.open_calls == [
        {"pair": "SOL/USDC", "notional": pytest.approx(900.0), "leverage": 3.0, "side": "long"}
    ]
    [position] = ledger.positions()
    assert position.pair == "SOL/USDC"
    assert position.side == "long"
    assert position.amount == pytest.approx(300.0)
    assert position.entry_price == 150.0
    assert position.tx_ref == outcome.tx_refs[0]


def test_sell_settles_oldest_first(settings, ledger):
    ledger.replace([_pos("a", 1, 100.0), _pos("b", 2, 50.0), _pos("z", 3, 10.0, pair="BTC/USDC")])
    connector = SimulatedConnector(free_balance=400.0)
    executor = TradeExecutor(connector, ledger, settings=settings)

    outcome = executor.execute(_decision("sell_sol"))

    assert outcome.status == "closed"
    assert outcome.amount == pytest.approx(120.0)
    assert [(c["position_id"], c["amount"]) for c in connector.close_calls] == [
        ("a", pytest.approx(100.0)),
        ("b", pytest.approx(20.0)),
    ]
    assert [(p.position_id, p.amount) for p in ledger.positions()] == [
        ("b", pytest.approx(30.0)),
        ("z", 10.0),
    ]


def test_failed_close_leaves_ledger_and_retry_is_idempotent(settings, ledger):
    ledger.replace([_pos("a", 1, 100.0), _pos("b", 2, 50.0)])
    connector = FlakyCloseConnector(fail_on_call=2, free_balance=0.0)
    executor = TradeExecutor(connector, ledger, settings=settings)

    with pytest.raises(ExecutionError):
        executor.sell("SOL/USDC", 120.0)
    assert [(p.position_id, p.amount) for p in ledger.positions()] == [("a", 100.0), ("b", 50.0)]

    executor.sell("SOL/USDC", 120.0)

    # "a" was closed once even though its close request was sent twice
    assert [c["position_id"] for c in connector.close_calls] == ["a", "b"]
    assert connector.free_balance == pytest.approx(120.0)
    assert [(p.position_id, p.amount) for p in ledger.positions()] == [("b", pytest.approx(30.0))]


def test_sell_with_empty_stack_is_noop(settings, ledger):
    connector = SimulatedConnector(free_balance=400.0)
    outcome = TradeExecutor(connector, ledger, settings=settings).execute(_decision("sell_btc"))
    assert outcome.status == "noop"
    assert connector.close_calls == []


def test_hold_makes_no_calls(settings, ledger):
    connector = SimulatedConnector(free_balance=400.0)
    outcome = TradeExecutor(connector, ledger, settings=settings).execute(_decision("hold"))
    assert outcome.status == "noop"
    assert connector.open_calls == [] and connector.close_calls == []


def test_invalid_stack_aborts_before_any_call(settings, ledger, store):
    ledger.replace([Position(position_id="bad", timestamp=1, amount=10.0, pair="SOL/USDC", entry_price=0.0)])
    version = store.load().versions["positions"]
    connector = SimulatedConnector(free_balance=400.0)
    executor = TradeExecutor(connector, ledger, settings=settings)

    for action in ("buy_sol", "sell_sol"):
        with pytest.raises(LedgerInvariantError):
            executor.execute(_decision(action))

    assert connector.open_calls == [] and connector.close_calls == []
    assert store.load().versions["positions"] == version


def test_failed_open_does_not_touch_ledger(settings, ledger):
    executor = TradeExecutor(FailingOpenConnector(free_balance=1000.0), ledger, settings=settings)
    with pytest.raises(ExecutionError):
        executor.execute(_decision("buy_sol"))
    assert ledger.positions() == []


def test_unconfigured_pair_is_rejected(settings, ledger):
    executor = TradeExecutor(SimulatedConnector(), ledger, settings=settings)
    with pytest.raises(ExecutionError):
        executor.execute(_decision("buy_eth"))
