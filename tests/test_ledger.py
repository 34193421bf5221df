import pytest

from confluence_trader.errors import LedgerInvariantError
from confluence_trader.execution.ledger import (
    PositionLedger,
    apply_settlement,
    close_request_id,
    ensure_valid_stack,
    settle,
    validate_stack,
)
from confluence_trader.models import Position


def _pos(pid, ts, amount, pair="SOL/USDC", price=150.0):
    return Position(position_id=pid, timestamp=ts, amount=amount, pair=pair, entry_price=price)


def test_settle_closes_oldest_first_and_splits_one_entry():
    stack = [_pos("b", 2, 50.0), _pos("a", 1, 100.0)]

    result = settle(120.0, stack)

    assert [(p.position_id, p.amount) for p in result.to_close] == [("a", 100.0), ("b", 20.0)]
    assert [(p.position_id, p.amount, p.timestamp) for p in result.remaining] == [("b", 30.0, 2)]
    # input untouched
    assert [p.amount for p in stack] == [50.0, 100.0]


def test_settle_conserves_amounts():
    stack = [_pos("a", 1, 100.0), _pos("b", 2, 50.0), _pos("c", 3, 25.0)]
    for requested in (10.0, 100.0, 130.0, 175.0):
        result = settle(requested, stack)
        closed = result.closed_amount
        left = sum(p.amount for p in result.remaining)
        assert closed == pytest.approx(min(requested, 175.0))
        assert closed + left == pytest.approx(175.0)
        assert sum(1 for p in result.to_close if p.amount < _orig(stack, p).amount) <= 1


def _orig(stack, position):
    return next(p for p in stack if p.position_id == position.position_id)


def test_settle_more_than_open_closes_everything():
    result = settle(1000.0, [_pos("a", 1, 100.0)])
    assert result.closed_amount == 100.0
    assert result.remaining == []


def test_settle_empty_stack():
    result = settle(50.0, [])
    assert result.to_close == []
    assert result.remaining == []


@pytest.mark.parametrize(
    "bad",
    [
        Position(position_id="x", timestamp=None, amount=10.0, pair="SOL/USDC", entry_price=1.0),
        Position(position_id="x", timestamp=1, amount=0.0, pair="SOL/USDC", entry_price=1.0),
        Position(position_id="x", timestamp=1, amount=10.0, pair="", entry_price=1.0),
        Position(position_id="x", timestamp=1, amount=10.0, pair="SOL/USDC", entry_price=0.0),
    ],
)
def test_validate_stack_rejects_incomplete_entries(bad):
    assert not validate_stack([_pos("ok", 1, 5.0), bad])
    with pytest.raises(LedgerInvariantError):
        ensure_valid_stack([bad])


def test_close_request_id_is_stable():
    pos = _pos("a", 1, 20.0)
    assert close_request_id(pos, 20.0, 100.0) == close_request_id(pos, 20.0, 100.0)
    assert close_request_id(pos, 20.0, 100.0) != close_request_id(pos, 20.0, 80.0)


def test_apply_settlement_reduces_by_id_and_drops_emptied():
    positions = [_pos("a", 1, 100.0), _pos("b", 2, 50.0), _pos("z", 3, 7.0, pair="BTC/USDC")]
    out = apply_settlement(positions, [_pos("a", 1, 100.0), _pos("b", 2, 20.0)])
    assert [(p.position_id, p.amount) for p in out] == [("b", 30.0), ("z", 7.0)]


def test_ledger_apply_keeps_concurrent_append(store):
    ledger = PositionLedger(store)
    ledger.append(_pos("a", 1, 100.0))
    settlement = settle(40.0, ledger.stack_for("SOL/USDC"))

    # Another writer appends between settlement and persistence.
    ledger.append(_pos("b", 2, 10.0))
    ledger.apply(settlement.to_close)

    assert [(p.position_id, p.amount) for p in ledger.positions()] == [("a", 60.0), ("b", 10.0)]
