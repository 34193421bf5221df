"""Per-pair leverage stack and its settlement rules.

Settlement is oldest-first (FIFO): a sell closes the earliest-opened
entries of the pair before touching newer ones, splitting at most one
entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from confluence_trader.errors import LedgerInvariantError
from confluence_trader.models import Position
from confluence_trader.state.store import DOC_POSITIONS, AccountStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settlement:
    to_close: List[Position] = field(default_factory=list)
    remaining: List[Position] = field(default_factory=list)

    @property
    def closed_amount(self) -> float:
        return sum(p.amount for p in self.to_close)


def settle(requested_amount: float, stack: Sequence[Position]) -> Settlement:
    """Select entries to close for ``requested_amount``, oldest first.

    The input is not modified. A partially closed entry keeps its id and
    timestamp and stays at the front of the remaining stack.
    """
    remaining = sorted(stack, key=lambda p: p.timestamp or 0)
    to_close: List[Position] = []
    amount_left = float(requested_amount)

    while amount_left > 0 and remaining:
        entry = remaining.pop(0)
        if entry.amount <= amount_left:
            to_close.append(entry)
            amount_left -= entry.amount
        else:
            to_close.append(entry.with_amount(amount_left))
            remaining.insert(0, entry.with_amount(entry.amount - amount_left))
            amount_left = 0.0

    return Settlement(to_close=to_close, remaining=remaining)


def validate_stack(stack: Iterable[Position]) -> bool:
    for position in stack:
        if not position.timestamp:
            return False
        if not position.amount or position.amount <= 0:
            return False
        if not position.pair:
            return False
        if not position.entry_price or position.entry_price <= 0:
            return False
    return True


def ensure_valid_stack(stack: Iterable[Position]) -> None:
    stack = list(stack)
    if not validate_stack(stack):
        raise LedgerInvariantError(f"invalid position stack ({len(stack)} entries)")


def close_request_id(position: Position, closed_amount: float, open_amount: float) -> str:
    """Stable idempotency key for closing ``closed_amount`` out of ``open_amount``."""
    return f"{position.position_id}:{open_amount:.8f}->{open_amount - closed_amount:.8f}"


def apply_settlement(
    positions: Sequence[Position], closed: Sequence[Position]
) -> List[Position]:
    """Subtract closed amounts from ``positions`` by id, dropping emptied entries."""
    closed_by_id: Dict[str, float] = {}
    for entry in closed:
        closed_by_id[entry.position_id] = closed_by_id.get(entry.position_id, 0.0) + entry.amount

    out: List[Position] = []
    for position in positions:
        reduce_by = closed_by_id.get(position.position_id)
        if reduce_by is None:
            out.append(position)
            continue
        left = position.amount - reduce_by
        if left > 1e-9:
            out.append(position.with_amount(left))
    return out


class PositionLedger:
    """Store-backed view of all open entries, grouped by pair on demand."""

    def __init__(self, store: AccountStore) -> None:
        self.store = store

    def positions(self) -> List[Position]:
        return [Position.from_dict(item) for item in self.store.get(DOC_POSITIONS).body]

    def stack_for(self, pair: str) -> List[Position]:
        return [p for p in self.positions() if p.pair == pair]

    def append(self, position: Position) -> None:
        def _append(items: List[dict]) -> List[dict]:
            items.append(position.to_dict())
            return items

        self.store.mutate(DOC_POSITIONS, _append)
        logger.info(
            "Ledger append %s amount=%.2f entry=%.4f", position.pair, position.amount, position.entry_price
        )

    def apply(self, closed: Sequence[Position]) -> List[Position]:
        def _apply(items: List[dict]) -> List[dict]:
            current = [Position.from_dict(item) for item in items]
            return [p.to_dict() for p in apply_settlement(current, closed)]

        updated = self.store.mutate(DOC_POSITIONS, _apply)
        return [Position.from_dict(item) for item in updated]

    def replace(self, positions: Sequence[Position], expected_version: Optional[int] = None) -> None:
        version = self.store.get(DOC_POSITIONS).version if expected_version is None else expected_version
        self.store.put(DOC_POSITIONS, [p.to_dict() for p in positions], version)
