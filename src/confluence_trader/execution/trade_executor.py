"""Turn a trade decision into venue calls and ledger mutations."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List, Optional

from confluence_trader.config import Settings, settings as default_settings
from confluence_trader.decision.models import TradeDecision
from confluence_trader.errors import ExecutionError
from confluence_trader.execution.base_connector import BasePositionConnector
from confluence_trader.execution.ledger import (
    PositionLedger,
    close_request_id,
    ensure_valid_stack,
    settle,
)
from confluence_trader.models import Position

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TradeOutcome:
    action: str
    pair: Optional[str]
    status: str
    amount: float = 0.0
    tx_refs: List[str] = field(default_factory=list)
    opened: Optional[Position] = None
    closed: List[Position] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "pair": self.pair,
            "status": self.status,
            "amount": self.amount,
            "tx_refs": list(self.tx_refs),
            "opened": self.opened.to_dict() if self.opened else None,
            "closed": [p.to_dict() for p in self.closed],
        }


class TradeExecutor:
    """Execute buy/sell instructions against a connector and the ledger.

    The full stack is validated before any external call; buys append to the
    ledger only after the venue confirms the open; sells persist only after
    every close call has returned.
    """

    def __init__(
        self,
        connector: BasePositionConnector,
        ledger: PositionLedger,
        settings: Optional[Settings] = None,
        quote_currency: str = "USDC",
    ) -> None:
        self.connector = connector
        self.ledger = ledger
        self.settings = settings or default_settings
        self.quote_currency = quote_currency

    def trade_amount(self) -> float:
        return self.connector.get_free_balance() * self.settings.buy_percentage

    def execute(self, decision: TradeDecision) -> TradeOutcome:
        if decision.action == "hold":
            return TradeOutcome(action="hold", pair=None, status="noop")
        pair = decision.pair(self.quote_currency)
        if pair not in self.settings.trading_pairs:
            raise ExecutionError(f"pair {pair} is not tradable")
        amount = self.trade_amount()
        logger.info(
            "Executing %s on %s amount=%.2f leverage=%s",
            decision.side,
            pair,
            amount,
            decision.leverage,
        )
        if decision.side == "buy":
            return self.buy(pair, amount, decision.leverage)
        return self.sell(pair, amount)

    def buy(self, pair: str, quote_amount: float, leverage: float) -> TradeOutcome:
        ensure_valid_stack(self.ledger.positions())
        if quote_amount <= 0:
            raise ExecutionError(f"buy amount must be positive, got {quote_amount}")

        result = self.connector.open_position(
            pair, notional=quote_amount * leverage, leverage=leverage, side="long"
        )
        position = Position.open(
            pair=pair,
            amount=quote_amount,
            entry_price=result.entry_price,
            leverage=leverage,
            side="long",
            tx_ref=result.tx_ref,
        )
        self.ledger.append(position)
        return TradeOutcome(
            action=f"buy_{pair.split('/')[0].lower()}",
            pair=pair,
            status="opened",
            amount=quote_amount,
            tx_refs=[result.tx_ref],
            opened=position,
        )

    def sell(self, pair: str, quote_amount: float) -> TradeOutcome:
        positions = self.ledger.positions()
        ensure_valid_stack(positions)
        action = f"sell_{pair.split('/')[0].lower()}"

        stack = [p for p in positions if p.pair == pair]
        settlement = settle(quote_amount, stack)
        if not settlement.to_close:
            logger.warning("Nothing to sell for %s", pair)
            return TradeOutcome(action=action, pair=pair, status="noop")

        open_amounts = {p.position_id: p.amount for p in stack}
        tx_refs: List[str] = []
        for entry in settlement.to_close:
            request_id = close_request_id(entry, entry.amount, open_amounts[entry.position_id])
            tx_refs.append(
                self.connector.close_position(entry.position_id, entry.amount, request_id)
            )

        self.ledger.apply(settlement.to_close)
        return TradeOutcome(
            action=action,
            pair=pair,
            status="closed",
            amount=settlement.closed_amount,
            tx_refs=tx_refs,
            closed=list(settlement.to_close),
        )
