"""Simulated connector that fills instantly at the quoted price."""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from confluence_trader.errors import ExecutionError
from confluence_trader.execution.base_connector import BasePositionConnector, OpenResult

logger = logging.getLogger(__name__)


class SimulatedConnector(BasePositionConnector):
    """In-memory venue for paper trading and tests.

    Collateral moves between the free balance and the open book; close
    requests are deduplicated by ``request_id``.
    """

    name = "simulated"

    def __init__(
        self,
        free_balance: float = 5000.0,
        price_lookup: Optional[Callable[[str], float]] = None,
        latency_ms: int = 0,
    ) -> None:
        self.free_balance = float(free_balance)
        self.price_lookup = price_lookup or (lambda pair: 1.0)
        self.latency_ms = latency_ms
        self.open_book: Dict[str, dict] = {}
        self.closed_requests: Dict[str, str] = {}
        self.open_calls: List[dict] = []
        self.close_calls: List[dict] = []

    def open_position(
        self, pair: str, notional: float, leverage: float, side: str = "long"
    ) -> OpenResult:
        if notional <= 0 or leverage <= 0:
            raise ExecutionError(f"invalid open request: notional={notional} leverage={leverage}")
        collateral = notional / leverage
        if collateral > self.free_balance + 1e-9:
            raise ExecutionError(
                f"insufficient balance: need {collateral:.2f}, have {self.free_balance:.2f}"
            )
        if self.latency_ms:
            time.sleep(self.latency_ms / 1000.0)
        price = float(self.price_lookup(pair))
        if price <= 0:
            raise ExecutionError(f"no price for {pair}")
        tx_ref = f"SIM-OPEN-{uuid4()}"
        self.free_balance -= collateral
        self.open_book[tx_ref] = {
            "pair": pair,
            "side": side,
            "notional": notional,
            "collateral": collateral,
            "leverage": leverage,
            "entry_price": price,
        }
        self.open_calls.append({"pair": pair, "notional": notional, "leverage": leverage, "side": side})
        logger.info("Simulated open %s %s notional=%.2f @ %.4f", side, pair, notional, price)
        return OpenResult(tx_ref=tx_ref, entry_price=price)

    def close_position(self, position_id: str, amount: float, request_id: str) -> str:
        if request_id in self.closed_requests:
            logger.info("Duplicate close request %s ignored", request_id)
            return self.closed_requests[request_id]
        if amount <= 0:
            raise ExecutionError(f"invalid close amount {amount} for {position_id}")
        if self.latency_ms:
            time.sleep(self.latency_ms / 1000.0)
        tx_ref = f"SIM-CLOSE-{uuid4()}"
        self.free_balance += amount
        self.closed_requests[request_id] = tx_ref
        self.close_calls.append(
            {"position_id": position_id, "amount": amount, "request_id": request_id}
        )
        logger.info("Simulated close %s amount=%.2f", position_id, amount)
        return tx_ref

    def get_free_balance(self) -> float:
        return self.free_balance

    def list_positions(self) -> List[dict]:
        return [dict(item, tx_ref=ref) for ref, item in self.open_book.items()]
