"""Execution layer exports."""

from confluence_trader.execution.base_connector import BasePositionConnector, OpenResult
from confluence_trader.execution.ledger import (
    PositionLedger,
    Settlement,
    settle,
    validate_stack,
)
from confluence_trader.execution.live_connector import LiveConnector
from confluence_trader.execution.simulated_connector import SimulatedConnector
from confluence_trader.execution.trade_executor import TradeExecutor, TradeOutcome

__all__ = [
    "BasePositionConnector",
    "LiveConnector",
    "OpenResult",
    "PositionLedger",
    "Settlement",
    "SimulatedConnector",
    "TradeExecutor",
    "TradeOutcome",
    "settle",
    "validate_stack",
]
