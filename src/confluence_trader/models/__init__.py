"""Model exports."""

from confluence_trader.models.position import Position
from confluence_trader.models.signal import PriceHistoryEntry, Signal, SignalDirection

__all__ = ["Position", "PriceHistoryEntry", "Signal", "SignalDirection"]
