"""Directional signal model."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class SignalDirection(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


@dataclass(frozen=True)
class Signal:
    timeframe: str
    direction: SignalDirection
    ticker: str
    timestamp: int
    details: Optional[Any] = None
    signal_id: str = ""
    expires_at: Optional[int] = None

    @classmethod
    def create(
        cls,
        timeframe: str,
        direction: SignalDirection | str,
        ticker: Optional[str],
        timestamp: int,
        details: Optional[Any] = None,
        retention_s: Optional[int] = None,
    ) -> "Signal":
        ticker = (ticker or "UNKNOWN").strip().upper() or "UNKNOWN"
        return cls(
            timeframe=timeframe,
            direction=SignalDirection(direction),
            ticker=ticker,
            timestamp=int(timestamp),
            details=details,
            signal_id=f"{ticker}-{timeframe}-{int(timestamp)}",
            expires_at=int(timestamp) + retention_s if retention_s else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.signal_id,
            "timeframe": self.timeframe,
            "signal": self.direction.value,
            "ticker": self.ticker,
            "timestamp": self.timestamp,
            "details": self.details,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Signal":
        return cls(
            timeframe=str(payload["timeframe"]),
            direction=SignalDirection(payload["signal"]),
            ticker=str(payload.get("ticker") or "UNKNOWN"),
            timestamp=int(payload["timestamp"]),
            details=payload.get("details"),
            signal_id=str(payload.get("id") or ""),
            expires_at=payload.get("expires_at"),
        )


@dataclass(frozen=True)
class PriceHistoryEntry:
    timestamp: int
    prices: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "prices": dict(self.prices)}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "PriceHistoryEntry":
        prices = {str(k): float(v) for k, v in (payload.get("prices") or {}).items()}
        return cls(timestamp=int(payload["timestamp"]), prices=prices)
