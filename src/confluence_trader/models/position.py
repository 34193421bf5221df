"""Leveraged position entry model."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional
from uuid import uuid4

from confluence_trader.utils.time import utc_now_s


@dataclass(frozen=True)
class Position:
    """One open entry of a pair's leverage stack.

    ``timestamp`` is the open time and doubles as the ordering key.
    ``amount`` is the quote-currency notional still open.
    """

    position_id: str
    timestamp: Optional[int]
    amount: float
    pair: str
    entry_price: float
    side: str = "long"
    leverage: Optional[float] = None
    tx_ref: Optional[str] = None

    @classmethod
    def open(
        cls,
        pair: str,
        amount: float,
        entry_price: float,
        leverage: Optional[float] = None,
        side: str = "long",
        tx_ref: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> "Position":
        return cls(
            position_id=str(uuid4()),
            timestamp=timestamp if timestamp is not None else utc_now_s(),
            amount=float(amount),
            pair=pair,
            entry_price=float(entry_price),
            side=side,
            leverage=leverage,
            tx_ref=tx_ref,
        )

    def with_amount(self, amount: float) -> "Position":
        return replace(self, amount=float(amount))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.position_id,
            "timestamp": self.timestamp,
            "amount": self.amount,
            "pair": self.pair,
            "entry_price": self.entry_price,
            "side": self.side,
            "leverage": self.leverage,
            "tx_ref": self.tx_ref,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Position":
        timestamp = payload.get("timestamp")
        return cls(
            position_id=str(payload.get("id") or uuid4()),
            timestamp=int(timestamp) if timestamp is not None else None,
            amount=float(payload.get("amount") or 0.0),
            pair=str(payload.get("pair") or ""),
            entry_price=float(payload.get("entry_price") or 0.0),
            side=str(payload.get("side") or "long"),
            leverage=payload.get("leverage"),
            tx_ref=payload.get("tx_ref"),
        )
