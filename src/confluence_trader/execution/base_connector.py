"""Abstract position connector interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class OpenResult:
    tx_ref: str
    entry_price: float


class BasePositionConnector(ABC):
    """Open/close leveraged positions on an external venue.

    ``close_position`` takes a ``request_id`` that must be idempotent: sending
    the same id twice closes at most once and returns the original reference.
    """

    name: str = "connector"

    @abstractmethod
    def open_position(
        self, pair: str, notional: float, leverage: float, side: str = "long"
    ) -> OpenResult:
        raise NotImplementedError

    @abstractmethod
    def close_position(self, position_id: str, amount: float, request_id: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def get_free_balance(self) -> float:
        raise NotImplementedError

    @abstractmethod
    def list_positions(self) -> List[dict]:
        raise NotImplementedError
