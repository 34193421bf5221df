"""Error taxonomy shared by every layer."""

from __future__ import annotations


class TradingError(Exception):
    """Base class for all confluence trader failures."""


class SignalValidationError(TradingError):
    """Malformed signal payload; rejected without any mutation."""


class TransientFetchError(TradingError):
    """Price, news or position fetch failed after its retries."""


class DecisionServiceError(TradingError):
    """Reasoning service exhausted its retries or returned invalid data."""


class LedgerInvariantError(TradingError):
    """Position stack failed validation; the trade is aborted."""


class ExecutionError(TradingError):
    """External open/close call failed."""


class StateConflictError(TradingError):
    """Conditional write lost against a concurrent writer."""

    def __init__(self, doc_id: str, expected_version: int) -> None:
        super().__init__(
            f"version conflict on {doc_id}: expected version {expected_version}"
        )
        self.doc_id = doc_id
        self.expected_version = expected_version
