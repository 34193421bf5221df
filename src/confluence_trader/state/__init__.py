"""State layer exports."""

from confluence_trader.state.signal_store import SignalStore, group_by_ticker
from confluence_trader.state.store import AccountState, AccountStore, Document, Lease

__all__ = [
    "AccountState",
    "AccountStore",
    "Document",
    "Lease",
    "SignalStore",
    "group_by_ticker",
]
