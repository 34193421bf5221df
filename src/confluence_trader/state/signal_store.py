"""Append/prune log of signals and price-history samples."""

from __future__ import annotations

from collections import OrderedDict
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from confluence_trader.config import Settings, settings as default_settings
from confluence_trader.models import PriceHistoryEntry, Signal
from confluence_trader.state.store import (
    DOC_PRICE_HISTORY,
    DOC_SIGNALS,
    AccountStore,
)
from confluence_trader.utils.time import utc_now_s

logger = logging.getLogger(__name__)

TRIGGER_TIMEFRAME = "30min"


class SignalStore:
    """Durable signal and price-history log on top of :class:`AccountStore`."""

    def __init__(self, store: AccountStore, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.settings = settings or default_settings

    @property
    def retention_s(self) -> int:
        return self.settings.signal_retention_days * 24 * 60 * 60

    @property
    def webhook_retention_s(self) -> int:
        return self.settings.webhook_retention_hours * 60 * 60

    def add_signal(self, signal: Signal, now: Optional[int] = None) -> bool:
        """Append ``signal`` and prune the webhook retention window.

        Returns True when the signal is a trigger for a full analysis run, in
        which case ``last_trigger`` has been recorded.
        """
        now = utc_now_s() if now is None else now
        cutoff = now - self.webhook_retention_s

        def _append(items: List[dict]) -> List[dict]:
            kept = [item for item in items if int(item.get("timestamp", 0)) > cutoff]
            kept.append(signal.to_dict())
            return kept

        self.store.mutate(DOC_SIGNALS, _append)
        logger.info(
            "Signal stored: %s %s %s", signal.ticker, signal.timeframe, signal.direction.value
        )

        triggered = signal.timeframe == TRIGGER_TIMEFRAME
        if triggered:
            self.store.update_meta(last_trigger=now)
        return triggered

    def list_signals(
        self, ticker: Optional[str] = None, since: Optional[int] = None
    ) -> List[Signal]:
        signals = [Signal.from_dict(item) for item in self.store.get(DOC_SIGNALS).body]
        if ticker is not None:
            signals = [s for s in signals if s.ticker == ticker]
        if since is not None:
            signals = [s for s in signals if s.timestamp > since]
        return signals

    def append_price_sample(
        self, entry: PriceHistoryEntry, now: Optional[int] = None
    ) -> int:
        """Prune samples older than the retention window, then append ``entry``."""
        now = utc_now_s() if now is None else now
        cutoff = now - self.retention_s

        def _append(items: List[dict]) -> List[dict]:
            kept = [item for item in items if int(item.get("timestamp", 0)) > cutoff]
            kept.append(entry.to_dict())
            return kept

        history = self.store.mutate(DOC_PRICE_HISTORY, _append)
        return len(history)

    def price_history(self, limit: Optional[int] = None) -> List[PriceHistoryEntry]:
        entries = [
            PriceHistoryEntry.from_dict(item)
            for item in self.store.get(DOC_PRICE_HISTORY).body
        ]
        if limit is not None:
            return entries[-limit:] if limit > 0 else []
        return entries

    def cleanup(self, now: Optional[int] = None) -> Tuple[int, int]:
        """Drop signals and price samples older than the retention window.

        Returns how many signals and price samples were removed.
        """
        now = utc_now_s() if now is None else now
        cutoff = now - self.retention_s
        removed = {DOC_SIGNALS: 0, DOC_PRICE_HISTORY: 0}

        for doc_id in (DOC_SIGNALS, DOC_PRICE_HISTORY):

            def _prune(items: List[dict], doc_id: str = doc_id) -> List[dict]:
                kept = [item for item in items if int(item.get("timestamp", 0)) > cutoff]
                removed[doc_id] = len(items) - len(kept)
                return kept

            self.store.mutate(doc_id, _prune)

        logger.info(
            "Retention cleanup removed %d signals and %d price samples",
            removed[DOC_SIGNALS],
            removed[DOC_PRICE_HISTORY],
        )
        return removed[DOC_SIGNALS], removed[DOC_PRICE_HISTORY]


def group_by_ticker(signals: Iterable[Signal]) -> Dict[str, List[Signal]]:
    """Group signals by ticker, keeping first-seen ticker order."""
    groups: "OrderedDict[str, List[Signal]]" = OrderedDict()
    for signal in signals:
        groups.setdefault(signal.ticker, []).append(signal)
    return dict(groups)
