"""Prompt builder for the trade decision call."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from confluence_trader.analysis.confluence import ConfluenceResult, leverage_for_confidence
from confluence_trader.config import Settings, settings as default_settings
from confluence_trader.data.models import MarketData
from confluence_trader.models import Position, PriceHistoryEntry, Signal
from confluence_trader.utils.time import format_ts, utc_now_s

SIGNAL_WINDOW_S = 7 * 24 * 60 * 60


class PromptBuilder:
    """Render signals, positions and market context into one prompt string.

    Output depends only on the arguments (``now`` included), so the same
    inputs always produce the same prompt.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or default_settings

    def build(
        self,
        signals: Iterable[Signal],
        positions: Iterable[Position],
        market_data: MarketData,
        price_history: Sequence[PriceHistoryEntry],
        pair: Optional[str] = None,
        free_balance: Optional[float] = None,
        confluence: Optional[ConfluenceResult] = None,
        now: Optional[int] = None,
    ) -> str:
        s = self.settings
        now = utc_now_s() if now is None else now
        cutoff = now - SIGNAL_WINDOW_S

        recent = [sig for sig in signals if sig.timestamp > cutoff]
        signals_text = ", ".join(
            f"{sig.ticker} {sig.timeframe}: {sig.direction.value} at {format_ts(sig.timestamp)}"
            for sig in recent
        ) or "none"

        scoped = [p for p in positions if pair is None or p.pair == pair]
        positions_text = ", ".join(
            "{"
            f"opened: {format_ts(p.timestamp or 0)}, amount: {p.amount}, pair: {p.pair}, "
            f"entryPrice: {p.entry_price}, leverage: {p.leverage}"
            "}"
            for p in scoped
        ) or "none"

        prices_text = ", ".join(
            f"{asset}: {price}" for asset, price in sorted(market_data.prices.items())
        )

        limit = s.price_history_prompt_samples
        samples = list(price_history)[-limit:] if limit > 0 else []
        history_lines: List[str] = []
        for entry in samples:
            quoted = ", ".join(f"{k}: {v}" for k, v in sorted(entry.prices.items()))
            history_lines.append(f"- {format_ts(entry.timestamp)}: {quoted}")
        history_text = "\n".join(history_lines) or "- none"

        balance_text = f"{free_balance:.2f}" if free_balance is not None else "unknown"
        scope_text = pair or " or ".join(s.trading_pairs)

        actions = ["hold"]
        for asset in s.assets:
            actions.extend([f"buy_{asset.lower()}", f"sell_{asset.lower()}"])

        confluence_text = ""
        if confluence is not None:
            suggested = leverage_for_confidence(
                confluence.confidence, s.leverage_low, s.leverage_med, s.leverage_high
            )
            confluence_text = (
                f"Signal confluence: {confluence.action.value} "
                f"(confidence {confluence.confidence}, {confluence.confluence_count} agreeing "
                f"timeframes, suggested leverage {suggested}).\n"
            )

        return (
            f"Analyze these TradingView signals from the last 7 days: [{signals_text}].\n"
            f"{confluence_text}"
            f"Current positions for {scope_text}: [{positions_text}].\n"
            f"USDC free balance: {balance_text}.\n"
            f"Current prices: {prices_text}.\n"
            f"Recent price history (last {len(samples)} samples, 30 min apart):\n"
            f"{history_text}\n"
            f"Recent news: {market_data.news}\n"
            "Weight factual events (listings, hacks, regulation, macro data) over "
            "sentiment and opinion when using the news.\n"
            f"Decide the action for {scope_text} only: long-only, "
            f"{int(s.buy_percentage * 100)}% of USDC per buy, sells close the oldest entries first.\n"
            "Respond with strict JSON only, no markdown, exactly these fields: "
            f'{{"action": "{"|".join(actions)}", "confidence": 1-10, '
            f'"leverage": {s.leverage_low}-{s.leverage_high}, "reason": "string"}}'
        )
