"""Decision engine: prompt -> reasoning service -> validated decision."""

from __future__ import annotations

import json
import logging
from typing import Optional, Sequence

import httpx
from pydantic import ValidationError

from confluence_trader.analysis.confluence import ConfluenceResult
from confluence_trader.config import Settings, settings as default_settings
from confluence_trader.data.models import MarketData
from confluence_trader.decision.llm_client import LLMClient, extract_json
from confluence_trader.decision.models import DecisionResult, TradeDecision
from confluence_trader.decision.prompt_builder import PromptBuilder
from confluence_trader.errors import DecisionServiceError
from confluence_trader.models import Position, PriceHistoryEntry, Signal
from confluence_trader.utils.retry import RetryPolicy

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a cautious crypto perpetuals trading assistant. "
    "Return JSON only. No markdown, no extra text."
)


class DecisionEngine:
    """Orchestrate prompt building and the validated reasoning-service call."""

    def __init__(
        self,
        client: Optional[LLMClient] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        retry_policy: Optional[RetryPolicy] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or default_settings
        self._client = client
        self.prompt_builder = prompt_builder or PromptBuilder(settings=self.settings)
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=self.settings.llm_max_retries,
            retry_on=(httpx.HTTPError, json.JSONDecodeError, ValidationError),
        )

    @property
    def client(self) -> LLMClient:
        if self._client is None:
            self._client = LLMClient(settings=self.settings)
        return self._client

    def build_prompt(
        self,
        signals: Sequence[Signal],
        positions: Sequence[Position],
        market_data: MarketData,
        price_history: Sequence[PriceHistoryEntry],
        pair: Optional[str] = None,
        free_balance: Optional[float] = None,
        confluence: Optional[ConfluenceResult] = None,
        now: Optional[int] = None,
    ) -> str:
        return self.prompt_builder.build(
            signals,
            positions,
            market_data,
            price_history,
            pair=pair,
            free_balance=free_balance,
            confluence=confluence,
            now=now,
        )

    def decide(self, prompt: str) -> DecisionResult:
        """Call the reasoning service and return the first valid decision.

        Raises DecisionServiceError when every attempt fails, whether on
        transport errors or on replies that do not parse and validate.
        """
        s = self.settings
        context = {
            "assets": s.assets,
            "leverage_bounds": (s.leverage_low, s.leverage_high),
        }
        attempts = 0
        last_raw = ""

        def _attempt() -> TradeDecision:
            nonlocal attempts, last_raw
            attempts += 1
            logger.info("Calling reasoning service (attempt %d)", attempts)
            raw = self.client.chat(prompt, system_prompt=SYSTEM_PROMPT)
            last_raw = raw
            payload = extract_json(raw)
            return TradeDecision.model_validate(payload, context=context)

        try:
            decision = self.retry_policy.call(_attempt, label="reasoning service")
        except (httpx.HTTPError, json.JSONDecodeError, ValidationError) as exc:
            raise DecisionServiceError(
                f"reasoning service failed after {attempts} attempts: {exc}"
            ) from exc

        logger.info(
            "AI decision: action=%s confidence=%s leverage=%s reason=%s",
            decision.action,
            decision.confidence,
            decision.leverage,
            decision.reason,
        )
        return DecisionResult(
            decision=decision,
            raw_response=last_raw,
            prompt=prompt,
            attempts=attempts,
        )
