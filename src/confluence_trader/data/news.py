"""News digest via the reasoning service."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import httpx

from confluence_trader.config import Settings
from confluence_trader.data.models import NO_NEWS
from confluence_trader.decision.llm_client import LLMClient

logger = logging.getLogger(__name__)


def news_prompt(assets: Sequence[str]) -> str:
    joined = " and ".join(assets) if assets else "crypto"
    return (
        f"Search X.com for recent news impacting {joined} prices in the last 24 hours. "
        "Summarize key points. Separate verifiable events (listings, hacks, "
        "regulation, macro data, ETF flows) from opinion and sentiment."
    )


class NewsSource:
    """Narrative summary of recent news; never raises."""

    def __init__(
        self,
        client: Optional[LLMClient] = None,
        max_tokens: int = 500,
        settings: Optional[Settings] = None,
    ) -> None:
        self._client = client
        self.max_tokens = max_tokens
        self.settings = settings

    @property
    def client(self) -> LLMClient:
        if self._client is None:
            self._client = LLMClient(settings=self.settings)
        return self._client

    def fetch(self, assets: Sequence[str]) -> str:
        try:
            content = self.client.chat(news_prompt(assets), max_tokens=self.max_tokens)
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            logger.error("Error fetching news: %s", exc)
            return NO_NEWS
        return content or NO_NEWS
