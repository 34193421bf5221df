"""Decision layer exports."""

from confluence_trader.decision.engine import DecisionEngine
from confluence_trader.decision.llm_client import LLMClient
from confluence_trader.decision.models import DecisionResult, TradeDecision
from confluence_trader.decision.prompt_builder import PromptBuilder

__all__ = [
    "DecisionEngine",
    "DecisionResult",
    "LLMClient",
    "PromptBuilder",
    "TradeDecision",
]
