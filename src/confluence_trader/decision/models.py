"""Decision models and schemas."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator

_ACTION_RE = re.compile(r"^(buy|sell)_([a-z0-9]+)$")


class TradeDecision(BaseModel):
    """Reasoning-service reply: exactly ``action, confidence, leverage, reason``.

    Validation context keys: ``assets`` (allowed asset symbols) and
    ``leverage_bounds`` (``(low, high)``).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    action: str
    confidence: float
    leverage: float
    reason: str

    @field_validator("action", mode="before")
    @classmethod
    def _normalize_action(cls, value: Any, info: ValidationInfo) -> str:
        if not isinstance(value, str):
            raise ValueError("action must be a string")
        normalized = value.strip().lower()
        if normalized == "hold":
            return normalized
        match = _ACTION_RE.match(normalized)
        if not match:
            raise ValueError("action must be buy_<asset>, sell_<asset> or hold")
        assets = (info.context or {}).get("assets")
        if assets and match.group(2).upper() not in {a.upper() for a in assets}:
            raise ValueError(f"unknown asset in action: {match.group(2)}")
        return normalized

    @field_validator("confidence")
    @classmethod
    def _check_confidence(cls, value: float) -> float:
        if value < 1 or value > 10:
            raise ValueError("confidence must be between 1 and 10")
        return value

    @field_validator("leverage")
    @classmethod
    def _check_leverage(cls, value: float, info: ValidationInfo) -> float:
        bounds: Optional[Tuple[float, float]] = (info.context or {}).get("leverage_bounds")
        if bounds is not None:
            low, high = bounds
            if value < low or value > high:
                raise ValueError(f"leverage must be between {low} and {high}")
        elif value <= 0:
            raise ValueError("leverage must be positive")
        return value

    @field_validator("reason")
    @classmethod
    def _normalize_reason(cls, value: str) -> str:
        return value.strip()

    @property
    def side(self) -> str:
        return self.action.split("_", 1)[0]

    @property
    def asset(self) -> Optional[str]:
        if self.action == "hold":
            return None
        return self.action.split("_", 1)[1].upper()

    def pair(self, quote: str = "USDC") -> Optional[str]:
        asset = self.asset
        return f"{asset}/{quote}" if asset else None


@dataclass(frozen=True)
class DecisionResult:
    decision: TradeDecision
    raw_response: str
    prompt: str
    attempts: int

    def to_dict(self) -> Dict[str, Any]:
        payload = self.decision.model_dump()
        payload["attempts"] = self.attempts
        return payload
