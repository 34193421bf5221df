"""Generic LLM client with OpenAI-compatible chat API."""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any, Dict, Optional

import httpx

from confluence_trader.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    api_key: str
    api_base: str
    model: str


class LLMClient:
    """Single-shot chat client for Grok/OpenAI/DeepSeek-compatible endpoints.

    Retries are owned by the caller's :class:`RetryPolicy`; this class makes
    exactly one HTTP request per call.
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.provider = (provider or self.settings.llm_provider or "grok").lower()
        self.timeout = timeout if timeout is not None else self.settings.llm_timeout_s
        self.transport = transport
        self.config = self._resolve_config(api_key=api_key, api_base=api_base, model=model)
        if not self.config.api_base:
            raise ValueError(f"LLM API base missing for provider: {self.provider}")
        if not self.config.model:
            raise ValueError(f"LLM model missing for provider: {self.provider}")

    def chat(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 200,
    ) -> str:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        url = self.config.api_base.rstrip("/") + "/chat/completions"
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.post(url, headers=headers, json=payload)
        response.raise_for_status()
        content = _completion_text(response.json(), response.request)
        logger.debug("LLM response from %s: %s", self.config.name, content)
        return content.strip()

    def _resolve_config(
        self, api_key: Optional[str], api_base: Optional[str], model: Optional[str]
    ) -> ProviderConfig:
        s = self.settings
        if s.llm_api_base or s.llm_api_key or s.llm_model:
            return ProviderConfig(
                name=self.provider,
                api_key=api_key or s.llm_api_key,
                api_base=api_base or s.llm_api_base,
                model=model or s.llm_model,
            )
        if self.provider == "openai":
            return ProviderConfig(
                name="openai",
                api_key=api_key or s.openai_api_key,
                api_base=api_base or s.openai_api_base,
                model=model or s.openai_model,
            )
        if self.provider == "deepseek":
            return ProviderConfig(
                name="deepseek",
                api_key=api_key or s.deepseek_api_key,
                api_base=api_base or s.deepseek_api_base,
                model=model or s.deepseek_model,
            )
        return ProviderConfig(
            name="grok",
            api_key=api_key or s.grok_api_key,
            api_base=api_base or s.grok_api_base,
            model=model or s.grok_model,
        )


def _completion_text(data: Any, request: httpx.Request) -> str:
    """Pull the first choice's text out of a chat-completions body."""
    choices = data.get("choices") if isinstance(data, dict) else None
    choice = choices[0] if isinstance(choices, list) and choices else None
    if not isinstance(choice, dict):
        raise httpx.DecodingError("chat response has no choices", request=request)
    message = choice.get("message")
    content = message.get("content") if isinstance(message, dict) else choice.get("text")
    if content is None:
        content = ""
    if not isinstance(content, str):
        raise httpx.DecodingError("chat response content is not text", request=request)
    return content


def extract_json(text: str) -> dict:
    """Parse a JSON object, tolerating surrounding prose or code fences."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end == -1 or end <= start:
            raise
        payload = json.loads(text[start : end + 1])
    if not isinstance(payload, dict):
        raise json.JSONDecodeError("expected a JSON object", text, 0)
    return payload
