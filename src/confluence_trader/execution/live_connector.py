"""HTTP connector for the perpetuals venue's JSON API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from confluence_trader.config import Settings, settings as default_settings
from confluence_trader.errors import ExecutionError, TransientFetchError
from confluence_trader.execution.base_connector import BasePositionConnector, OpenResult

logger = logging.getLogger(__name__)


class LiveConnector(BasePositionConnector):
    name = "live"

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        s = settings or default_settings
        self.api_url = (api_url or s.perps_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else s.perps_api_key
        self.timeout = timeout
        self.transport = transport

    def _headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Any:
        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.request(
                method,
                f"{self.api_url}{path}",
                headers=self._headers(idempotency_key),
                json=payload,
            )
        response.raise_for_status()
        return response.json()

    def open_position(
        self, pair: str, notional: float, leverage: float, side: str = "long"
    ) -> OpenResult:
        payload = {"pair": pair, "notional": notional, "leverage": leverage, "side": side}
        try:
            data = self._request("POST", "/positions/open", payload)
            tx_ref = str(data["txRef"])
            entry_price = float(data["entryPrice"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            raise ExecutionError(f"open {side} {pair} failed: {exc}") from exc
        if entry_price <= 0:
            raise ExecutionError(f"open {side} {pair} returned entry price {entry_price}")
        logger.info("Opened %s %s notional=%.2f tx=%s", side, pair, notional, tx_ref)
        return OpenResult(tx_ref=tx_ref, entry_price=entry_price)

    def close_position(self, position_id: str, amount: float, request_id: str) -> str:
        payload = {"positionId": position_id, "amount": amount, "requestId": request_id}
        try:
            data = self._request(
                "POST", "/positions/close", payload, idempotency_key=request_id
            )
            tx_ref = str(data["txRef"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            raise ExecutionError(f"close {position_id} failed: {exc}") from exc
        logger.info("Closed %s amount=%.2f tx=%s", position_id, amount, tx_ref)
        return tx_ref

    def get_free_balance(self) -> float:
        try:
            data = self._request("GET", "/balance")
            return float(data["free"])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            raise TransientFetchError(f"balance fetch failed: {exc}") from exc

    def list_positions(self) -> List[dict]:
        try:
            data = self._request("GET", "/positions")
        except (httpx.HTTPError, ValueError) as exc:
            raise TransientFetchError(f"positions fetch failed: {exc}") from exc
        return list(data.get("positions") or []) if isinstance(data, dict) else []
