"""Spot price sources: Jupiter (primary) and CoinGecko (fallback)."""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import Any, Dict, Mapping, Optional, Sequence

import httpx

from confluence_trader.config import ASSET_ROUTES, Settings, settings as default_settings
from confluence_trader.errors import TransientFetchError

logger = logging.getLogger(__name__)


class PriceSource(ABC):
    name: str = "price"

    @abstractmethod
    def fetch(self, assets: Sequence[str]) -> Dict[str, float]:
        """Return a positive price per asset symbol or raise TransientFetchError."""
        raise NotImplementedError


def validate_prices(
    source: str, assets: Sequence[str], prices: Mapping[str, Optional[float]]
) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for asset in assets:
        value = prices.get(asset)
        try:
            price = float(value) if value is not None else 0.0
        except (TypeError, ValueError):
            price = 0.0
        if price <= 0:
            raise TransientFetchError(f"{source}: invalid price for {asset}: {value!r}")
        out[asset] = price
    return out


def _as_dict(source: str, value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise TransientFetchError(f"{source}: unexpected payload shape: {value!r}")
    return value

class _HttpPriceSource(PriceSource):
    def __init__(
        self,
        base_url: str,
        timeout: float,
        routes: Optional[Mapping[str, Mapping[str, str]]] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.routes = routes or ASSET_ROUTES
        self.transport = transport

    def _route(self, asset: str, key: str) -> str:
        try:
            return self.routes[asset][key]
        except KeyError as exc:
            raise TransientFetchError(f"{self.name}: no {key} for asset {asset}") from exc

    def _get(self, url: str, params: dict) -> Any:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise TransientFetchError(f"{self.name}: {exc}") from exc


class JupiterPriceSource(_HttpPriceSource):
    name = "jupiter"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        settings: Optional[Settings] = None,
        **kwargs,
    ) -> None:
        s = settings or default_settings
        super().__init__(
            base_url or s.price_api_url,
            timeout if timeout is not None else s.price_timeout_s,
            **kwargs,
        )

    def fetch(self, assets: Sequence[str]) -> Dict[str, float]:
        ids = {asset: self._route(asset, "jupiter_id") for asset in assets}
        payload = self._get(self.base_url + "/", {"ids": ",".join(ids.values())})
        # v3 returns {mint: {usdPrice}}, v2 wrapped it as {"data": {mint: {price}}}
        payload = _as_dict(self.name, payload)
        data = _as_dict(self.name, payload.get("data", payload))
        raw: Dict[str, Optional[float]] = {}
        for asset, mint in ids.items():
            item = _as_dict(self.name, data.get(mint) or {})
            raw[asset] = item.get("usdPrice", item.get("price"))
        return validate_prices(self.name, assets, raw)


class CoinGeckoPriceSource(_HttpPriceSource):
    name = "coingecko"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        settings: Optional[Settings] = None,
        **kwargs,
    ) -> None:
        s = settings or default_settings
        super().__init__(
            base_url or s.price_fallback_api_url,
            timeout if timeout is not None else s.price_timeout_s,
            **kwargs,
        )

    def fetch(self, assets: Sequence[str]) -> Dict[str, float]:
        ids = {asset: self._route(asset, "coingecko_id") for asset in assets}
        payload = self._get(
            self.base_url + "/simple/price",
            {"ids": ",".join(ids.values()), "vs_currencies": "usd"},
        )
        payload = _as_dict(self.name, payload)
        raw = {
            asset: _as_dict(self.name, payload.get(cg_id) or {}).get("usd")
            for asset, cg_id in ids.items()
        }
        return validate_prices(self.name, assets, raw)
