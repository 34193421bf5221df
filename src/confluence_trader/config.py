"""Configuration loader for the confluence trader."""

from dataclasses import dataclass
import os
from typing import Dict, Tuple

from dotenv import load_dotenv


# Asset symbol -> identifiers used by the price sources.
ASSET_ROUTES: Dict[str, Dict[str, str]] = {
    "SOL": {
        "jupiter_id": "So11111111111111111111111111111112",
        "coingecko_id": "solana",
    },
    "BTC": {
        "jupiter_id": "3NZ9JMVBmGAqocybic2c7LQCJScmgsAZ6vQqTDzcqmJh",
        "coingecko_id": "bitcoin",
    },
}


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_csv(value: str | None, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if not value:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _get_float(value: str | None, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_int(value: str | None, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    database_url: str
    llm_provider: str
    llm_api_base: str
    llm_api_key: str
    llm_model: str
    grok_api_key: str
    grok_api_base: str
    grok_model: str
    openai_api_key: str
    openai_api_base: str
    openai_model: str
    deepseek_api_key: str
    deepseek_api_base: str
    deepseek_model: str
    llm_timeout_s: float
    llm_max_retries: int
    trading_pairs: Tuple[str, ...]
    signal_timeframes: Tuple[str, ...]
    leverage_low: float
    leverage_med: float
    leverage_high: float
    buy_percentage: float
    price_api_url: str
    price_fallback_api_url: str
    price_timeout_s: float
    price_max_retries: int
    perps_api_url: str
    perps_api_key: str
    execution_backend: str
    simulated_free_balance: float
    trading_enabled: bool
    analysis_lock_ttl_s: int
    trigger_window_s: int
    signal_retention_days: int
    webhook_retention_hours: int
    price_history_prompt_samples: int
    log_level: str

    @property
    def assets(self) -> Tuple[str, ...]:
        return tuple(pair.split("/")[0].upper() for pair in self.trading_pairs)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=os.getenv(
                "DATABASE_URL", "sqlite:///data/confluence_trader.db"
            ),
            llm_provider=os.getenv("LLM_PROVIDER", "grok"),
            llm_api_base=os.getenv("LLM_API_BASE", ""),
            llm_api_key=os.getenv("LLM_API_KEY", ""),
            llm_model=os.getenv("LLM_MODEL", ""),
            grok_api_key=os.getenv("GROK_API_KEY", ""),
            grok_api_base=os.getenv("GROK_API_BASE", "https://api.x.ai/v1"),
            grok_model=os.getenv("GROK_MODEL", "grok-3-mini"),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            openai_api_base=os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            deepseek_api_key=os.getenv("DEEPSEEK_API_KEY", ""),
            deepseek_api_base=os.getenv(
                "DEEPSEEK_API_BASE", "https://api.deepseek.com/v1"
            ),
            deepseek_model=os.getenv("DEEPSEEK_MODEL", "deepseek-chat"),
            llm_timeout_s=_get_float(os.getenv("LLM_TIMEOUT_S"), 30.0),
            llm_max_retries=_get_int(os.getenv("LLM_MAX_RETRIES"), 3),
            trading_pairs=_get_csv(
                os.getenv("TRADING_PAIRS"), default=("SOL/USDC", "BTC/USDC")
            ),
            signal_timeframes=_get_csv(
                os.getenv("SIGNAL_TIMEFRAMES"),
                default=("30min", "1h", "4h", "1d"),
            ),
            leverage_low=_get_float(os.getenv("LEVERAGE_LOW"), 2.5),
            leverage_med=_get_float(os.getenv("LEVERAGE_MED"), 3.3),
            leverage_high=_get_float(os.getenv("LEVERAGE_HIGH"), 4.0),
            buy_percentage=_get_float(os.getenv("BUY_PERCENTAGE"), 0.3),
            price_api_url=os.getenv(
                "PRICE_API_URL", "https://lite-api.jup.ag/price/v3"
            ),
            price_fallback_api_url=os.getenv(
                "PRICE_FALLBACK_API_URL", "https://api.coingecko.com/api/v3"
            ),
            price_timeout_s=_get_float(os.getenv("PRICE_TIMEOUT_S"), 5.0),
            price_max_retries=_get_int(os.getenv("PRICE_MAX_RETRIES"), 3),
            perps_api_url=os.getenv("PERPS_API_URL", "https://perp.jup.ag/api/v1"),
            perps_api_key=os.getenv("PERPS_API_KEY", ""),
            execution_backend=os.getenv("EXECUTION_BACKEND", "simulated").lower(),
            simulated_free_balance=_get_float(
                os.getenv("SIMULATED_FREE_BALANCE"), 5000.0
            ),
            trading_enabled=_get_bool(os.getenv("TRADING_ENABLED"), default=False),
            analysis_lock_ttl_s=_get_int(os.getenv("ANALYSIS_LOCK_TTL_S"), 300),
            trigger_window_s=_get_int(os.getenv("TRIGGER_WINDOW_S"), 3600),
            signal_retention_days=_get_int(os.getenv("SIGNAL_RETENTION_DAYS"), 7),
            webhook_retention_hours=_get_int(
                os.getenv("WEBHOOK_RETENTION_HOURS"), 24
            ),
            price_history_prompt_samples=_get_int(
                os.getenv("PRICE_HISTORY_PROMPT_SAMPLES"), 10
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


settings = Settings.from_env()
