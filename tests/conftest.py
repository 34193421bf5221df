from dataclasses import replace

import pytest

from confluence_trader.config import settings as base_settings
from confluence_trader.state.store import AccountStore

NOW = 1_700_000_000


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def settings(tmp_path):
    """
    Fully explicit settings so tests never depend on the developer's .env.
    """
    return replace(
        base_settings,
        database_url=f"sqlite:///{tmp_path / 'trader.db'}",
        llm_provider="grok",
        llm_api_base="",
        llm_api_key="",
        llm_model="",
        grok_api_key="test-key",
        grok_api_base="https://llm.test/v1",
        grok_model="test-model",
        llm_max_retries=3,
        trading_pairs=("SOL/USDC", "BTC/USDC"),
        signal_timeframes=("30min", "1h", "4h", "1d"),
        leverage_low=2.5,
        leverage_med=3.3,
        leverage_high=4.0,
        buy_percentage=0.3,
        price_max_retries=3,
        execution_backend="simulated",
        simulated_free_balance=1000.0,
        trading_enabled=True,
        analysis_lock_ttl_s=300,
        trigger_window_s=3600,
        signal_retention_days=7,
        webhook_retention_hours=24,
        price_history_prompt_samples=10,
    )


@pytest.fixture
def store(settings):
    return AccountStore(settings.database_url)
