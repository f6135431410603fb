"""
Pytest fixtures for Forkoor Sentinel tests.

Async code is driven with asyncio.run() inside plain test functions; RPC,
HTTP and socket collaborators are replaced with unittest.mock objects or
httpx.MockTransport.
"""

from __future__ import annotations

import pytest

from forkoor_sentinel.config import get_settings


@pytest.fixture
def clean_env(monkeypatch):
    """
    Remove every Forkoor Sentinel variable from the environment and reset the
    cached settings so each test reads its own values.
    """
    for name in (
        "SOLANA_RPC_URL",
        "SOLANA_WS_URL",
        "HELIUS_API_KEY",
        "RUGCHECK_API_URL",
        "PUMPFUN_WS_URL",
        "RPC_REQUEST_DELAY_SEC",
        "RATE_LIMIT_COOLDOWN_SEC",
        "RATE_LIMIT_MAX_RETRIES",
        "QUEUE_CAPACITY",
        "QUEUE_DELIVERY_INTERVAL_SEC",
        "PUSH_RECONNECT_DELAY_SEC",
        "FINALITY_DELAY_SEC",
        "RUGCHECK_TIMEOUT_SEC",
        "MIN_LIQUIDITY_USD",
        "HOLDER_CONCENTRATION_PCT",
        "RISK_THRESHOLD_LOW",
        "RISK_THRESHOLD_MEDIUM",
        "RISK_THRESHOLD_HIGH",
        "MAX_SEEN_MINTS",
        "WATCH_RAYDIUM_CLMM",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr("forkoor_sentinel.config.env.load_sentinel_env", lambda: None)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()
