"""
Application settings.

Responsibilities:
- Gather every tunable of the monitoring pipeline from environment variables
  (see config.env) with the defaults the pipeline was tuned for.
- Validate the combination and report all problems at once (ConfigError).
- Expose a cached Settings instance via get_settings().
"""

from __future__ import annotations

import functools
from dataclasses import dataclass

from forkoor_sentinel.analytics.risk_engine import RiskThresholds
from forkoor_sentinel.config import env
from forkoor_sentinel.core.exceptions import ConfigError


@dataclass(frozen=True)
class Settings:
    """Typed configuration for the monitor, request gate, queue and analyzer."""

    solana_rpc_url: str = env.MAINNET_RPC_URL
    solana_ws_url: str = "wss://api.mainnet-beta.solana.com"
    rugcheck_api_url: str = env.RUGCHECK_API_URL
    pumpfun_ws_url: str | None = None

    # Request gate
    rpc_request_delay_sec: float = 0.5
    rate_limit_cooldown_sec: float = 5.0
    rate_limit_max_retries: int = 3
    rpc_timeout_sec: float = 30.0

    # Admission queue
    queue_capacity: int = 10
    queue_delivery_interval_sec: float = 0.5

    # Adapters
    push_reconnect_delay_sec: float = 5.0
    finality_delay_sec: float = 2.0
    max_seen_mints: int = 100_000
    watch_raydium_clmm: bool = False

    # Risk scoring
    rugcheck_timeout_sec: float = 30.0
    min_liquidity_usd: float = 5_000.0
    holder_concentration_pct: float = 50.0
    risk_threshold_low: int = 25
    risk_threshold_medium: int = 50
    risk_threshold_high: int = 75

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (and .env)."""
        return cls(
            solana_rpc_url=env.get_solana_rpc_url(),
            solana_ws_url=env.get_solana_ws_url(),
            rugcheck_api_url=env.env_str("RUGCHECK_API_URL", env.RUGCHECK_API_URL),
            pumpfun_ws_url=env.env_str("PUMPFUN_WS_URL") or None,
            rpc_request_delay_sec=env.env_float("RPC_REQUEST_DELAY_SEC", 0.5),
            rate_limit_cooldown_sec=env.env_float("RATE_LIMIT_COOLDOWN_SEC", 5.0),
            rate_limit_max_retries=env.env_int("RATE_LIMIT_MAX_RETRIES", 3),
            rpc_timeout_sec=env.env_float("RPC_TIMEOUT_SEC", 30.0),
            queue_capacity=env.env_int("QUEUE_CAPACITY", 10),
            queue_delivery_interval_sec=env.env_float("QUEUE_DELIVERY_INTERVAL_SEC", 0.5),
            push_reconnect_delay_sec=env.env_float("PUSH_RECONNECT_DELAY_SEC", 5.0),
            finality_delay_sec=env.env_float("FINALITY_DELAY_SEC", 2.0),
            max_seen_mints=env.env_int("MAX_SEEN_MINTS", 100_000),
            watch_raydium_clmm=env.env_bool("WATCH_RAYDIUM_CLMM"),
            rugcheck_timeout_sec=env.env_float("RUGCHECK_TIMEOUT_SEC", 30.0),
            min_liquidity_usd=env.env_float("MIN_LIQUIDITY_USD", 5_000.0),
            holder_concentration_pct=env.env_float("HOLDER_CONCENTRATION_PCT", 50.0),
            risk_threshold_low=env.env_int("RISK_THRESHOLD_LOW", 25),
            risk_threshold_medium=env.env_int("RISK_THRESHOLD_MEDIUM", 50),
            risk_threshold_high=env.env_int("RISK_THRESHOLD_HIGH", 75),
        )

    @property
    def risk_thresholds(self) -> RiskThresholds:
        return RiskThresholds(
            low=self.risk_threshold_low,
            medium=self.risk_threshold_medium,
            high=self.risk_threshold_high,
        )

    def validate(self) -> "Settings":
        """Raise ConfigError listing every invalid field; return self when valid."""
        errors: list[str] = []
        if not self.solana_rpc_url:
            errors.append("SOLANA_RPC_URL is required")
        if not self.solana_ws_url:
            errors.append("SOLANA_WS_URL is required")
        if not self.rugcheck_api_url:
            errors.append("RUGCHECK_API_URL is required")
        if self.rpc_request_delay_sec < 0:
            errors.append("RPC_REQUEST_DELAY_SEC must be >= 0")
        if self.rate_limit_max_retries < 0:
            errors.append("RATE_LIMIT_MAX_RETRIES must be >= 0")
        if self.queue_capacity <= 0:
            errors.append("QUEUE_CAPACITY must be positive")
        if self.max_seen_mints <= 0:
            errors.append("MAX_SEEN_MINTS must be positive")
        if not (0 < self.risk_threshold_low < self.risk_threshold_medium < self.risk_threshold_high <= 100):
            errors.append("risk thresholds must satisfy 0 < LOW < MEDIUM < HIGH <= 100")
        if not (0 < self.holder_concentration_pct <= 100):
            errors.append("HOLDER_CONCENTRATION_PCT must be in (0, 100]")
        if errors:
            raise ConfigError("; ".join(errors))
        return self


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the current application settings (loaded once, validated).

    Tests that change the environment call get_settings.cache_clear().
    """
    return Settings.from_env().validate()
