"""
Environment variable loading for Forkoor Sentinel.

- SOLANA_RPC_URL: HTTP RPC endpoint
- HELIUS_API_KEY: fallback RPC provider when SOLANA_RPC_URL is unset
- SOLANA_WS_URL: websocket endpoint (derived from the RPC URL when unset)
- RUGCHECK_API_URL: RugCheck API base URL
- PUMPFUN_WS_URL: optional pump.fun push feed; push adapter disabled when unset
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

MAINNET_RPC_URL = "https://api.mainnet-beta.solana.com"
HELIUS_MAINNET_URL_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={key}"
RUGCHECK_API_URL = "https://api.rugcheck.xyz/v1"


def load_sentinel_env() -> None:
    """Load .env from project root. Safe to call multiple times; existing env wins."""
    load_dotenv(_ENV_PATH, override=False)


def env_str(name: str, default: str = "") -> str:
    load_sentinel_env()
    return (os.getenv(name) or default).strip()


def env_float(name: str, default: float) -> float:
    raw = env_str(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def env_int(name: str, default: int) -> int:
    raw = env_str(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def env_bool(name: str, default: bool = False) -> bool:
    raw = env_str(name).lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def get_solana_rpc_url() -> str:
    """
    Resolve Solana RPC URL from env.
    Order: SOLANA_RPC_URL > HELIUS_API_KEY > public mainnet endpoint.
    """
    url = env_str("SOLANA_RPC_URL")
    if url:
        return url
    key = env_str("HELIUS_API_KEY")
    if key:
        return HELIUS_MAINNET_URL_TEMPLATE.format(key=key)
    return MAINNET_RPC_URL


def http_url_to_ws(http_url: str) -> str:
    """Convert https:// or http:// to wss:// or ws:// for subscriptions."""
    s = http_url.strip()
    if s.startswith("https://"):
        return "wss://" + s[8:]
    if s.startswith("http://"):
        return "ws://" + s[7:]
    return s


def get_solana_ws_url() -> str:
    """SOLANA_WS_URL, or the RPC URL with its scheme switched to websocket."""
    return env_str("SOLANA_WS_URL") or http_url_to_ws(get_solana_rpc_url())


def mask_url(url: str) -> str:
    """Hide API keys embedded in provider URLs before logging them."""
    if "api-key=" in url:
        return url.split("api-key=")[0] + "api-key=***"
    return url
