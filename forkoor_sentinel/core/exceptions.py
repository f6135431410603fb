"""
Application-level exceptions.

Transient I/O failures (RpcError, RpcRateLimitError) are retried or dropped
by the pipeline; data-unavailable cases (AccountNotFoundError) become
"unknown" values; malformed input (FeedMessageError) is logged and discarded;
InvalidMintError and ConfigError are programmer/contract errors raised to the
immediate caller.
"""

from __future__ import annotations

import httpx


class SentinelError(Exception):
    """Base class for all Forkoor Sentinel errors."""


class RpcError(SentinelError):
    """Solana JSON-RPC transport or protocol error."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class RpcRateLimitError(RpcError):
    """RPC provider throttled the request (HTTP 429 or equivalent RPC error)."""


class AccountNotFoundError(SentinelError):
    """Requested on-chain account does not exist."""


class InvalidAccountOwnerError(SentinelError):
    """Account exists but is owned by a different program than expected."""


class RiskSourceError(SentinelError):
    """Third-party risk API returned an error or an undecodable report."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FeedMessageError(SentinelError):
    """Push-feed frame could not be parsed into a token launch event."""


class ConfigError(SentinelError):
    """Invalid configuration; message lists every problem found."""


class InvalidMintError(SentinelError, ValueError):
    """Mint identity is not a valid base58 Solana public key."""


_RATE_LIMIT_MARKERS = ("429", "too many requests", "rate limit")


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for throttling errors: RpcRateLimitError, HTTP 429, or a 429-style message."""
    if isinstance(exc, RpcRateLimitError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429
    text = str(exc).lower()
    return any(marker in text for marker in _RATE_LIMIT_MARKERS)
