"""
Core cross-cutting pieces shared by the listener, ingestion adapters,
analytics and agent worker: the exception hierarchy.
"""

from forkoor_sentinel.core.exceptions import (
    AccountNotFoundError,
    ConfigError,
    FeedMessageError,
    InvalidAccountOwnerError,
    InvalidMintError,
    RiskSourceError,
    RpcError,
    RpcRateLimitError,
    SentinelError,
    is_rate_limit_error,
)

__all__ = [
    "AccountNotFoundError",
    "ConfigError",
    "FeedMessageError",
    "InvalidAccountOwnerError",
    "InvalidMintError",
    "RiskSourceError",
    "RpcError",
    "RpcRateLimitError",
    "SentinelError",
    "is_rate_limit_error",
]
