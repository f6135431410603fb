"""
Solana listener package.

On-chain reader (JSON-RPC over HTTP, logsSubscribe over WebSocket), the
rate-limited request gate every RPC read goes through, parsed-transaction
helpers, and the normalized models emitted to the rest of the pipeline.
"""

from forkoor_sentinel.solana_listener.models import (
    AccountInfo,
    LogsNotification,
    MintInfo,
    Platform,
    TokenAccountBalance,
    TokenLaunchEvent,
)
from forkoor_sentinel.solana_listener.request_gate import RequestGate
from forkoor_sentinel.solana_listener.rpc_client import (
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    SolanaRpcClient,
)

__all__ = [
    "AccountInfo",
    "LogsNotification",
    "MintInfo",
    "Platform",
    "RequestGate",
    "SolanaRpcClient",
    "TOKEN_2022_PROGRAM_ID",
    "TOKEN_PROGRAM_ID",
    "TokenAccountBalance",
    "TokenLaunchEvent",
]
