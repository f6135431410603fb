"""
Data models for listener and ingestion output.

TokenLaunchEvent is the unit of work flowing from the event source adapters
through the admission queue to the analyzer. The remaining dataclasses are
normalized views of Solana RPC results (account info, mint info, largest
token accounts, log notifications).
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any


class Platform(str, enum.Enum):
    """Launch platform a token was first observed on."""

    PUMPFUN = "PUMPFUN"
    RAYDIUM = "RAYDIUM"
    ORCA = "ORCA"
    OTHER = "OTHER"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class TokenLaunchEvent:
    """
    A newly observed token. Immutable once created by an adapter.

    timestamp is epoch milliseconds of the observation; initial_liquidity is
    the feed's bonding-curve SOL estimate (0 when unknown).
    """

    mint: str
    name: str
    symbol: str
    platform: Platform
    timestamp: int = field(default_factory=now_ms)
    initial_liquidity: float = 0.0
    creator: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "mint": self.mint,
            "name": self.name,
            "symbol": self.symbol,
            "platform": self.platform.value,
            "timestamp": self.timestamp,
            "initial_liquidity": self.initial_liquidity,
            "creator": self.creator,
        }


@dataclass(frozen=True)
class LogsNotification:
    """One logsNotification from a logsSubscribe stream."""

    signature: str
    logs: tuple[str, ...]
    err: Any = None
    slot: int | None = None

    @classmethod
    def from_rpc_result(cls, result: dict[str, Any]) -> "LogsNotification":
        """Build from params.result of a logsNotification ({context, value})."""
        if not isinstance(result, dict):
            raise TypeError(f"notification result must be an object, got {type(result).__name__}")
        value = result.get("value") or {}
        context = result.get("context") or {}
        if not isinstance(value, dict) or not isinstance(context, dict):
            raise TypeError("notification value and context must be objects")
        return cls(
            signature=value["signature"],
            logs=tuple(str(line) for line in (value.get("logs") or [])),
            err=value.get("err"),
            slot=context.get("slot"),
        )


@dataclass(frozen=True)
class AccountInfo:
    """Raw account (base64 encoding decoded to bytes)."""

    address: str
    owner: str
    lamports: int
    data: bytes
    executable: bool = False


@dataclass(frozen=True)
class MintInfo:
    """Parsed SPL mint state; authorities are None once revoked."""

    address: str
    program_id: str
    supply: int
    decimals: int
    mint_authority: str | None
    freeze_authority: str | None
    is_initialized: bool = True


@dataclass(frozen=True)
class TokenAccountBalance:
    """Entry of getTokenLargestAccounts (raw amount in base units)."""

    address: str
    amount: int
    decimals: int
    ui_amount: float | None = None

    @classmethod
    def from_rpc_item(cls, item: dict[str, Any]) -> "TokenAccountBalance":
        return cls(
            address=item["address"],
            amount=int(item["amount"]),
            decimals=int(item.get("decimals") or 0),
            ui_amount=item.get("uiAmount"),
        )
