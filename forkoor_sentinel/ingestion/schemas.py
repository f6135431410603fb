"""
Boundary schemas for vendor push-feed frames.

Frames are validated here and converted to TokenLaunchEvent; nothing past
the adapter sees unvalidated vendor JSON.
"""

from __future__ import annotations

import json

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from forkoor_sentinel.core.exceptions import FeedMessageError
from forkoor_sentinel.solana_listener.models import Platform, TokenLaunchEvent, now_ms
from forkoor_sentinel.utils.address_utils import is_valid_address

NEW_TOKEN_TYPE = "newToken"
SUBSCRIBE_NEW_TOKEN = {"method": "subscribeNewToken"}


class PumpFeedMessage(BaseModel):
    """pump.fun feed frame: {type, mint, name, symbol, creator, vSolInBondingCurve, ...}."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str | None = None
    mint: str | None = None
    name: str | None = None
    symbol: str | None = None
    creator: str | None = None
    v_sol_in_bonding_curve: float | None = Field(default=None, alias="vSolInBondingCurve", ge=0)

    @field_validator("mint", "name", "symbol", "creator", mode="before")
    @classmethod
    def _strip(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    def to_event(self, timestamp_ms: int | None = None) -> TokenLaunchEvent:
        if not self.mint or not is_valid_address(self.mint):
            raise FeedMessageError(f"newToken frame carries invalid mint: {self.mint!r}")
        return TokenLaunchEvent(
            mint=self.mint,
            name=self.name or "Unknown",
            symbol=self.symbol or "UNK",
            platform=Platform.PUMPFUN,
            timestamp=timestamp_ms if timestamp_ms is not None else now_ms(),
            initial_liquidity=float(self.v_sol_in_bonding_curve or 0.0),
            creator=self.creator or "",
        )


def parse_feed_message(raw: str | bytes) -> TokenLaunchEvent | None:
    """
    Decode one text frame.

    Returns a TokenLaunchEvent for newToken frames, None for other well-formed
    frames (acks, trades). Raises FeedMessageError for malformed frames.
    """
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise FeedMessageError(f"Feed frame is not JSON: {e}") from e
    if not isinstance(payload, dict):
        raise FeedMessageError(f"Feed frame is not an object: {type(payload).__name__}")
    try:
        message = PumpFeedMessage.model_validate(payload)
    except ValidationError as e:
        raise FeedMessageError(f"Feed frame failed validation: {e.error_count()} error(s)") from e
    if message.type != NEW_TOKEN_TYPE:
        return None
    return message.to_event()
