"""
Event source adapters: the pump.fun push feed and launch-program log
subscriptions. Both hand TokenLaunchEvents to an async on_token sink.
"""

from forkoor_sentinel.ingestion.log_subscription import (
    DEFAULT_PROGRAMS,
    PUMPFUN_PROGRAM,
    RAYDIUM_AMM_PROGRAM,
    RAYDIUM_CLMM_PROGRAM,
    LogSubscriptionAdapter,
    SeenMints,
    WatchedProgram,
)
from forkoor_sentinel.ingestion.push_feed import PushFeedAdapter
from forkoor_sentinel.ingestion.schemas import PumpFeedMessage, parse_feed_message

__all__ = [
    "DEFAULT_PROGRAMS",
    "PUMPFUN_PROGRAM",
    "RAYDIUM_AMM_PROGRAM",
    "RAYDIUM_CLMM_PROGRAM",
    "LogSubscriptionAdapter",
    "PumpFeedAdapter",
    "PumpFeedMessage",
    "SeenMints",
    "WatchedProgram",
    "parse_feed_message",
]
