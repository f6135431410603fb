"""
Program-log adapter: logsSubscribe → keyword pre-filter → resolve tx → new mints.

Watches well-known launch programs (pump.fun, Raydium AMM, optionally Raydium
CLMM). Each notification first goes through a cheap substring check on its
log lines; only matches pay for a transaction fetch, which goes through the
shared RequestGate after a short wait for finality.

Mints are discovered in one of two ways per program:
- initialize_mint: parsed initializeMint/initializeMint2 instructions (pump.fun
  creates the mint inside its own instruction via CPI).
- account_keys: account keys of the pool-init transaction whose account data
  is exactly one SPL mint (82 bytes) owned by a token program, skipping
  well-known base tokens (Raydium pools reference an existing mint).

Every mint is emitted at most once per adapter lifetime; the seen-set is
bounded and evicts the oldest identity when full. Resolution failures are
logged and the candidate is dropped (the next notification is another chance).
"""

from __future__ import annotations

import asyncio
import functools
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable

from forkoor_sentinel.sentinel_logging import get_logger
from forkoor_sentinel.solana_listener.models import LogsNotification, Platform, TokenLaunchEvent
from forkoor_sentinel.solana_listener.parser import (
    MINT_ACCOUNT_SIZE,
    candidate_mint_keys,
    fee_payer,
    initialized_mints,
    logs_match,
)
from forkoor_sentinel.solana_listener.request_gate import RequestGate
from forkoor_sentinel.solana_listener.rpc_client import (
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    SolanaRpcClient,
)
from forkoor_sentinel.utils.address_utils import short

logger = get_logger(__name__)

PUMPFUN_PROGRAM_ID = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"
RAYDIUM_AMM_ID = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"
RAYDIUM_CLMM_ID = "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK"

STRATEGY_INITIALIZE_MINT = "initialize_mint"
STRATEGY_ACCOUNT_KEYS = "account_keys"

DEFAULT_FINALITY_DELAY_SEC = 2.0
DEFAULT_MAX_SEEN_MINTS = 100_000
UNKNOWN_NAME = "Unknown"
UNKNOWN_SYMBOL = "UNK"

TokenSink = Callable[[TokenLaunchEvent], Awaitable[None]]
ErrorSink = Callable[[Exception], Awaitable[None]]


@dataclass(frozen=True)
class WatchedProgram:
    """A launch program to subscribe to and how to find new mints in its transactions."""

    program_id: str
    platform: Platform
    keywords: tuple[str, ...]
    strategy: str


PUMPFUN_PROGRAM = WatchedProgram(
    PUMPFUN_PROGRAM_ID, Platform.PUMPFUN, ("create", "Create"), STRATEGY_INITIALIZE_MINT
)
RAYDIUM_AMM_PROGRAM = WatchedProgram(
    RAYDIUM_AMM_ID, Platform.RAYDIUM, ("initialize", "Initialize"), STRATEGY_ACCOUNT_KEYS
)
RAYDIUM_CLMM_PROGRAM = WatchedProgram(
    RAYDIUM_CLMM_ID, Platform.RAYDIUM, ("initialize", "Initialize"), STRATEGY_ACCOUNT_KEYS
)
DEFAULT_PROGRAMS = (RAYDIUM_AMM_PROGRAM, PUMPFUN_PROGRAM)


class SeenMints:
    """Set with FIFO eviction once max_size identities are held."""

    def __init__(self, max_size: int = DEFAULT_MAX_SEEN_MINTS) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._max_size = max_size
        self._set: set[str] = set()
        self._order: deque[str] = deque()

    def __contains__(self, mint: object) -> bool:
        return mint in self._set

    def __len__(self) -> int:
        return len(self._set)

    def add(self, mint: str) -> bool:
        """Mark mint as seen; True if it was new."""
        if mint in self._set:
            return False
        if len(self._set) >= self._max_size:
            oldest = self._order.popleft()
            self._set.discard(oldest)
        self._set.add(mint)
        self._order.append(mint)
        return True


class LogSubscriptionAdapter:
    """Turns launch-program log notifications into at-most-once TokenLaunchEvents."""

    def __init__(
        self,
        rpc: SolanaRpcClient,
        gate: RequestGate,
        on_token: TokenSink,
        *,
        on_error: ErrorSink | None = None,
        programs: tuple[WatchedProgram, ...] = DEFAULT_PROGRAMS,
        finality_delay_sec: float = DEFAULT_FINALITY_DELAY_SEC,
        max_seen_mints: int = DEFAULT_MAX_SEEN_MINTS,
        stop_event: asyncio.Event | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not programs:
            raise ValueError("programs must be non-empty")
        self._rpc = rpc
        self._gate = gate
        self._on_token = on_token
        self._on_error = on_error
        self._programs = tuple(programs)
        self._finality_delay = finality_delay_sec
        self._seen = SeenMints(max_seen_mints)
        self._stop = stop_event or asyncio.Event()
        self._sleep = sleep
        self.notifications_matched = 0

    @property
    def seen(self) -> SeenMints:
        return self._seen

    @property
    def running(self) -> bool:
        return not self._stop.is_set()

    async def run(self) -> None:
        """Subscribe to every watched program; returns once all subscriptions stop."""
        logger.info(
            "log_adapter_started",
            programs=[short(p.program_id) for p in self._programs],
        )
        tasks = [
            asyncio.create_task(
                self._rpc.logs_subscribe(
                    program.program_id,
                    functools.partial(self.handle_logs, program),
                    self._stop,
                )
            )
            for program in self._programs
        ]
        try:
            results = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            for task in tasks:
                task.cancel()
        for program, result in zip(self._programs, results):
            if isinstance(result, Exception):
                logger.error(
                    "log_adapter_subscription_failed",
                    platform=program.platform.value,
                    program_id=short(program.program_id),
                    error=str(result),
                )
                await self._report(result)
        logger.info("log_adapter_stopped")

    async def stop(self) -> None:
        self._stop.set()
        await self._rpc.close_subscriptions()

    async def handle_logs(
        self, program: WatchedProgram, notification: LogsNotification
    ) -> list[TokenLaunchEvent]:
        """Process one notification; returns the events emitted (mostly for tests)."""
        if self._stop.is_set() or notification.err is not None:
            return []
        if not logs_match(notification.logs, program.keywords):
            return []
        self.notifications_matched += 1
        signature = notification.signature

        await self._sleep(self._finality_delay)
        if self._stop.is_set():
            return []

        try:
            tx = await self._gate.execute(lambda: self._rpc.get_parsed_transaction(signature))
        except Exception as e:
            logger.warning(
                "log_adapter_tx_fetch_failed",
                platform=program.platform.value,
                signature=short(signature),
                error=str(e),
            )
            return []
        if tx is None or self._stop.is_set():
            return []

        if program.strategy == STRATEGY_INITIALIZE_MINT:
            mints = initialized_mints(tx)
        else:
            mints = await self._mints_from_account_keys(tx)

        creator = fee_payer(tx)
        emitted: list[TokenLaunchEvent] = []
        for mint in mints:
            if self._stop.is_set():
                break
            if not self._seen.add(mint):
                continue
            event = TokenLaunchEvent(
                mint=mint,
                name=UNKNOWN_NAME,
                symbol=UNKNOWN_SYMBOL,
                platform=program.platform,
                creator=creator,
            )
            logger.info(
                "log_adapter_new_token",
                platform=program.platform.value,
                mint=short(mint),
                signature=short(signature),
            )
            try:
                await self._on_token(event)
            except Exception as e:
                logger.exception("log_adapter_sink_failed", mint=short(mint), error=str(e))
                continue
            emitted.append(event)
        return emitted

    async def _mints_from_account_keys(self, tx: dict) -> list[str]:
        mints: list[str] = []
        for key in candidate_mint_keys(tx):
            if self._stop.is_set():
                break
            if key in self._seen:
                continue
            try:
                info = await self._gate.execute(
                    functools.partial(self._rpc.get_account_info, key)
                )
            except Exception as e:
                logger.debug("log_adapter_account_fetch_failed", account=short(key), error=str(e))
                continue
            if info is None:
                continue
            if len(info.data) == MINT_ACCOUNT_SIZE and info.owner in (
                TOKEN_PROGRAM_ID,
                TOKEN_2022_PROGRAM_ID,
            ):
                mints.append(key)
        return mints

    async def _report(self, exc: Exception) -> None:
        if self._on_error is None:
            return
        try:
            await self._on_error(exc)
        except Exception as e:
            logger.warning("log_adapter_error_sink_failed", error=str(e))
