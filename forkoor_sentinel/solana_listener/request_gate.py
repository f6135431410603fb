"""
Rate-limited request gate for the shared Solana RPC endpoint.

Every RPC-bound read in the pipeline funnels through one RequestGate: it is
the single serialization point that keeps bursty log notifications from
tripping the provider's rate limit. Callers hand in a zero-argument callable
returning an awaitable; the gate waits out the minimum spacing, runs it, and
on throttling errors cools down and retries. Exhausted retries return None so
callers treat missing data as a soft failure.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

from forkoor_sentinel.core.exceptions import is_rate_limit_error
from forkoor_sentinel.sentinel_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MIN_DELAY_SEC = 0.5
DEFAULT_RETRY_COOLDOWN_SEC = 5.0
DEFAULT_MAX_RETRIES = 3


class RequestGate:
    """Serialize RPC reads with minimum spacing and 429 cooldown/retry."""

    def __init__(
        self,
        min_delay_sec: float = DEFAULT_MIN_DELAY_SEC,
        retry_cooldown_sec: float = DEFAULT_RETRY_COOLDOWN_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if min_delay_sec < 0:
            raise ValueError("min_delay_sec must be >= 0")
        if retry_cooldown_sec < 0:
            raise ValueError("retry_cooldown_sec must be >= 0")
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._min_delay = min_delay_sec
        self._cooldown = retry_cooldown_sec
        self._max_retries = max_retries
        self._clock = clock
        self._sleep = sleep
        self._last_request: float | None = None
        self._lock = asyncio.Lock()

    @property
    def last_request_at(self) -> float | None:
        """Clock value when the previous attempt finished; None before the first."""
        return self._last_request

    async def _wait_for_slot(self) -> None:
        if self._last_request is None:
            return
        elapsed = self._clock() - self._last_request
        if elapsed < self._min_delay:
            await self._sleep(self._min_delay - elapsed)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T | None:
        """
        Run operation under the gate.

        Returns the operation's result, or None after max_retries rate-limited
        retries. Non rate-limit exceptions propagate on the first occurrence.
        """
        async with self._lock:
            attempt = 0
            while True:
                await self._wait_for_slot()
                try:
                    result = await operation()
                except Exception as e:
                    self._last_request = self._clock()
                    if not is_rate_limit_error(e):
                        raise
                    if attempt >= self._max_retries:
                        logger.warning(
                            "request_gate_give_up",
                            attempts=attempt + 1,
                            max_retries=self._max_retries,
                            error=str(e),
                        )
                        return None
                    attempt += 1
                    logger.warning(
                        "request_gate_rate_limited",
                        retry=attempt,
                        max_retries=self._max_retries,
                        cooldown_sec=self._cooldown,
                        error=str(e),
                    )
                    await self._sleep(self._cooldown)
                    continue
                self._last_request = self._clock()
                return result
