"""
Deduplicating admission queue between bursty event sources and the scorer.

Bounded buffer with drop-oldest backpressure: when full, the oldest pending
launch is evicted so the freshest launches are the ones assessed. A mint that
is already pending or currently being delivered is rejected. A single
consumer pops the oldest entry, awaits delivery, then waits a fixed interval
before the next check, so downstream RPC load never exceeds one assessment
per interval however fast events arrive.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import Awaitable, Callable

from forkoor_sentinel.sentinel_logging import get_logger
from forkoor_sentinel.solana_listener.models import TokenLaunchEvent
from forkoor_sentinel.utils.address_utils import short

logger = get_logger(__name__)

DEFAULT_CAPACITY = 10
DEFAULT_DELIVERY_INTERVAL_SEC = 0.5

Deliver = Callable[[TokenLaunchEvent], Awaitable[None]]


class AdmissionQueue:
    def __init__(
        self,
        deliver: Deliver,
        capacity: int = DEFAULT_CAPACITY,
        delivery_interval_sec: float = DEFAULT_DELIVERY_INTERVAL_SEC,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if delivery_interval_sec < 0:
            raise ValueError("delivery_interval_sec must be >= 0")
        self._deliver = deliver
        self._capacity = capacity
        self._interval = delivery_interval_sec
        # mint -> event, insertion order is queue order
        self._pending: OrderedDict[str, TokenLaunchEvent] = OrderedDict()
        self._in_flight: str | None = None
        self.dropped_count = 0
        self.delivered_count = 0

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, mint: object) -> bool:
        """True while mint is pending or being delivered."""
        return mint in self._pending or mint == self._in_flight

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_flight(self) -> str | None:
        return self._in_flight

    def pending(self) -> list[TokenLaunchEvent]:
        """Snapshot of queued events, oldest first."""
        return list(self._pending.values())

    def enqueue(self, event: TokenLaunchEvent) -> bool:
        """Admit event; False when its mint is already pending or being delivered."""
        if event.mint in self:
            logger.debug("admission_duplicate_rejected", mint=short(event.mint))
            return False
        if len(self._pending) >= self._capacity:
            evicted_mint, _ = self._pending.popitem(last=False)
            self.dropped_count += 1
            logger.warning(
                "admission_queue_full_evicted",
                evicted_mint=short(evicted_mint),
                mint=short(event.mint),
                capacity=self._capacity,
            )
        self._pending[event.mint] = event
        logger.debug("admission_enqueued", mint=short(event.mint), queue_size=len(self._pending))
        return True

    async def deliver_next(self) -> TokenLaunchEvent | None:
        """Pop the oldest event and deliver it; delivery errors are logged."""
        if self._in_flight is not None or not self._pending:
            return None
        mint, event = self._pending.popitem(last=False)
        self._in_flight = mint
        try:
            await self._deliver(event)
            self.delivered_count += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(
                "admission_delivery_failed",
                mint=short(mint),
                platform=event.platform.value,
                error=str(e),
            )
        finally:
            self._in_flight = None
        return event

    async def run(self, stop_event: asyncio.Event) -> None:
        """Single consumer loop; returns once stop_event is set."""
        logger.info(
            "admission_consumer_started",
            capacity=self._capacity,
            delivery_interval_sec=self._interval,
        )
        while not stop_event.is_set():
            await self.deliver_next()
            if stop_event.is_set():
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
        logger.info(
            "admission_consumer_stopped",
            pending=len(self._pending),
            delivered=self.delivered_count,
            dropped=self.dropped_count,
        )
