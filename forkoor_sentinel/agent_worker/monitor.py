"""
Token monitor: wires event sources, the admission queue and the analyzer.

    adapters (push feed, log subscriptions)
        -> NEW_TOKEN event + AdmissionQueue.enqueue
        -> single consumer -> TokenAnalyzer.assess
        -> TOKEN_ASSESSED (+ FORK_OPPORTUNITY when forkable)

Adapter loops, log subscriptions and the queue consumer are tasks owned by
the monitor and share one asyncio.Event as the running flag. stop() sets it,
closes sockets, gives tasks a short grace period, then cancels what is left.
Results of an assessment that finishes after stop() are discarded.

A mint already assessed, pending or in flight is not announced again, so a
token seen by both the push feed and the log subscription yields one
assessment. Log-subscription events carry placeholder names; those are filled
from the token's metadata account before NEW_TOKEN is published.
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import Any

from forkoor_sentinel.agent_worker.admission_queue import AdmissionQueue
from forkoor_sentinel.agent_worker.events import EventBus, ForkOpportunity, MonitorEvent
from forkoor_sentinel.analytics.onchain_verifier import OnChainVerifier
from forkoor_sentinel.analytics.risk_engine import RiskAssessment
from forkoor_sentinel.analytics.rugcheck_client import RugCheckClient
from forkoor_sentinel.analytics.token_analyzer import TokenAnalyzer
from forkoor_sentinel.config.settings import Settings
from forkoor_sentinel.ingestion.log_subscription import (
    DEFAULT_FINALITY_DELAY_SEC,
    DEFAULT_MAX_SEEN_MINTS,
    DEFAULT_PROGRAMS,
    RAYDIUM_CLMM_PROGRAM,
    UNKNOWN_NAME,
    UNKNOWN_SYMBOL,
    LogSubscriptionAdapter,
    SeenMints,
    WatchedProgram,
)
from forkoor_sentinel.ingestion.push_feed import DEFAULT_RECONNECT_DELAY_SEC, PushFeedAdapter
from forkoor_sentinel.sentinel_logging import get_logger
from forkoor_sentinel.solana_listener.models import Platform, TokenLaunchEvent
from forkoor_sentinel.solana_listener.request_gate import RequestGate
from forkoor_sentinel.solana_listener.rpc_client import SolanaRpcClient
from forkoor_sentinel.utils.address_utils import require_mint, short

logger = get_logger(__name__)

DEFAULT_STOP_GRACE_SEC = 2.0


class TokenMonitor:
    """Long-running launch monitor; start()/stop() are idempotent."""

    def __init__(
        self,
        analyzer: TokenAnalyzer,
        rpc: SolanaRpcClient,
        gate: RequestGate,
        *,
        push_feed_url: str | None = None,
        programs: tuple[WatchedProgram, ...] = DEFAULT_PROGRAMS,
        queue_capacity: int = 10,
        delivery_interval_sec: float = 0.5,
        push_reconnect_delay_sec: float = DEFAULT_RECONNECT_DELAY_SEC,
        finality_delay_sec: float = DEFAULT_FINALITY_DELAY_SEC,
        max_seen_mints: int = DEFAULT_MAX_SEEN_MINTS,
        stop_grace_sec: float = DEFAULT_STOP_GRACE_SEC,
        events: EventBus | None = None,
    ) -> None:
        self._analyzer = analyzer
        self._rpc = rpc
        self._gate = gate
        self._push_feed_url = (push_feed_url or "").strip() or None
        self._programs = tuple(programs)
        self._push_reconnect_delay = push_reconnect_delay_sec
        self._finality_delay = finality_delay_sec
        self._max_seen_mints = max_seen_mints
        self._stop_grace = stop_grace_sec
        self._events = events or EventBus()
        self._queue = AdmissionQueue(
            self._process, capacity=queue_capacity, delivery_interval_sec=delivery_interval_sec
        )
        # Mints already assessed; adapters re-reporting them are ignored
        self._assessed = SeenMints(max_seen_mints)
        self._stop_event: asyncio.Event | None = None
        self._tasks: list[asyncio.Task[Any]] = []
        self._push_adapter: PushFeedAdapter | None = None
        self._log_adapter: LogSubscriptionAdapter | None = None
        # Clients built by from_settings() are closed by aclose()
        self._owned: list[Any] = []

    @classmethod
    def from_settings(cls, settings: Settings, *, events: EventBus | None = None) -> "TokenMonitor":
        """Build the full pipeline (RPC reader, gate, RugCheck, verifier, analyzer)."""
        rpc = SolanaRpcClient(
            settings.solana_rpc_url,
            settings.solana_ws_url,
            timeout_sec=settings.rpc_timeout_sec,
        )
        gate = RequestGate(
            min_delay_sec=settings.rpc_request_delay_sec,
            retry_cooldown_sec=settings.rate_limit_cooldown_sec,
            max_retries=settings.rate_limit_max_retries,
        )
        rugcheck = RugCheckClient(
            settings.rugcheck_api_url,
            timeout_sec=settings.rugcheck_timeout_sec,
            min_liquidity_usd=settings.min_liquidity_usd,
            holder_concentration_pct=settings.holder_concentration_pct,
        )
        verifier = OnChainVerifier(
            rpc, gate, holder_concentration_pct=settings.holder_concentration_pct
        )
        analyzer = TokenAnalyzer(rugcheck, verifier, thresholds=settings.risk_thresholds)
        programs = DEFAULT_PROGRAMS
        if settings.watch_raydium_clmm:
            programs = programs + (RAYDIUM_CLMM_PROGRAM,)
        monitor = cls(
            analyzer,
            rpc,
            gate,
            push_feed_url=settings.pumpfun_ws_url,
            programs=programs,
            queue_capacity=settings.queue_capacity,
            delivery_interval_sec=settings.queue_delivery_interval_sec,
            push_reconnect_delay_sec=settings.push_reconnect_delay_sec,
            finality_delay_sec=settings.finality_delay_sec,
            max_seen_mints=settings.max_seen_mints,
            events=events,
        )
        monitor._owned = [rpc, rugcheck]
        return monitor

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def queue(self) -> AdmissionQueue:
        return self._queue

    @property
    def running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    async def start(self) -> None:
        """Spawn adapter and consumer tasks; no-op when already running."""
        if self.running:
            return
        stop_event = asyncio.Event()
        self._stop_event = stop_event
        self._log_adapter = LogSubscriptionAdapter(
            self._rpc,
            self._gate,
            self._on_token,
            on_error=self._on_adapter_error,
            programs=self._programs,
            finality_delay_sec=self._finality_delay,
            max_seen_mints=self._max_seen_mints,
            stop_event=stop_event,
        )
        self._tasks = [
            asyncio.create_task(self._queue.run(stop_event), name="admission_consumer"),
            asyncio.create_task(self._log_adapter.run(), name="log_subscriptions"),
        ]
        if self._push_feed_url:
            self._push_adapter = PushFeedAdapter(
                self._push_feed_url,
                self._on_token,
                on_error=self._on_adapter_error,
                reconnect_delay_sec=self._push_reconnect_delay,
                stop_event=stop_event,
            )
            self._tasks.append(asyncio.create_task(self._push_adapter.run(), name="push_feed"))
        logger.info(
            "monitor_started",
            programs=[p.platform.value for p in self._programs],
            push_feed=bool(self._push_feed_url),
            queue_capacity=self._queue.capacity,
        )

    async def stop(self) -> None:
        """Flip the running flag, close sockets, then cancel tasks past the grace period."""
        if not self.running:
            return
        assert self._stop_event is not None
        self._stop_event.set()
        if self._push_adapter is not None:
            await self._push_adapter.stop()
        if self._log_adapter is not None:
            await self._log_adapter.stop()

        tasks, self._tasks = self._tasks, []
        if tasks:
            _done, pending = await asyncio.wait(tasks, timeout=self._stop_grace)
            for task in pending:
                task.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for task, result in zip(tasks, results):
                if isinstance(result, Exception):
                    logger.warning("monitor_task_failed", task=task.get_name(), error=str(result))
        self._push_adapter = None
        self._log_adapter = None
        logger.info(
            "monitor_stopped",
            pending=len(self._queue),
            dropped=self._queue.dropped_count,
        )

    async def aclose(self) -> None:
        """stop() and release clients built by from_settings()."""
        await self.stop()
        for client in self._owned:
            await client.aclose()
        self._owned = []

    async def assess(self, mint: str) -> RiskAssessment:
        """Direct assessment, bypassing the queue; raises InvalidMintError for bad input."""
        return await self._analyzer.assess(mint)

    def trigger_analysis(self, mint: str, platform: Platform = Platform.OTHER) -> bool:
        """Queue a manual assessment; False when the mint is already queued."""
        require_mint(mint)
        event = TokenLaunchEvent(
            mint=mint.strip(), name=UNKNOWN_NAME, symbol=UNKNOWN_SYMBOL, platform=platform
        )
        logger.info("monitor_manual_trigger", mint=short(event.mint))
        return self._queue.enqueue(event)

    async def _on_token(self, event: TokenLaunchEvent) -> None:
        if not self.running:
            return
        if event.mint in self._assessed or event.mint in self._queue:
            logger.debug(
                "monitor_duplicate_token",
                mint=short(event.mint),
                platform=event.platform.value,
                assessed=event.mint in self._assessed,
            )
            return
        event = await self._with_metadata(event)
        if not self.running:
            return
        await self._events.publish(MonitorEvent.NEW_TOKEN, event)
        self._queue.enqueue(event)

    async def _with_metadata(self, event: TokenLaunchEvent) -> TokenLaunchEvent:
        """Fill placeholder name/symbol from the metadata account when it can be read."""
        if event.name != UNKNOWN_NAME or event.symbol != UNKNOWN_SYMBOL:
            return event
        meta = await self._analyzer.describe(event.mint)
        if meta is None:
            return event
        return dataclasses.replace(
            event, name=meta.name or event.name, symbol=meta.symbol or event.symbol
        )

    async def _on_adapter_error(self, exc: Exception) -> None:
        await self._events.publish(MonitorEvent.ERROR, exc)

    async def _process(self, event: TokenLaunchEvent) -> None:
        try:
            assessment = await self._analyzer.assess(event.mint)
        except Exception as e:
            await self._events.publish(MonitorEvent.ERROR, e)
            raise
        self._assessed.add(event.mint)
        if self._stop_event is not None and self._stop_event.is_set():
            logger.debug("monitor_result_discarded", mint=short(event.mint))
            return
        await self._events.publish(MonitorEvent.TOKEN_ASSESSED, assessment)
        if assessment.forkable:
            logger.info(
                "fork_opportunity",
                mint=short(event.mint),
                platform=event.platform.value,
                symbol=event.symbol,
                risk_score=assessment.risk_score,
                risk_level=assessment.risk_level.value,
            )
            await self._events.publish(
                MonitorEvent.FORK_OPPORTUNITY, ForkOpportunity(assessment=assessment, token=event)
            )
