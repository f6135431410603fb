"""
pump.fun push-feed adapter: WebSocket → validate frame → TokenLaunchEvent → sink.

Connects, sends the subscribeNewToken message, and forwards every newToken
frame to the on_token sink. Malformed frames are logged and dropped. When the
socket drops (or fails to connect) the adapter reports the error and, while
still running, reconnects after a fixed delay.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed

from forkoor_sentinel.core.exceptions import FeedMessageError
from forkoor_sentinel.ingestion.schemas import SUBSCRIBE_NEW_TOKEN, parse_feed_message
from forkoor_sentinel.sentinel_logging import get_logger
from forkoor_sentinel.solana_listener.models import TokenLaunchEvent
from forkoor_sentinel.utils.address_utils import short

logger = get_logger(__name__)

DEFAULT_RECONNECT_DELAY_SEC = 5.0
_WS_CLOSE_TIMEOUT = 5.0

TokenSink = Callable[[TokenLaunchEvent], Awaitable[None]]
ErrorSink = Callable[[Exception], Awaitable[None]]


class PushFeedAdapter:
    """Persistent vendor feed subscription with fixed-delay reconnect."""

    def __init__(
        self,
        url: str,
        on_token: TokenSink,
        *,
        on_error: ErrorSink | None = None,
        reconnect_delay_sec: float = DEFAULT_RECONNECT_DELAY_SEC,
        subscribe_message: dict[str, Any] | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        if not url.strip():
            raise ValueError("url must be non-empty")
        if reconnect_delay_sec < 0:
            raise ValueError("reconnect_delay_sec must be >= 0")
        self._url = url.strip()
        self._on_token = on_token
        self._on_error = on_error
        self._reconnect_delay = reconnect_delay_sec
        self._subscribe_message = subscribe_message or SUBSCRIBE_NEW_TOKEN
        self._stop = stop_event or asyncio.Event()
        self._ws: Any = None
        self.events_emitted = 0
        self.frames_dropped = 0

    @property
    def running(self) -> bool:
        return not self._stop.is_set()

    async def run(self) -> None:
        """Connect/receive/reconnect until stop() is called."""
        run_id = 0
        while not self._stop.is_set():
            run_id += 1
            try:
                logger.info("push_feed_connecting", run_id=run_id, url=self._url)
                async with websockets.connect(self._url, close_timeout=_WS_CLOSE_TIMEOUT) as ws:
                    self._ws = ws
                    await ws.send(json.dumps(self._subscribe_message))
                    logger.info("push_feed_connected", run_id=run_id)
                    await self._receive_loop(ws)
                    logger.warning("push_feed_disconnected", run_id=run_id)
            except asyncio.CancelledError:
                raise
            except ConnectionClosed as e:
                logger.warning(
                    "push_feed_disconnected",
                    run_id=run_id,
                    code=getattr(e.rcvd, "code", None),
                )
                await self._report(e)
            except Exception as e:
                logger.warning("push_feed_error", run_id=run_id, error=str(e))
                await self._report(e)
            finally:
                self._ws = None

            if self._stop.is_set():
                break
            logger.info("push_feed_reconnect", run_id=run_id, delay_sec=self._reconnect_delay)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._reconnect_delay)
            except asyncio.TimeoutError:
                pass
        logger.info("push_feed_stopped", run_id=run_id)

    async def stop(self) -> None:
        """Flip the running flag and close the socket so the receive loop ends."""
        self._stop.set()
        ws = self._ws
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.debug("push_feed_close_failed", error=str(e))

    async def _receive_loop(self, ws: Any) -> None:
        async for raw in ws:
            if self._stop.is_set():
                return
            await self.handle_frame(raw)

    async def handle_frame(self, raw: str | bytes) -> TokenLaunchEvent | None:
        """Parse one frame and forward it; never raises for bad input or sink failures."""
        try:
            event = parse_feed_message(raw)
        except FeedMessageError as e:
            self.frames_dropped += 1
            logger.warning("push_feed_message_invalid", error=str(e))
            return None
        if event is None:
            return None
        logger.info(
            "push_feed_new_token",
            mint=short(event.mint),
            symbol=event.symbol,
            initial_liquidity=event.initial_liquidity,
        )
        try:
            await self._on_token(event)
        except Exception as e:
            logger.exception("push_feed_sink_failed", mint=short(event.mint), error=str(e))
            return None
        self.events_emitted += 1
        return event

    async def _report(self, exc: Exception) -> None:
        if self._on_error is None:
            return
        try:
            await self._on_error(exc)
        except Exception as e:
            logger.warning("push_feed_error_sink_failed", error=str(e))
