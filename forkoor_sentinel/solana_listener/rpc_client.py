"""
Solana on-chain reader: JSON-RPC over HTTP (httpx) and log subscriptions
over WebSocket (websockets).

Responsibilities:
- getAccountInfo / getTransaction (jsonParsed) / getTokenLargestAccounts.
- Mint state for a given token program (SPL Token or Token-2022), raising
  the same owner/not-found errors a strict client-side decoder would.
- logsSubscribe per program with auto-reconnect and exponential backoff;
  notifications are handed to an async callback without blocking the socket.
- Map provider throttling (HTTP 429, RPC error code 429) to RpcRateLimitError
  so the request gate can cool down and retry.
"""

from __future__ import annotations

import asyncio
import base64
import json
from typing import Any, Awaitable, Callable

import httpx
import websockets
from websockets.exceptions import ConnectionClosed

from forkoor_sentinel.core.exceptions import (
    AccountNotFoundError,
    InvalidAccountOwnerError,
    RpcError,
    RpcRateLimitError,
)
from forkoor_sentinel.sentinel_logging import get_logger
from forkoor_sentinel.solana_listener.models import (
    AccountInfo,
    LogsNotification,
    MintInfo,
    TokenAccountBalance,
)
from forkoor_sentinel.utils.address_utils import short

logger = get_logger(__name__)

TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"

DEFAULT_COMMITMENT = "confirmed"
DEFAULT_TIMEOUT_SEC = 30.0
DEFAULT_WS_PING_INTERVAL = 30.0
DEFAULT_WS_PING_TIMEOUT = 10.0
DEFAULT_RECONNECT_MIN_SEC = 1.0
DEFAULT_RECONNECT_MAX_SEC = 60.0
_WS_CLOSE_TIMEOUT = 5.0

LogsCallback = Callable[[LogsNotification], Awaitable[None]]


def _raise_for_rpc_error(err: Any) -> None:
    if isinstance(err, dict):
        code = err.get("code")
        message = str(err.get("message", err))
    else:
        code = None
        message = str(err)
    if code == 429 or "429" in message or "too many requests" in message.lower():
        raise RpcRateLimitError(f"Solana RPC rate limited: {message}", code=code)
    raise RpcError(f"Solana RPC error: {message} (code={code})", code=code)


def _decode_account_data(data: Any) -> bytes:
    """Normalize getAccountInfo data (["<b64>", "base64"]) to bytes."""
    if isinstance(data, list) and data and isinstance(data[0], str):
        encoding = data[1] if len(data) > 1 else "base64"
        if encoding != "base64":
            raise RpcError(f"Unsupported account data encoding: {encoding}")
        return base64.b64decode(data[0])
    if isinstance(data, str):
        return base64.b64decode(data)
    raise RpcError(f"Unexpected account data shape: {type(data).__name__}")


class SolanaRpcClient:
    """
    Async Solana reader used by the log adapter and on-chain verifier.

    One httpx.AsyncClient is shared for all HTTP calls; each logs_subscribe()
    owns its own websocket connection.
    """

    def __init__(
        self,
        rpc_url: str,
        ws_url: str | None = None,
        *,
        commitment: str = DEFAULT_COMMITMENT,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        http_client: httpx.AsyncClient | None = None,
        ws_ping_interval: float | None = DEFAULT_WS_PING_INTERVAL,
        ws_ping_timeout: float | None = DEFAULT_WS_PING_TIMEOUT,
        reconnect_min_sec: float = DEFAULT_RECONNECT_MIN_SEC,
        reconnect_max_sec: float = DEFAULT_RECONNECT_MAX_SEC,
    ) -> None:
        if not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        self._rpc_url = rpc_url.strip().rstrip("/")
        self._ws_url = (ws_url or "").strip() or None
        self._commitment = commitment
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_sec))
        self._owns_http = http_client is None
        self._ws_ping_interval = ws_ping_interval
        self._ws_ping_timeout = ws_ping_timeout
        self._reconnect_min = reconnect_min_sec
        self._reconnect_max = reconnect_max_sec
        self._next_rpc_id = 0
        self._sockets: set[Any] = set()
        self._callback_tasks: set[asyncio.Task[None]] = set()

    def _next_id(self) -> int:
        self._next_rpc_id += 1
        return self._next_rpc_id

    async def call(self, method: str, params: list[Any]) -> Any:
        """Perform one JSON-RPC call; return result or raise RpcError/RpcRateLimitError."""
        body = {"jsonrpc": "2.0", "id": self._next_id(), "method": method, "params": params}
        try:
            resp = await self._http.post(self._rpc_url, json=body)
        except httpx.TransportError as e:
            raise RpcError(f"Solana RPC transport error on {method}: {e}") from e
        if resp.status_code == 429:
            raise RpcRateLimitError(f"Solana RPC rate limited on {method} (HTTP 429)", code=429)
        if resp.status_code >= 400:
            raise RpcError(
                f"Solana RPC HTTP {resp.status_code} on {method}", code=resp.status_code
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise RpcError(f"Solana RPC returned non-JSON body on {method}") from e
        if "error" in data:
            _raise_for_rpc_error(data["error"])
        return data.get("result")

    async def _get_account_value(self, address: str, encoding: str) -> dict[str, Any] | None:
        result = await self.call(
            "getAccountInfo",
            [address, {"encoding": encoding, "commitment": self._commitment}],
        )
        if not isinstance(result, dict):
            return None
        value = result.get("value")
        return value if isinstance(value, dict) else None

    async def get_account_info(self, address: str) -> AccountInfo | None:
        """Raw account bytes; None when the account does not exist."""
        value = await self._get_account_value(address, "base64")
        if value is None:
            return None
        return AccountInfo(
            address=address,
            owner=str(value.get("owner") or ""),
            lamports=int(value.get("lamports") or 0),
            data=_decode_account_data(value.get("data")),
            executable=bool(value.get("executable")),
        )

    async def get_mint_info(self, mint: str, program_id: str = TOKEN_PROGRAM_ID) -> MintInfo:
        """
        Mint state owned by program_id.

        Raises AccountNotFoundError when the account is missing and
        InvalidAccountOwnerError when another program owns it or it is not a mint.
        """
        value = await self._get_account_value(mint, "jsonParsed")
        if value is None:
            raise AccountNotFoundError(f"Mint account not found: {mint}")
        owner = str(value.get("owner") or "")
        if owner != program_id:
            raise InvalidAccountOwnerError(
                f"Mint {mint} owned by {owner or 'unknown'}, expected {program_id}"
            )
        data = value.get("data")
        parsed = data.get("parsed") if isinstance(data, dict) else None
        if not isinstance(parsed, dict) or parsed.get("type") != "mint":
            raise InvalidAccountOwnerError(f"Account {mint} is not a token mint")
        info = parsed.get("info") or {}
        return MintInfo(
            address=mint,
            program_id=program_id,
            supply=int(info.get("supply") or 0),
            decimals=int(info.get("decimals") or 0),
            mint_authority=info.get("mintAuthority") or None,
            freeze_authority=info.get("freezeAuthority") or None,
            is_initialized=bool(info.get("isInitialized", True)),
        )

    async def get_parsed_transaction(self, signature: str) -> dict[str, Any] | None:
        """getTransaction with jsonParsed encoding; None if not (yet) available."""
        result = await self.call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": self._commitment,
                },
            ],
        )
        return result if isinstance(result, dict) else None

    async def get_token_largest_accounts(self, mint: str) -> list[TokenAccountBalance]:
        """Largest token accounts for a mint (RPC returns at most 20), largest first."""
        result = await self.call(
            "getTokenLargestAccounts", [mint, {"commitment": self._commitment}]
        )
        items = (result or {}).get("value") if isinstance(result, dict) else None
        balances: list[TokenAccountBalance] = []
        for item in items or []:
            try:
                balances.append(TokenAccountBalance.from_rpc_item(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("rpc_largest_account_skipped", mint=short(mint), error=str(e))
        return balances

    async def logs_subscribe(
        self,
        program_id: str,
        on_logs: LogsCallback,
        stop: asyncio.Event,
    ) -> None:
        """
        Stream logsNotification for transactions mentioning program_id until stop is set.

        Each notification is dispatched to on_logs in its own task so slow
        handlers never stall the socket. Reconnects with exponential backoff.
        """
        if not self._ws_url:
            raise ValueError("ws_url is required for log subscriptions")
        backoff = self._reconnect_min
        while not stop.is_set():
            try:
                async with websockets.connect(
                    self._ws_url,
                    ping_interval=self._ws_ping_interval,
                    ping_timeout=self._ws_ping_timeout,
                    close_timeout=_WS_CLOSE_TIMEOUT,
                ) as ws:
                    self._sockets.add(ws)
                    try:
                        await ws.send(json.dumps({
                            "jsonrpc": "2.0",
                            "id": self._next_id(),
                            "method": "logsSubscribe",
                            "params": [{"mentions": [program_id]}, {"commitment": self._commitment}],
                        }))
                        backoff = self._reconnect_min
                        logger.info("logs_subscribe_connected", program_id=short(program_id))
                        await self._receive_logs(ws, program_id, on_logs, stop)
                    finally:
                        self._sockets.discard(ws)
            except asyncio.CancelledError:
                raise
            except ConnectionClosed as e:
                logger.warning(
                    "logs_subscribe_disconnected",
                    program_id=short(program_id),
                    code=getattr(e.rcvd, "code", None),
                )
            except Exception as e:
                logger.exception("logs_subscribe_error", program_id=short(program_id), error=str(e))

            if stop.is_set():
                break
            logger.info("logs_subscribe_reconnect", program_id=short(program_id), backoff_sec=round(backoff, 1))
            try:
                await asyncio.wait_for(stop.wait(), timeout=backoff)
            except asyncio.TimeoutError:
                pass
            backoff = min(backoff * 2, self._reconnect_max)
        logger.info("logs_subscribe_stopped", program_id=short(program_id))

    async def _receive_logs(
        self,
        ws: Any,
        program_id: str,
        on_logs: LogsCallback,
        stop: asyncio.Event,
    ) -> None:
        async for raw in ws:
            if stop.is_set():
                return
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug("logs_subscribe_bad_frame", program_id=short(program_id))
                continue
            if not isinstance(msg, dict):
                logger.debug("logs_subscribe_bad_frame", program_id=short(program_id), frame_type=type(msg).__name__)
                continue
            if msg.get("method") != "logsNotification":
                if isinstance(msg.get("result"), int):
                    logger.info(
                        "logs_subscribe_confirmed",
                        program_id=short(program_id),
                        subscription_id=msg["result"],
                    )
                elif "error" in msg:
                    logger.warning("logs_subscribe_rejected", program_id=short(program_id), error=str(msg["error"]))
                continue
            try:
                notification = LogsNotification.from_rpc_result(msg["params"]["result"])
            except (KeyError, TypeError, AttributeError) as e:
                logger.debug("logs_notification_invalid", program_id=short(program_id), error=str(e))
                continue
            self._spawn(on_logs(notification))

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._callback_tasks.add(task)
        task.add_done_callback(self._on_callback_done)

    def _on_callback_done(self, task: asyncio.Task[None]) -> None:
        self._callback_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("logs_callback_failed", error=str(exc))

    async def close_subscriptions(self) -> None:
        """Close every open log-subscription socket (receive loops then observe stop)."""
        for ws in list(self._sockets):
            try:
                await ws.close()
            except Exception as e:
                logger.debug("logs_subscribe_close_failed", error=str(e))
        self._sockets.clear()

    async def aclose(self) -> None:
        """Close sockets, drop pending callbacks and release the HTTP client."""
        await self.close_subscriptions()
        for task in list(self._callback_tasks):
            task.cancel()
        self._callback_tasks.clear()
        if self._owns_http:
            await self._http.aclose()
