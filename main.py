"""
Main entrypoint: run the token launch monitor, or scan a single mint.

    python main.py                   # monitor until SIGINT/SIGTERM
    python main.py scan <mint>       # full assessment, printed as JSON
    python main.py scan <mint> --quick   # RugCheck-only quick check

Env: SOLANA_RPC_URL (or HELIUS_API_KEY), SOLANA_WS_URL, RUGCHECK_API_URL,
PUMPFUN_WS_URL (optional push feed), LOG_LEVEL, LOG_FORMAT, etc.
See forkoor_sentinel.config.settings for every tunable.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from dataclasses import asdict
from typing import Any

# Configure structured JSON logging before other imports that may log
from forkoor_sentinel.sentinel_logging import get_logger

from forkoor_sentinel.agent_worker import ForkOpportunity, MonitorEvent, TokenMonitor
from forkoor_sentinel.analytics.rugcheck_client import RugCheckClient
from forkoor_sentinel.config import get_settings
from forkoor_sentinel.config.env import mask_url
from forkoor_sentinel.core.exceptions import ConfigError, InvalidMintError

logger = get_logger("main")


def _log_fork_opportunity(opportunity: ForkOpportunity) -> None:
    logger.info(
        "main_fork_opportunity",
        mint=opportunity.token.mint,
        symbol=opportunity.token.symbol,
        platform=opportunity.token.platform.value,
        risk_score=opportunity.assessment.risk_score,
        risk_level=opportunity.assessment.risk_level.value,
        summary=opportunity.assessment.summary,
    )


def _log_adapter_error(exc: Any) -> None:
    logger.warning("main_adapter_error", error=str(exc))


async def run_monitor() -> None:
    settings = get_settings()
    logger.info(
        "main_monitor_config",
        rpc_url=mask_url(settings.solana_rpc_url),
        push_feed=bool(settings.pumpfun_ws_url),
        queue_capacity=settings.queue_capacity,
        watch_raydium_clmm=settings.watch_raydium_clmm,
    )
    monitor = TokenMonitor.from_settings(settings)
    monitor.events.subscribe(MonitorEvent.FORK_OPPORTUNITY, _log_fork_opportunity)
    monitor.events.subscribe(MonitorEvent.ERROR, _log_adapter_error)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _handle_sig(signum: int, frame: Any) -> None:
        sig = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        logger.info("main_shutdown_signal", signal=sig)
        loop.call_soon_threadsafe(stop.set)

    try:
        signal.signal(signal.SIGINT, _handle_sig)
        if hasattr(signal, "SIGTERM"):
            signal.signal(signal.SIGTERM, _handle_sig)
    except (ValueError, OSError):
        # Signal only valid in main thread / not supported on this platform
        pass

    await monitor.start()
    try:
        await stop.wait()
    finally:
        await monitor.aclose()


async def scan(mint: str, quick: bool = False) -> dict[str, Any]:
    """One-off assessment of a mint; returns a JSON-serializable dict."""
    settings = get_settings()
    if quick:
        client = RugCheckClient(
            settings.rugcheck_api_url,
            timeout_sec=settings.rugcheck_timeout_sec,
            min_liquidity_usd=settings.min_liquidity_usd,
            holder_concentration_pct=settings.holder_concentration_pct,
        )
        try:
            return asdict(await client.quick_risk_check(mint))
        finally:
            await client.aclose()
    monitor = TokenMonitor.from_settings(settings)
    try:
        return (await monitor.assess(mint)).to_dict()
    finally:
        await monitor.aclose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Forkoor Sentinel token launch monitor")
    sub = parser.add_subparsers(dest="command")
    scan_parser = sub.add_parser("scan", help="Assess a single mint and print JSON")
    scan_parser.add_argument("mint", help="Token mint address")
    scan_parser.add_argument("--quick", action="store_true", help="RugCheck report only")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.command == "scan":
            result = asyncio.run(scan(args.mint, quick=args.quick))
            print(json.dumps(result, indent=2))
            return 0
        asyncio.run(run_monitor())
    except ConfigError as e:
        logger.error("main_config_error", error=str(e))
        return 2
    except InvalidMintError as e:
        logger.error("main_invalid_mint", error=str(e))
        return 2
    except KeyboardInterrupt:
        logger.info("main_keyboard_interrupt")
    finally:
        logger.info("main_exit")
    return 0


if __name__ == "__main__":
    sys.exit(main())
