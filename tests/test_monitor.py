"""
Tests for TokenMonitor: lifecycle, event fan-out and the assessment path.

The analyzer is an AsyncMock; RPC logs_subscribe blocks until the stop
event is set, so start()/stop() run real tasks without network access.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from forkoor_sentinel.agent_worker.events import ForkOpportunity, MonitorEvent
from forkoor_sentinel.agent_worker.monitor import TokenMonitor
from forkoor_sentinel.analytics.onchain_verifier import TokenMetadata
from forkoor_sentinel.analytics.risk_engine import RiskFlags, build_assessment
from forkoor_sentinel.config import Settings
from forkoor_sentinel.core.exceptions import InvalidMintError
from forkoor_sentinel.ingestion.log_subscription import RAYDIUM_CLMM_PROGRAM, UNKNOWN_NAME, UNKNOWN_SYMBOL
from forkoor_sentinel.solana_listener.models import Platform, TokenLaunchEvent
from forkoor_sentinel.solana_listener.request_gate import RequestGate

MINT = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
OTHER_MINT = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"


def _rpc() -> MagicMock:
    async def logs_subscribe(program_id, on_logs, stop_event):
        await stop_event.wait()

    rpc = MagicMock()
    rpc.logs_subscribe = logs_subscribe
    rpc.close_subscriptions = AsyncMock()
    return rpc


def _analyzer(flags: RiskFlags) -> MagicMock:
    analyzer = MagicMock()
    analyzer.assess = AsyncMock(side_effect=lambda mint: build_assessment(mint, flags))
    analyzer.describe = AsyncMock(return_value=None)
    return analyzer


def _monitor(analyzer, **kwargs) -> TokenMonitor:
    kwargs.setdefault("delivery_interval_sec", 0.01)
    return TokenMonitor(analyzer, _rpc(), RequestGate(min_delay_sec=0.0), **kwargs)


def _event(mint: str = MINT) -> TokenLaunchEvent:
    return TokenLaunchEvent(mint=mint, name="Forkable", symbol="FRK", platform=Platform.PUMPFUN)


def test_stop_before_start_is_noop():
    """stop() on a never-started monitor does nothing."""
    monitor = _monitor(_analyzer(RiskFlags()))
    asyncio.run(monitor.stop())
    assert monitor.running is False


def test_start_and_stop_are_idempotent():
    """Double start spawns one set of tasks; double stop is safe."""
    monitor = _monitor(_analyzer(RiskFlags()))

    async def run():
        await monitor.start()
        await monitor.start()
        assert monitor.running is True
        await monitor.stop()
        await monitor.stop()

    asyncio.run(run())
    assert monitor.running is False


def test_new_token_is_published_and_forkable_assessment_emitted():
    """Adapter event -> NEW_TOKEN -> queue -> TOKEN_ASSESSED + FORK_OPPORTUNITY."""
    monitor = _monitor(_analyzer(RiskFlags(mint_authority_active=True)))
    new_tokens: list[TokenLaunchEvent] = []
    assessed = []
    opportunities: list[ForkOpportunity] = []
    monitor.events.subscribe(MonitorEvent.NEW_TOKEN, new_tokens.append)
    monitor.events.subscribe(MonitorEvent.TOKEN_ASSESSED, assessed.append)
    monitor.events.subscribe(MonitorEvent.FORK_OPPORTUNITY, opportunities.append)

    async def run():
        await monitor.start()
        await monitor._on_token(_event())
        for _ in range(100):
            if opportunities:
                break
            await asyncio.sleep(0.01)
        await monitor.stop()

    asyncio.run(run())
    assert [e.mint for e in new_tokens] == [MINT]
    assert len(assessed) == 1
    assert len(opportunities) == 1
    assert opportunities[0].token.mint == MINT
    assert opportunities[0].assessment.risk_score == 35


def test_mint_reported_twice_is_assessed_once():
    """A second source reporting an assessed mint yields no new NEW_TOKEN or opportunity."""
    analyzer = _analyzer(RiskFlags(mint_authority_active=True))
    monitor = _monitor(analyzer)
    new_tokens: list[TokenLaunchEvent] = []
    opportunities: list[ForkOpportunity] = []
    monitor.events.subscribe(MonitorEvent.NEW_TOKEN, new_tokens.append)
    monitor.events.subscribe(MonitorEvent.FORK_OPPORTUNITY, opportunities.append)

    async def run():
        await monitor.start()
        await monitor._on_token(_event())
        for _ in range(100):
            if opportunities:
                break
            await asyncio.sleep(0.01)
        # Same pump.fun mint arriving from the log subscription
        await monitor._on_token(_event())
        await asyncio.sleep(0.05)
        await monitor.stop()

    asyncio.run(run())
    assert len(new_tokens) == 1
    assert len(opportunities) == 1
    analyzer.assess.assert_awaited_once_with(MINT)
    assert len(monitor.queue) == 0


def test_pending_mint_is_not_announced_twice():
    """While a mint waits in the queue, a duplicate report is ignored."""
    monitor = _monitor(_analyzer(RiskFlags()), delivery_interval_sec=60.0)
    new_tokens: list[TokenLaunchEvent] = []
    monitor.events.subscribe(MonitorEvent.NEW_TOKEN, new_tokens.append)

    async def run():
        await monitor.start()
        monitor.queue.enqueue(_event())
        await monitor._on_token(_event())
        await monitor.stop()

    asyncio.run(run())
    assert new_tokens == []


def test_placeholder_names_filled_from_metadata():
    """Log-subscription events get name and symbol from the metadata account."""
    analyzer = _analyzer(RiskFlags())
    analyzer.describe = AsyncMock(
        return_value=TokenMetadata(
            name="Forkable",
            symbol="FRK",
            uri="https://meta.example/frk.json",
            seller_fee_basis_points=0,
            is_mutable=True,
            update_authority=OTHER_MINT,
        )
    )
    monitor = _monitor(analyzer)
    new_tokens: list[TokenLaunchEvent] = []
    monitor.events.subscribe(MonitorEvent.NEW_TOKEN, new_tokens.append)
    placeholder = TokenLaunchEvent(
        mint=MINT, name=UNKNOWN_NAME, symbol=UNKNOWN_SYMBOL, platform=Platform.RAYDIUM
    )

    async def run():
        await monitor.start()
        await monitor._on_token(placeholder)
        await monitor._on_token(_event(OTHER_MINT))
        await monitor.stop()

    asyncio.run(run())
    assert [(e.name, e.symbol) for e in new_tokens] == [("Forkable", "FRK"), ("Forkable", "FRK")]
    assert new_tokens[0].platform == Platform.RAYDIUM
    analyzer.describe.assert_awaited_once_with(MINT)


def test_clean_token_is_not_an_opportunity():
    """LOW-risk assessments are published as assessed only."""
    monitor = _monitor(_analyzer(RiskFlags()))
    assessed = []
    opportunities = []
    monitor.events.subscribe(MonitorEvent.TOKEN_ASSESSED, assessed.append)
    monitor.events.subscribe(MonitorEvent.FORK_OPPORTUNITY, opportunities.append)
    asyncio.run(monitor._process(_event()))
    assert len(assessed) == 1
    assert opportunities == []


def test_analyzer_failure_publishes_error():
    """An exception during assessment reaches ERROR subscribers and the queue's log."""
    analyzer = MagicMock()
    analyzer.assess = AsyncMock(side_effect=RuntimeError("rpc down"))
    monitor = _monitor(analyzer)
    errors = []
    monitor.events.subscribe(MonitorEvent.ERROR, errors.append)
    with pytest.raises(RuntimeError):
        asyncio.run(monitor._process(_event()))
    assert len(errors) == 1


def test_events_ignored_when_not_running():
    """Adapter callbacks arriving after stop are dropped."""
    monitor = _monitor(_analyzer(RiskFlags()))
    seen = []
    monitor.events.subscribe(MonitorEvent.NEW_TOKEN, seen.append)
    asyncio.run(monitor._on_token(_event()))
    assert seen == []
    assert len(monitor.queue) == 0


def test_trigger_analysis_enqueues_and_dedups():
    """Manual trigger admits a mint once while it is pending."""
    monitor = _monitor(_analyzer(RiskFlags()))
    assert monitor.trigger_analysis(MINT) is True
    assert monitor.trigger_analysis(MINT) is False
    assert monitor.trigger_analysis(OTHER_MINT) is True
    assert [e.platform for e in monitor.queue.pending()] == [Platform.OTHER, Platform.OTHER]


def test_trigger_analysis_rejects_bad_mint():
    """Invalid mint identity raises before touching the queue."""
    monitor = _monitor(_analyzer(RiskFlags()))
    with pytest.raises(InvalidMintError):
        monitor.trigger_analysis("bogus")


def test_assess_delegates_to_analyzer():
    """Direct assess bypasses the queue."""
    analyzer = _analyzer(RiskFlags(honeypot=True))
    monitor = _monitor(analyzer)
    assessment = asyncio.run(monitor.assess(MINT))
    assert assessment.risk_score == 40
    analyzer.assess.assert_awaited_once_with(MINT)
    assert len(monitor.queue) == 0


def test_from_settings_builds_pipeline():
    """from_settings wires thresholds, queue capacity and optional CLMM watching."""
    settings = Settings(queue_capacity=3, watch_raydium_clmm=True, risk_threshold_low=20)
    monitor = TokenMonitor.from_settings(settings)
    assert monitor.queue.capacity == 3
    assert RAYDIUM_CLMM_PROGRAM in monitor._programs
    assert monitor._analyzer.thresholds.low == 20
    asyncio.run(monitor.aclose())
