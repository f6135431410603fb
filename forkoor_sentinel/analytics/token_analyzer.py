"""
Token analyzer: combine the RugCheck report with on-chain verification into a
RiskAssessment.

Flow per mint:
1. RugCheck report -> initial flags (skipped when unknown or unreachable).
2. On-chain flags (authorities, metadata mutability); each flag read here
   overrides the report's value.
3. Without a report, an on-chain holder-concentration check completes the
   flag set.
4. Score, level, summary and forkability come from risk_engine.

Data problems never abort an assessment: the affected flags stay at their
prior value. Only an invalid mint raises (InvalidMintError).
"""

from __future__ import annotations

from forkoor_sentinel.analytics.onchain_verifier import OnChainVerifier, TokenMetadata
from forkoor_sentinel.analytics.risk_engine import (
    RiskAssessment,
    RiskFlags,
    RiskThresholds,
    build_assessment,
)
from forkoor_sentinel.analytics.rugcheck_client import RugCheckClient
from forkoor_sentinel.core.exceptions import RiskSourceError
from forkoor_sentinel.sentinel_logging import bind_mint
from forkoor_sentinel.utils.address_utils import require_mint

SOURCE_RUGCHECK = "rugcheck"
SOURCE_ONCHAIN = "onchain"


class TokenAnalyzer:
    def __init__(
        self,
        rugcheck: RugCheckClient,
        verifier: OnChainVerifier,
        *,
        thresholds: RiskThresholds | None = None,
        corroborate_holders: bool = False,
    ) -> None:
        self._rugcheck = rugcheck
        self._verifier = verifier
        self._thresholds = thresholds or RiskThresholds()
        self._corroborate_holders = corroborate_holders

    @property
    def thresholds(self) -> RiskThresholds:
        return self._thresholds

    async def describe(self, mint: str) -> TokenMetadata | None:
        """Display name and symbol from the metadata account; None when unavailable."""
        return await self._verifier.read_token_metadata(mint, with_decimals=False)

    async def assess(self, mint: str) -> RiskAssessment:
        """Full assessment of one mint. Raises InvalidMintError for a malformed address."""
        mint = mint.strip() if isinstance(mint, str) else mint
        require_mint(mint)
        log = bind_mint(mint)
        log.info("analyzer_assess_start")

        flags = RiskFlags()
        sources: list[str] = []

        report = None
        try:
            report = await self._rugcheck.fetch_report(mint)
        except RiskSourceError as e:
            log.warning("analyzer_rugcheck_unavailable", error=str(e), status_code=e.status_code)
        except Exception as e:
            log.exception("analyzer_rugcheck_failed", error=str(e))
        if report is not None:
            flags = self._rugcheck.to_flags(report)
            sources.append(SOURCE_RUGCHECK)

        overrides: dict[str, bool] = {}
        try:
            overrides = await self._verifier.on_chain_flags(
                mint, include_holders=report is None or self._corroborate_holders
            )
        except Exception as e:
            log.exception("analyzer_onchain_failed", error=str(e))

        if overrides:
            flags = flags.merged_with(overrides)
            sources.append(SOURCE_ONCHAIN)

        assessment = build_assessment(
            mint, flags, thresholds=self._thresholds, sources=tuple(sources)
        )
        log.info(
            "analyzer_assess_done",
            risk_score=assessment.risk_score,
            risk_level=assessment.risk_level.value,
            forkable=assessment.forkable,
            sources=list(assessment.sources),
        )
        return assessment
