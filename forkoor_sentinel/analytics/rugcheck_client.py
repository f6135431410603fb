"""
RugCheck API client: fetch a token report and map it onto RiskFlags.

GET {base_url}/tokens/{mint}/report with a fixed timeout. A 404 means the
token is unknown to RugCheck and yields None; every other failure (HTTP
error, transport error, undecodable body) raises RiskSourceError so the
caller can fall back to on-chain-only assessment.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from forkoor_sentinel.analytics.risk_engine import RiskFlags, calculate_risk_score
from forkoor_sentinel.core.exceptions import RiskSourceError
from forkoor_sentinel.sentinel_logging import get_logger
from forkoor_sentinel.utils.address_utils import short

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.rugcheck.xyz/v1"
DEFAULT_TIMEOUT_SEC = 30.0
DEFAULT_MIN_LIQUIDITY_USD = 5_000.0
DEFAULT_HOLDER_CONCENTRATION_PCT = 50.0
TOP_HOLDER_COUNT = 10
QUICK_CHECK_RISKY_SCORE = 50
USER_AGENT = "ForkoorSentinel/0.1"

HONEYPOT_PATTERN = re.compile(r"honeypot|cannot sell", re.IGNORECASE)
DANGER_LEVEL = "danger"


class _ReportModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RugCheckTokenMeta(_ReportModel):
    name: str | None = None
    symbol: str | None = None
    uri: str | None = None
    mutable: bool | None = None


class RugCheckHolder(_ReportModel):
    address: str | None = None
    pct: float | None = None
    ui_amount: float | None = Field(default=None, alias="uiAmount")


class RugCheckMarket(_ReportModel):
    pubkey: str | None = None
    liquidity_a_usd: float | None = Field(default=None, alias="liquidityAUsd")
    liquidity_b_usd: float | None = Field(default=None, alias="liquidityBUsd")

    @property
    def liquidity_usd(self) -> float:
        return (self.liquidity_a_usd or 0.0) + (self.liquidity_b_usd or 0.0)


class RugCheckRisk(_ReportModel):
    """Individual risk detected by RugCheck; level is info | warn | danger."""

    name: str = ""
    value: str | None = None
    description: str | None = None
    level: str = "info"
    score: float | None = None


class RugCheckReport(_ReportModel):
    """Subset of the RugCheck token report the flag mapping depends on."""

    mint: str | None = None
    token_meta: RugCheckTokenMeta | None = Field(default=None, alias="tokenMeta")
    top_holders: list[RugCheckHolder] | None = Field(default=None, alias="topHolders")
    markets: list[RugCheckMarket] | None = None
    risks: list[RugCheckRisk] | None = None
    score: float | None = None
    mint_authority: str | None = Field(default=None, alias="mintAuthority")
    freeze_authority: str | None = Field(default=None, alias="freezeAuthority")
    lp_locked: bool | None = Field(default=None, alias="lpLocked")
    is_token_2022: bool | None = Field(default=None, alias="isToken2022")


@dataclass(frozen=True)
class QuickRiskCheck:
    """Report-only verdict used by manual/CLI checks."""

    risky: bool
    score: int
    reasons: list[str] = field(default_factory=list)


_QUICK_REASONS = (
    ("mint_authority_active", "Mint authority active"),
    ("freeze_authority_active", "Freeze authority active"),
    ("honeypot", "Honeypot detected"),
    ("metadata_mutable", "Mutable metadata"),
    ("high_holder_concentration", "High holder concentration"),
    ("lp_not_burned", "LP not burned"),
    ("low_liquidity", "Low liquidity"),
)


class RugCheckClient:
    """Async client for the RugCheck report endpoint."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        min_liquidity_usd: float = DEFAULT_MIN_LIQUIDITY_USD,
        holder_concentration_pct: float = DEFAULT_HOLDER_CONCENTRATION_PCT,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not base_url.strip():
            raise ValueError("base_url must be non-empty")
        self._base_url = base_url.strip().rstrip("/")
        self._min_liquidity_usd = min_liquidity_usd
        self._holder_concentration_pct = holder_concentration_pct
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_sec),
            headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
        )
        self._owns_http = http_client is None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def fetch_report(self, mint: str) -> RugCheckReport | None:
        """Return the report, None when RugCheck does not know the token."""
        url = f"{self._base_url}/tokens/{mint}/report"
        logger.debug("rugcheck_fetch", mint=short(mint))
        try:
            resp = await self._http.get(url)
        except httpx.HTTPError as e:
            logger.warning("rugcheck_transport_error", mint=short(mint), error=str(e))
            raise RiskSourceError(f"RugCheck request failed for {mint}: {e}") from e
        if resp.status_code == 404:
            logger.info("rugcheck_not_found", mint=short(mint))
            return None
        if not resp.is_success:
            logger.warning("rugcheck_http_error", mint=short(mint), status_code=resp.status_code)
            raise RiskSourceError(
                f"RugCheck API error {resp.status_code} for {mint}",
                status_code=resp.status_code,
            )
        try:
            payload: Any = resp.json()
            return RugCheckReport.model_validate(payload)
        except (ValueError, ValidationError) as e:
            logger.warning("rugcheck_report_invalid", mint=short(mint), error=str(e))
            raise RiskSourceError(f"RugCheck report for {mint} could not be decoded") from e

    def to_flags(self, report: RugCheckReport) -> RiskFlags:
        """Pure mapping from a report to the engine's flag vocabulary."""
        mint_active = bool(report.mint_authority)
        freeze_active = bool(report.freeze_authority)
        metadata_mutable = bool(report.token_meta and report.token_meta.mutable)

        high_concentration = False
        if report.top_holders:
            top_pct = sum(h.pct or 0.0 for h in report.top_holders[:TOP_HOLDER_COUNT])
            high_concentration = top_pct > self._holder_concentration_pct

        lp_not_burned = report.lp_locked is not True

        low_liquidity = False
        if report.markets is not None:
            total_usd = sum(m.liquidity_usd for m in report.markets)
            low_liquidity = total_usd < self._min_liquidity_usd

        honeypot = any(
            r.level == DANGER_LEVEL and HONEYPOT_PATTERN.search(r.name)
            for r in report.risks or []
        )

        return RiskFlags(
            mint_authority_active=mint_active,
            freeze_authority_active=freeze_active,
            metadata_mutable=metadata_mutable,
            high_holder_concentration=high_concentration,
            lp_not_burned=lp_not_burned,
            low_liquidity=low_liquidity,
            honeypot=honeypot,
        )

    async def quick_risk_check(self, mint: str) -> QuickRiskCheck:
        """Report-only check; a token RugCheck does not know is treated as risky."""
        report = await self.fetch_report(mint)
        if report is None:
            return QuickRiskCheck(risky=True, score=100, reasons=["Token not found in RugCheck"])
        flags = self.to_flags(report)
        values = flags.to_dict()
        reasons = [text for name, text in _QUICK_REASONS if values[name]]
        score = calculate_risk_score(flags)
        return QuickRiskCheck(risky=score >= QUICK_CHECK_RISKY_SCORE, score=score, reasons=reasons)
