"""
Risk engine: weighted 0-100 risk score, level, summary and forkability.

Everything here is a pure function of RiskFlags (plus thresholds). The score
adds a fixed weight per true flag and clamps to 100; unrestricted supply
inflation (mint authority) and inability to sell (honeypot) weigh the most.
A token is forkable when its level is above LOW and it has at least one flaw a
corrected redeploy fixes: active mint authority, active freeze authority, or
honeypot logic.
"""

from __future__ import annotations

import enum
import time
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Mapping

from forkoor_sentinel.sentinel_logging import get_logger

logger = get_logger(__name__)

MAX_RISK_SCORE = 100

FLAG_MINT_AUTHORITY = "mint_authority_active"
FLAG_FREEZE_AUTHORITY = "freeze_authority_active"
FLAG_METADATA_MUTABLE = "metadata_mutable"
FLAG_HIGH_HOLDER_CONCENTRATION = "high_holder_concentration"
FLAG_LP_NOT_BURNED = "lp_not_burned"
FLAG_LOW_LIQUIDITY = "low_liquidity"
FLAG_HONEYPOT = "honeypot"

FLAG_WEIGHTS: dict[str, int] = {
    FLAG_MINT_AUTHORITY: 35,
    FLAG_FREEZE_AUTHORITY: 25,
    FLAG_HONEYPOT: 40,
    FLAG_METADATA_MUTABLE: 10,
    FLAG_HIGH_HOLDER_CONCENTRATION: 15,
    FLAG_LP_NOT_BURNED: 10,
    FLAG_LOW_LIQUIDITY: 5,
}

# Summary order: critical flaws first, then structural ones
FLAG_SENTENCES: tuple[tuple[str, str], ...] = (
    (FLAG_MINT_AUTHORITY, "MINT AUTHORITY ACTIVE - Developer can print unlimited tokens"),
    (FLAG_FREEZE_AUTHORITY, "FREEZE AUTHORITY ACTIVE - Developer can freeze any wallet"),
    (FLAG_HONEYPOT, "HONEYPOT DETECTED - Selling is restricted or impossible"),
    (FLAG_METADATA_MUTABLE, "Metadata is mutable - Token identity can be changed"),
    (FLAG_HIGH_HOLDER_CONCENTRATION, "High holder concentration - Whale dump risk"),
    (FLAG_LP_NOT_BURNED, "LP tokens not burned - Liquidity can be pulled"),
    (FLAG_LOW_LIQUIDITY, "Low liquidity - High slippage risk"),
)
NO_RISK_SENTENCE = "No significant risks detected"

FORKABLE_FLAGS = (FLAG_MINT_AUTHORITY, FLAG_FREEZE_AUTHORITY, FLAG_HONEYPOT)
REASON_LOW_RISK = "Token is low risk - no need to fork"
REASON_NO_CRITICAL_FLAW = "No critical flaws that can be fixed via fork"


class RiskLevel(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class RiskThresholds:
    """Ascending score cut-offs: score < low -> LOW, < medium -> MEDIUM, < high -> HIGH."""

    low: int = 25
    medium: int = 50
    high: int = 75


@dataclass(frozen=True)
class RiskFlags:
    """
    Fully resolved rug-vector flags. Unknown signals are False.

    Produced by merging the third-party report with on-chain verification;
    on-chain values win on conflict (see merged_with).
    """

    mint_authority_active: bool = False
    freeze_authority_active: bool = False
    metadata_mutable: bool = False
    high_holder_concentration: bool = False
    lp_not_burned: bool = False
    low_liquidity: bool = False
    honeypot: bool = False

    @classmethod
    def flag_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def merged_with(self, overrides: Mapping[str, bool]) -> "RiskFlags":
        """Return a copy where every flag present in overrides replaces this value."""
        known = set(self.flag_names())
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown risk flags: {sorted(unknown)}")
        values = self.to_dict()
        values.update({k: bool(v) for k, v in overrides.items()})
        return RiskFlags(**values)

    def active(self) -> list[str]:
        """Names of flags that are True, in declaration order."""
        return [name for name, value in self.to_dict().items() if value]

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


@dataclass(frozen=True)
class ForkabilityDecision:
    forkable: bool
    reason: str | None = None


@dataclass(frozen=True)
class RiskAssessment:
    """Immutable snapshot of one assessment; built fresh on every assess() call."""

    mint: str
    risk_score: int
    risk_level: RiskLevel
    flags: RiskFlags
    summary: str
    forkable: bool
    forkable_reason: str | None = None
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))
    sources: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "mint": self.mint,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level.value,
            "flags": self.flags.to_dict(),
            "summary": self.summary,
            "forkable": self.forkable,
            "forkable_reason": self.forkable_reason,
            "timestamp": self.timestamp,
            "sources": list(self.sources),
        }


def calculate_risk_score(flags: RiskFlags) -> int:
    """Sum the weight of every true flag, clamped to MAX_RISK_SCORE."""
    score = sum(FLAG_WEIGHTS[name] for name in flags.active())
    return min(MAX_RISK_SCORE, score)


def get_risk_level(score: int, thresholds: RiskThresholds | None = None) -> RiskLevel:
    t = thresholds or RiskThresholds()
    if score < t.low:
        return RiskLevel.LOW
    if score < t.medium:
        return RiskLevel.MEDIUM
    if score < t.high:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


def generate_risk_summary(flags: RiskFlags) -> str:
    """One fixed sentence per true flag (newline-joined), or NO_RISK_SENTENCE."""
    values = flags.to_dict()
    issues = [sentence for name, sentence in FLAG_SENTENCES if values[name]]
    if not issues:
        return NO_RISK_SENTENCE
    return "\n".join(issues)


def evaluate_forkability(level: RiskLevel, flags: RiskFlags) -> ForkabilityDecision:
    """Forkable only above LOW and with a mint/freeze authority or honeypot flaw."""
    if level == RiskLevel.LOW:
        return ForkabilityDecision(False, REASON_LOW_RISK)
    values = flags.to_dict()
    if not any(values[name] for name in FORKABLE_FLAGS):
        return ForkabilityDecision(False, REASON_NO_CRITICAL_FLAW)
    return ForkabilityDecision(True)


def build_assessment(
    mint: str,
    flags: RiskFlags,
    *,
    thresholds: RiskThresholds | None = None,
    sources: tuple[str, ...] = (),
    timestamp_ms: int | None = None,
) -> RiskAssessment:
    """Score, classify, summarize and decide forkability for a resolved flag set."""
    score = calculate_risk_score(flags)
    level = get_risk_level(score, thresholds)
    decision = evaluate_forkability(level, flags)
    assessment = RiskAssessment(
        mint=mint,
        risk_score=score,
        risk_level=level,
        flags=flags,
        summary=generate_risk_summary(flags),
        forkable=decision.forkable,
        forkable_reason=decision.reason,
        timestamp=timestamp_ms if timestamp_ms is not None else int(time.time() * 1000),
        sources=sources,
    )
    logger.debug(
        "risk_engine_result",
        mint=mint,
        risk_score=score,
        risk_level=level.value,
        flags=flags.active(),
        forkable=decision.forkable,
    )
    return assessment
