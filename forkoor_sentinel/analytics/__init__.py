"""
Risk analytics: RugCheck report mapping, on-chain verification, weighted
risk scoring and forkability.
"""

from forkoor_sentinel.analytics.onchain_verifier import (
    AuthorityState,
    OnChainVerifier,
    TokenMetadata,
)
from forkoor_sentinel.analytics.risk_engine import (
    RiskAssessment,
    RiskFlags,
    RiskLevel,
    RiskThresholds,
    build_assessment,
    calculate_risk_score,
    evaluate_forkability,
    generate_risk_summary,
    get_risk_level,
)
from forkoor_sentinel.analytics.rugcheck_client import QuickRiskCheck, RugCheckClient, RugCheckReport
from forkoor_sentinel.analytics.token_analyzer import TokenAnalyzer

__all__ = [
    "AuthorityState",
    "OnChainVerifier",
    "QuickRiskCheck",
    "RiskAssessment",
    "RiskFlags",
    "RiskLevel",
    "RiskThresholds",
    "RugCheckClient",
    "RugCheckReport",
    "TokenAnalyzer",
    "TokenMetadata",
    "build_assessment",
    "calculate_risk_score",
    "evaluate_forkability",
    "generate_risk_summary",
    "get_risk_level",
]
