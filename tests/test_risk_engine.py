"""
Tests for the risk engine: weighted score, level, summary and forkability.

All functions under test are pure; no mocks needed.
"""

from __future__ import annotations

import itertools

import pytest

from forkoor_sentinel.analytics.risk_engine import (
    FLAG_WEIGHTS,
    NO_RISK_SENTENCE,
    REASON_LOW_RISK,
    REASON_NO_CRITICAL_FLAW,
    RiskFlags,
    RiskLevel,
    RiskThresholds,
    build_assessment,
    calculate_risk_score,
    evaluate_forkability,
    generate_risk_summary,
    get_risk_level,
)

MINT = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
ALL_FLAGS = RiskFlags.flag_names()


def _flags(**values: bool) -> RiskFlags:
    return RiskFlags(**values)


def test_every_flag_true_clamps_to_critical():
    """Sum of all weights is 140; score clamps to 100, CRITICAL and forkable."""
    flags = _flags(**{name: True for name in ALL_FLAGS})
    assert sum(FLAG_WEIGHTS.values()) == 140
    assessment = build_assessment(MINT, flags)
    assert assessment.risk_score == 100
    assert assessment.risk_level == RiskLevel.CRITICAL
    assert assessment.forkable is True
    assert assessment.forkable_reason is None


def test_no_flags_is_low_and_not_forkable():
    """Clean token: score 0, LOW, fixed no-risk sentence, not forkable."""
    assessment = build_assessment(MINT, RiskFlags())
    assert assessment.risk_score == 0
    assert assessment.risk_level == RiskLevel.LOW
    assert assessment.summary == NO_RISK_SENTENCE
    assert assessment.forkable is False
    assert assessment.forkable_reason == REASON_LOW_RISK


def test_mint_authority_only_is_medium_and_forkable():
    """Mint authority alone scores 35, MEDIUM, and qualifies for a fork."""
    assessment = build_assessment(MINT, _flags(mint_authority_active=True))
    assert assessment.risk_score == 35
    assert assessment.risk_level == RiskLevel.MEDIUM
    assert assessment.forkable is True


def test_non_critical_flags_never_forkable():
    """HIGH score from structural flags only is not forkable."""
    flags = _flags(
        metadata_mutable=True,
        high_holder_concentration=True,
        lp_not_burned=True,
        low_liquidity=True,
    )
    thresholds = RiskThresholds(low=10, medium=20, high=30)
    assessment = build_assessment(MINT, flags, thresholds=thresholds)
    assert assessment.risk_score == 40
    assert assessment.risk_level == RiskLevel.CRITICAL
    assert assessment.forkable is False
    assert assessment.forkable_reason == REASON_NO_CRITICAL_FLAW


def test_low_level_never_forkable_even_with_critical_flag():
    """Raised LOW threshold: mint authority (35) is LOW, so not forkable."""
    thresholds = RiskThresholds(low=40, medium=60, high=80)
    assessment = build_assessment(MINT, _flags(mint_authority_active=True), thresholds=thresholds)
    assert assessment.risk_level == RiskLevel.LOW
    assert assessment.forkable is False
    assert assessment.forkable_reason == REASON_LOW_RISK


def test_score_bounded_and_monotonic_over_all_flag_sets():
    """For every flag combination, score is in [0, 100] and setting one more flag never lowers it."""
    for values in itertools.product((False, True), repeat=len(ALL_FLAGS)):
        flags = RiskFlags(**dict(zip(ALL_FLAGS, values)))
        score = calculate_risk_score(flags)
        assert 0 <= score <= 100
        assert calculate_risk_score(flags) == score
        for name in ALL_FLAGS:
            raised = flags.merged_with({name: True})
            assert calculate_risk_score(raised) >= score


def test_level_thresholds_are_exclusive_upper_bounds():
    """Score equal to a threshold belongs to the next level up."""
    assert get_risk_level(24) == RiskLevel.LOW
    assert get_risk_level(25) == RiskLevel.MEDIUM
    assert get_risk_level(49) == RiskLevel.MEDIUM
    assert get_risk_level(50) == RiskLevel.HIGH
    assert get_risk_level(74) == RiskLevel.HIGH
    assert get_risk_level(75) == RiskLevel.CRITICAL


def test_summary_orders_critical_flaws_first():
    """One line per true flag; mint authority line precedes low liquidity line."""
    summary = generate_risk_summary(_flags(low_liquidity=True, mint_authority_active=True))
    lines = summary.split("\n")
    assert len(lines) == 2
    assert lines[0].startswith("MINT AUTHORITY ACTIVE")
    assert lines[1].startswith("Low liquidity")


def test_on_chain_values_override_report_values():
    """merged_with: present keys win (true over false and false over true); absent keys are kept."""
    report_flags = _flags(mint_authority_active=False, freeze_authority_active=True, lp_not_burned=True)
    merged = report_flags.merged_with(
        {"mint_authority_active": True, "freeze_authority_active": False}
    )
    assert merged.mint_authority_active is True
    assert merged.freeze_authority_active is False
    assert merged.lp_not_burned is True
    assert report_flags.mint_authority_active is False


def test_merge_rejects_unknown_flag():
    """Typos in override keys are programmer errors."""
    with pytest.raises(ValueError, match="Unknown risk flags"):
        RiskFlags().merged_with({"mint_authority": True})


def test_evaluate_forkability_freeze_and_honeypot_qualify():
    """Freeze authority or honeypot alone qualifies above LOW."""
    assert evaluate_forkability(RiskLevel.MEDIUM, _flags(freeze_authority_active=True)).forkable
    assert evaluate_forkability(RiskLevel.HIGH, _flags(honeypot=True)).forkable


def test_assessment_to_dict():
    """to_dict exposes plain JSON types for persistence."""
    assessment = build_assessment(
        MINT, _flags(honeypot=True), sources=("rugcheck",), timestamp_ms=123
    )
    data = assessment.to_dict()
    assert data["risk_level"] == "MEDIUM"
    assert data["risk_score"] == 40
    assert data["flags"]["honeypot"] is True
    assert data["timestamp"] == 123
    assert data["sources"] == ["rugcheck"]
