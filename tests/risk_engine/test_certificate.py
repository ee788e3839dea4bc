"""
Tests for the Integrity Certificate Aggregator.

Tests cover:
- Degenerate (empty) state
- Roll risk penalty, levels and duplicate probability
- Binary polling consistency
- Turnout spike detection
- Weighting, rounding and status bands
"""

import pytest

from risk_engine.certificate import IntegrityCertificateAggregator
from risk_engine.types import (
    CertificateStatus,
    EntityType,
    Flag,
    Form17CSummary,
    PollingStatus,
    RiskTier,
    RollRiskLevel,
    RuleId,
    ScoreBreakdown,
)


@pytest.fixture
def aggregator(clock):
    return IntegrityCertificateAggregator(clock=clock)


def flag(tier=RiskTier.HIGH_RISK, rule=RuleId.DUPLICATE_EPIC, resolved=False):
    return Flag(
        entity_type=EntityType.VOTER_REQUEST,
        entity_id="R",
        risk_tier=tier,
        risk_score=100,
        rule_id=rule,
        reason="r",
        explanation="e",
        resolved=resolved,
    )


def summary(booth_id, electors, polled, constituency="New Delhi"):
    return Form17CSummary(
        booth_id=booth_id,
        constituency=constituency,
        total_electors=electors,
        total_votes_polled=polled,
    )


# =============================================================
# TEST: Degenerate state
# =============================================================

class TestEmptyState:

    def test_nothing_ingested_is_verified(self, aggregator, clock):
        cert = aggregator.generate("New Delhi", flags=[], summaries=[], form17a_counts={})

        assert cert.roll_risk.final_score == 100
        assert cert.polling_consistency.status == PollingStatus.MATCH
        assert cert.polling_consistency.deviation_percentage == 0.0
        assert cert.turnout_analytics.current_turnout == 65.0
        assert not cert.turnout_analytics.spike_detected
        assert cert.final_confidence_index == 100
        assert cert.status == CertificateStatus.VERIFIED
        assert cert.generated_at == clock.now()

    def test_weights_sum_to_one(self, aggregator):
        cert = aggregator.generate("New Delhi", [], [], {})
        assert cert.score_breakdown.total_weight == 1.0
        assert cert.score_breakdown.roll_score_contribution == 40.0


# =============================================================
# TEST: Roll risk
# =============================================================

class TestRollRisk:

    def test_counts_only_open_high_severity(self, aggregator):
        flags = [flag() for _ in range(3)] + [
            flag(RiskTier.CRITICAL, RuleId.UNDERAGE_APPLICANT),
            flag(RiskTier.NEEDS_REVIEW, RuleId.ADDRESS_DENSITY_MEDIUM),
            flag(resolved=True),
        ]

        roll = aggregator.roll_risk(flags)

        assert roll.high_risk_detected == 4
        assert roll.final_score == 92
        assert roll.risk_level == RollRiskLevel.LOW

    @pytest.mark.parametrize("count, level", [
        (5, RollRiskLevel.LOW),
        (6, RollRiskLevel.MEDIUM),
        (10, RollRiskLevel.MEDIUM),
        (11, RollRiskLevel.HIGH),
    ])
    def test_levels(self, aggregator, count, level):
        assert aggregator.roll_risk([flag() for _ in range(count)]).risk_level == level

    def test_score_floors_at_zero(self, aggregator):
        assert aggregator.roll_risk([flag() for _ in range(60)]).final_score == 0

    def test_duplicate_probability_and_clusters(self, aggregator):
        flags = [
            flag(rule=RuleId.DUPLICATE_EPIC),
            flag(rule=RuleId.CROSS_BOOTH_DUPLICATE),
            flag(RiskTier.CRITICAL, RuleId.ADDRESS_DENSITY_CRITICAL),
        ]

        roll = aggregator.roll_risk(flags, total_voters=200)

        assert roll.duplicate_probability == 1.0
        assert roll.cluster_size_alerts == 1
        assert roll.total_voters == 200

    def test_no_voters_means_zero_probability(self, aggregator):
        assert aggregator.roll_risk([flag()], total_voters=0).duplicate_probability == 0.0


# =============================================================
# TEST: Polling consistency
# =============================================================

class TestPollingConsistency:

    def test_within_tolerance_matches(self, aggregator):
        result = aggregator.polling_consistency([summary("B-1", 1000, 600)], {"B-1": 595})

        assert result.status == PollingStatus.MATCH
        assert result.matched_booths == 1
        assert result.final_score == 100

    def test_one_mismatch_zeroes_the_score(self, aggregator):
        summaries = [summary("B-1", 1000, 600), summary("B-2", 1000, 600)]

        result = aggregator.polling_consistency(summaries, {"B-1": 600, "B-2": 590})

        assert result.status == PollingStatus.CRITICAL_MISMATCH
        assert result.mismatched_booths == 1
        assert result.final_score == 0
        assert result.total_votes_form17a == 1190
        assert result.total_votes_form17c == 1200
        assert result.deviation_percentage == 0.83

    def test_booth_without_entries_counts_zero(self, aggregator):
        result = aggregator.polling_consistency([summary("B-1", 1000, 600)], {})
        assert result.status == PollingStatus.CRITICAL_MISMATCH


# =============================================================
# TEST: Turnout
# =============================================================

class TestTurnout:

    def test_five_points_is_not_a_spike(self, aggregator):
        result = aggregator.turnout([summary("B-1", 1000, 600)])

        assert result.current_turnout == 60.0
        assert result.deviation_from_baseline == -5.0
        assert not result.spike_detected
        assert result.final_score == 100

    def test_spike_halves_the_score(self, aggregator):
        result = aggregator.turnout([summary("B-1", 1000, 710)])

        assert result.spike_detected
        assert result.final_score == 50

    def test_no_electors_uses_baseline(self, aggregator):
        result = aggregator.turnout([summary("B-1", 0, 0)])
        assert result.current_turnout == 65.0
        assert not result.spike_detected


# =============================================================
# TEST: Aggregation
# =============================================================

class TestAggregation:

    def test_combine_returns_index_and_breakdown(self, aggregator):
        index, breakdown = aggregator.combine(100, 0, 100)

        assert index == 70
        assert isinstance(breakdown, ScoreBreakdown)
        assert breakdown.polling_score_contribution == 0.0
        assert breakdown.roll_score_contribution == 40.0

    def test_mismatch_gives_provisional(self, aggregator):
        cert = aggregator.generate(
            "New Delhi",
            flags=[],
            summaries=[summary("B-1", 1000, 600)],
            form17a_counts={"B-1": 590},
        )

        assert cert.final_confidence_index == 70
        assert cert.status == CertificateStatus.PROVISIONAL

    def test_everything_wrong_is_flagged(self, aggregator):
        cert = aggregator.generate(
            "New Delhi",
            flags=[flag() for _ in range(50)],
            summaries=[summary("B-1", 1000, 800)],
            form17a_counts={},
        )

        assert cert.final_confidence_index == 15
        assert cert.status == CertificateStatus.FLAGGED

    def test_other_constituencies_ignored(self, aggregator):
        cert = aggregator.generate(
            "New Delhi",
            flags=[],
            summaries=[summary("B-9", 1000, 900, constituency="Lucknow")],
            form17a_counts={},
        )

        assert cert.polling_consistency.total_booths == 0
        assert cert.final_confidence_index == 100

    def test_half_up_rounding(self, aggregator):
        """0.4 x 98 + 0 + 0.3 x 50 = 54.2 -> 54."""
        cert = aggregator.generate(
            "New Delhi",
            flags=[flag()],
            summaries=[summary("B-1", 1000, 800)],
            form17a_counts={"B-1": 0},
        )
        assert cert.final_confidence_index == 54

    @pytest.mark.parametrize("index, status", [
        (100, CertificateStatus.VERIFIED),
        (91, CertificateStatus.VERIFIED),
        (90, CertificateStatus.PROVISIONAL),
        (50, CertificateStatus.PROVISIONAL),
        (49, CertificateStatus.FLAGGED),
    ])
    def test_status_bands(self, aggregator, index, status):
        assert aggregator.status_for(index) == status

    def test_does_not_mutate_flags(self, aggregator):
        flags = [flag()]
        aggregator.generate("New Delhi", flags, [], {})
        assert not flags[0].resolved
