"""
Risk Engine - Integrity Certificate Aggregator.

============================================================
PURPOSE
============================================================
Combines three sub-scores into one confidence index for a
constituency:

1. ROLL RISK: registry hygiene from unresolved high-severity flags
2. POLLING CONSISTENCY: Form 17A entries vs Form 17C votes per booth
3. TURNOUT: current turnout vs historical baseline

    index = 0.4 x roll + 0.3 x polling + 0.3 x turnout

============================================================
WHAT IT IS NOT
============================================================
- NOT stored: regenerated on every call
- NOT a gate: never delays or alters a tally or an approval
- NOT signed: informational only

============================================================
"""

import logging
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional, Tuple

from core.clock import ClockProtocol, get_clock
from .config import CertificateConfig
from .engine import clamp_score, round_half_up, weighted_sum
from .types import (
    DUPLICATE_IDENTITY_RULES,
    CertificateStatus,
    Flag,
    Form17CSummary,
    IntegrityCertificate,
    PollingConsistency,
    PollingStatus,
    RollRiskLevel,
    RollRiskScore,
    RuleId,
    ScoreBreakdown,
    TurnoutAnalytics,
)

logger = logging.getLogger(__name__)


class IntegrityCertificateAggregator:
    """
    Stateless certificate computation over a snapshot of flags,
    booth summaries and Form 17A counts.
    """

    def __init__(
        self,
        config: Optional[CertificateConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self.config = config or CertificateConfig()
        self.config.validate()
        self._clock = clock or get_clock()

    # --------------------------------------------------------
    # SUB-SCORES
    # --------------------------------------------------------

    def roll_risk(self, flags: Iterable[Flag], total_voters: int = 0) -> RollRiskScore:
        """Registry hygiene from unresolved high-severity flags, system-wide."""
        open_flags = [f for f in flags if not f.resolved]
        high = [f for f in open_flags if f.is_high_severity]
        duplicates = sum(1 for f in open_flags if f.rule_id in DUPLICATE_IDENTITY_RULES)
        clusters = sum(1 for f in open_flags if f.rule_id == RuleId.ADDRESS_DENSITY_CRITICAL)

        c = self.config
        count = len(high)
        score = max(0, 100 - c.roll_penalty_per_flag * count)

        if count > c.roll_high_above:
            level = RollRiskLevel.HIGH
        elif count > c.roll_medium_above:
            level = RollRiskLevel.MEDIUM
        else:
            level = RollRiskLevel.LOW

        if total_voters > 0:
            probability = round(min(100.0, duplicates / total_voters * 100.0), 2)
        else:
            probability = 0.0

        return RollRiskScore(
            total_voters=total_voters,
            high_risk_detected=count,
            duplicate_probability=probability,
            cluster_size_alerts=clusters,
            final_score=score,
            risk_level=level,
        )

    def polling_consistency(
        self,
        summaries: Iterable[Form17CSummary],
        form17a_counts: Mapping[str, int],
    ) -> PollingConsistency:
        """Binary booth-by-booth comparison inside the tolerance band."""
        summaries = list(summaries)
        tolerance = self.config.polling_tolerance

        matched = 0
        total_a = 0
        total_c = 0
        for summary in summaries:
            a_count = int(form17a_counts.get(summary.booth_id, 0))
            total_a += a_count
            total_c += summary.total_votes_polled
            if abs(a_count - summary.total_votes_polled) <= tolerance:
                matched += 1

        mismatched = len(summaries) - matched
        status = PollingStatus.MATCH if mismatched == 0 else PollingStatus.CRITICAL_MISMATCH

        if total_c > 0:
            deviation = round(abs(total_a - total_c) / total_c * 100.0, 2)
        else:
            deviation = 0.0

        return PollingConsistency(
            total_booths=len(summaries),
            matched_booths=matched,
            mismatched_booths=mismatched,
            total_votes_form17a=total_a,
            total_votes_form17c=total_c,
            deviation_percentage=deviation,
            status=status,
            final_score=100 if status == PollingStatus.MATCH else 0,
        )

    def turnout(self, summaries: Iterable[Form17CSummary]) -> TurnoutAnalytics:
        """Turnout across the given booths against the configured baseline."""
        summaries = list(summaries)
        c = self.config
        baseline = c.historical_turnout_baseline

        electors = sum(s.total_electors for s in summaries)
        polled = sum(s.total_votes_polled for s in summaries)
        current = round(polled / electors * 100.0, 2) if electors > 0 else baseline

        deviation = round(current - baseline, 2)
        spike = abs(deviation) > c.turnout_spike_threshold

        return TurnoutAnalytics(
            current_turnout=current,
            historical_average=baseline,
            deviation_from_baseline=deviation,
            spike_detected=spike,
            final_score=c.turnout_spike_score if spike else 100,
        )

    # --------------------------------------------------------
    # AGGREGATION
    # --------------------------------------------------------

    def status_for(self, index: int) -> CertificateStatus:
        c = self.config
        if index > c.verified_above:
            return CertificateStatus.VERIFIED
        if index < c.flagged_below:
            return CertificateStatus.FLAGGED
        return CertificateStatus.PROVISIONAL

    def combine(
        self,
        roll_score: int,
        polling_score: int,
        turnout_score: int,
    ) -> Tuple[int, ScoreBreakdown]:
        """
        Weight three raw sub-scores into the final index.

        Returns:
            (final_confidence_index, breakdown)
        """
        c = self.config
        weights = {"roll": c.roll_weight, "polling": c.polling_weight, "turnout": c.turnout_weight}
        raw = {"roll": roll_score, "polling": polling_score, "turnout": turnout_score}

        index = clamp_score(round_half_up(weighted_sum(raw, weights)))

        def contribution(key: str) -> float:
            return float(round(Decimal(str(weights[key])) * Decimal(str(raw[key])), 2))

        breakdown = ScoreBreakdown(
            roll_risk_weight=c.roll_weight,
            polling_consistency_weight=c.polling_weight,
            turnout_analytics_weight=c.turnout_weight,
            roll_score_contribution=contribution("roll"),
            polling_score_contribution=contribution("polling"),
            turnout_score_contribution=contribution("turnout"),
        )
        return index, breakdown

    def generate(
        self,
        constituency_id: str,
        flags: Iterable[Flag],
        summaries: Iterable[Form17CSummary],
        form17a_counts: Mapping[str, int],
        total_voters: int = 0,
    ) -> IntegrityCertificate:
        """
        Build a certificate for one constituency.

        Args:
            constituency_id: Constituency whose booths are compared
            flags: Every flag in the system (roll risk is not booth-scoped)
            summaries: Known Form 17C summaries (filtered to the constituency here)
            form17a_counts: booth id -> ingested Form 17A entry count
            total_voters: Registered voter records, for duplicate probability

        Returns:
            IntegrityCertificate
        """
        scoped: List[Form17CSummary] = [s for s in summaries if s.constituency == constituency_id]

        roll = self.roll_risk(flags, total_voters)
        polling = self.polling_consistency(scoped, form17a_counts)
        turnout = self.turnout(scoped)

        index, breakdown = self.combine(roll.final_score, polling.final_score, turnout.final_score)
        status = self.status_for(index)

        logger.info(
            f"Certificate generated: constituency={constituency_id} index={index} "
            f"status={status.value} roll={roll.final_score} polling={polling.status.value} "
            f"spike={turnout.spike_detected}"
        )

        return IntegrityCertificate(
            constituency_id=constituency_id,
            roll_risk=roll,
            polling_consistency=polling,
            turnout_analytics=turnout,
            final_confidence_index=index,
            score_breakdown=breakdown,
            status=status,
            generated_at=self._clock.now(),
        )
