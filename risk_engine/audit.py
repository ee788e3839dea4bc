"""
Risk Engine - Audit Risk Scorer.

============================================================
PURPOSE
============================================================
Checks over post-election paper-record ingestion:

1. Within-batch duplicates (document number, serial number)
2. Cross-booth duplicates (one document number, many booths)
3. Count mismatch (Form 17A entries vs Form 17C votes polled)

All checks are pure: they read their arguments and return
flags. Storing flags and maintaining the booth index is the
audit service's job.

============================================================
"""

import logging
from collections import Counter, defaultdict
from typing import Iterable, List, Mapping, Optional, Sequence, Set

from core.clock import ClockProtocol, get_clock
from core.exceptions import AuditValidationError
from .config import AuditRiskConfig
from .types import (
    EntityType,
    Flag,
    Form17AEntry,
    Form17ARecord,
    RiskTier,
    RuleId,
)

logger = logging.getLogger(__name__)


def validate_entries(entries: Sequence[Form17AEntry]) -> None:
    """
    Reject malformed poll-book entries before anything is counted.

    Raises:
        AuditValidationError: on the first entry missing its
            document number or serial number
    """
    for index, entry in enumerate(entries):
        missing = [
            name for name in ("epic_id", "serial_number")
            if not str(getattr(entry, name, "") or "").strip()
        ]
        if missing:
            raise AuditValidationError(
                f"Form 17A entry {index} missing {', '.join(missing)}",
                fields=missing,
                entry_index=index,
            )


class AuditRiskScorer:
    """
    Duplicate and count-mismatch detection for booth audits.
    """

    def __init__(
        self,
        config: Optional[AuditRiskConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self.config = config or AuditRiskConfig()
        self.config.validate()
        self._clock = clock or get_clock()

    def _audit_flag(
        self,
        entity_type: EntityType,
        entity_id: str,
        tier: RiskTier,
        score: int,
        rule_id: RuleId,
        reason: str,
        explanation: str,
        booth_ids: Iterable[str] = (),
    ) -> Flag:
        return Flag(
            entity_type=entity_type,
            entity_id=entity_id,
            risk_tier=tier,
            risk_score=score,
            rule_id=rule_id,
            reason=reason,
            explanation=explanation,
            created_at=self._clock.now(),
            booth_ids=tuple(booth_ids),
        )

    # --------------------------------------------------------
    # WITHIN-BATCH DUPLICATES
    # --------------------------------------------------------

    def score_batch(self, records: Sequence[Form17ARecord]) -> List[Flag]:
        """
        Flag document and serial numbers repeated inside one upload.

        Returns:
            One HIGH_RISK flag per offending value
        """
        validate_entries(records)

        flags: List[Flag] = []
        epic_counts = Counter(r.epic_id for r in records)
        serial_counts = Counter(r.serial_number for r in records)
        booths_by_epic = defaultdict(set)
        booths_by_serial = defaultdict(set)
        for r in records:
            booths_by_epic[r.epic_id].add(r.booth_id)
            booths_by_serial[r.serial_number].add(r.booth_id)

        for epic_id, count in epic_counts.items():
            if count > 1:
                flags.append(self._audit_flag(
                    EntityType.FORM17A,
                    epic_id,
                    RiskTier.HIGH_RISK,
                    self.config.duplicate_contribution,
                    RuleId.DUPLICATE_EPIC_AUDIT,
                    "Duplicate EPIC in Form 17A",
                    f"EPIC {epic_id} appears {count} times in Form 17A records",
                    sorted(booths_by_epic[epic_id]),
                ))

        for serial, count in serial_counts.items():
            if count > 1:
                flags.append(self._audit_flag(
                    EntityType.FORM17A,
                    serial,
                    RiskTier.HIGH_RISK,
                    self.config.duplicate_contribution,
                    RuleId.DUPLICATE_SERIAL_AUDIT,
                    "Duplicate Serial Number",
                    f"Serial number {serial} appears {count} times",
                    sorted(booths_by_serial[serial]),
                ))

        if flags:
            logger.warning(f"Within-batch duplicates: records={len(records)} flags={len(flags)}")
        return flags

    # --------------------------------------------------------
    # CROSS-BOOTH DUPLICATES
    # --------------------------------------------------------

    def check_cross_booth(
        self,
        booth_documents: Mapping[str, Set[str]],
        only_epics: Optional[Iterable[str]] = None,
    ) -> List[Flag]:
        """
        Flag document numbers seen in more than one booth.

        Args:
            booth_documents: booth id -> document numbers seen
            only_epics: restrict flagging to these document numbers

        Returns:
            One HIGH_RISK flag per document number, naming every booth
        """
        wanted = set(only_epics) if only_epics is not None else None
        booths_by_epic = defaultdict(set)
        for booth_id, epics in booth_documents.items():
            for epic_id in epics:
                if wanted is None or epic_id in wanted:
                    booths_by_epic[epic_id].add(booth_id)

        flags: List[Flag] = []
        for epic_id in sorted(booths_by_epic):
            booths = sorted(booths_by_epic[epic_id])
            if len(booths) < 2:
                continue
            flags.append(self._audit_flag(
                EntityType.FORM17A,
                epic_id,
                RiskTier.HIGH_RISK,
                self.config.duplicate_contribution,
                RuleId.CROSS_BOOTH_DUPLICATE,
                "Cross-Booth EPIC Duplication",
                f"EPIC {epic_id} appears in {len(booths)} different booths: {', '.join(booths)}",
                booths,
            ))

        if flags:
            logger.warning(f"Cross-booth duplicates: flags={len(flags)}")
        return flags

    # --------------------------------------------------------
    # COUNT MISMATCH
    # --------------------------------------------------------

    def check_count_mismatch(
        self,
        form17a_count: int,
        form17c_votes_polled: int,
        booth_id: str,
    ) -> Optional[Flag]:
        """
        Compare poll-book entries with the booth's reported votes.

        Returns:
            A booth flag, or None inside the tolerance band
        """
        diff = abs(int(form17a_count) - int(form17c_votes_polled))
        c = self.config

        if diff <= c.mismatch_tolerance:
            return None

        if diff > c.mismatch_critical_above:
            tier = RiskTier.CRITICAL
            rule = RuleId.POLLING_MISMATCH_MAJOR
            score = c.mismatch_critical_contribution
        else:
            tier = RiskTier.NEEDS_REVIEW
            rule = RuleId.POLLING_MISMATCH_MODERATE
            score = c.mismatch_review_contribution

        logger.warning(
            f"Count mismatch: booth={booth_id} form17a={form17a_count} "
            f"form17c={form17c_votes_polled} diff={diff} tier={tier.value}"
        )
        return self._audit_flag(
            EntityType.BOOTH,
            booth_id,
            tier,
            score,
            rule,
            "Form 17A vs 17C Mismatch",
            f"Votes counted ({form17c_votes_polled}) differ from voters processed "
            f"({form17a_count}) by {diff}",
            (booth_id,),
        )
