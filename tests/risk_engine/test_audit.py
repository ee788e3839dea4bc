"""
Tests for the Audit Risk Scorer.

Tests cover:
- Count mismatch ladder
- Within-batch duplicate document and serial numbers
- Cross-booth duplicates (one flag per document number)
- Malformed entry rejection
"""

import pytest

from core.exceptions import AuditValidationError
from risk_engine.audit import AuditRiskScorer, validate_entries
from risk_engine.config import AuditRiskConfig
from risk_engine.types import EntityType, Form17AEntry, Form17ARecord, RiskTier, RuleId


@pytest.fixture
def scorer(clock):
    return AuditRiskScorer(clock=clock)


def record(epic_id, serial, booth_id="B-001"):
    return Form17ARecord(
        booth_id=booth_id,
        epic_id=epic_id,
        serial_number=serial,
        voter_name=f"Voter {serial}",
        upload_id="U-1",
    )


# =============================================================
# TEST: Count mismatch
# =============================================================

class TestCountMismatch:

    def test_within_tolerance_no_flag(self, scorer):
        assert scorer.check_count_mismatch(605, 600, "B-001") is None
        assert scorer.check_count_mismatch(600, 600, "B-001") is None

    def test_moderate_mismatch_needs_review(self, scorer):
        flag = scorer.check_count_mismatch(607, 600, "B-001")

        assert flag.risk_tier == RiskTier.NEEDS_REVIEW
        assert flag.rule_id == RuleId.POLLING_MISMATCH_MODERATE
        assert flag.risk_score == 50
        assert flag.entity_type == EntityType.BOOTH
        assert flag.entity_id == "B-001"

    def test_ten_is_still_moderate(self, scorer):
        assert scorer.check_count_mismatch(590, 600, "B-001").rule_id == RuleId.POLLING_MISMATCH_MODERATE

    def test_major_mismatch_is_critical(self, scorer):
        flag = scorer.check_count_mismatch(612, 600, "B-001")

        assert flag.risk_tier == RiskTier.CRITICAL
        assert flag.rule_id == RuleId.POLLING_MISMATCH_MAJOR
        assert flag.risk_score == 100
        assert "differ" in flag.explanation

    def test_direction_does_not_matter(self, scorer):
        assert scorer.check_count_mismatch(588, 600, "B-001").risk_tier == RiskTier.CRITICAL

    def test_tolerance_is_configurable(self, clock):
        strict = AuditRiskScorer(AuditRiskConfig(mismatch_tolerance=1, mismatch_critical_above=3), clock)
        assert strict.check_count_mismatch(602, 600, "B-001").risk_tier == RiskTier.NEEDS_REVIEW


# =============================================================
# TEST: Within-batch duplicates
# =============================================================

class TestBatchDuplicates:

    def test_clean_batch(self, scorer):
        assert scorer.score_batch([record("E1", "1"), record("E2", "2")]) == []

    def test_duplicate_document_number(self, scorer):
        flags = scorer.score_batch([record("E1", "1"), record("E1", "2"), record("E1", "3")])

        assert len(flags) == 1
        assert flags[0].rule_id == RuleId.DUPLICATE_EPIC_AUDIT
        assert flags[0].entity_id == "E1"
        assert flags[0].risk_tier == RiskTier.HIGH_RISK
        assert "3 times" in flags[0].explanation
        assert flags[0].booth_ids == ("B-001",)

    def test_duplicate_serial_number(self, scorer):
        flags = scorer.score_batch([record("E1", "7"), record("E2", "7")])

        assert [f.rule_id for f in flags] == [RuleId.DUPLICATE_SERIAL_AUDIT]
        assert flags[0].entity_id == "7"


# =============================================================
# TEST: Cross-booth duplicates
# =============================================================

class TestCrossBooth:

    def test_two_booths_one_flag(self, scorer):
        flags = scorer.check_cross_booth({"B-A": {"X", "Y"}, "B-B": {"X"}})

        assert len(flags) == 1
        flag = flags[0]
        assert flag.entity_id == "X"
        assert flag.rule_id == RuleId.CROSS_BOOTH_DUPLICATE
        assert flag.booth_ids == ("B-A", "B-B")
        assert flag.explanation == "EPIC X appears in 2 different booths: B-A, B-B"

    def test_three_booths_still_one_flag(self, scorer):
        flags = scorer.check_cross_booth({"B-A": {"X"}, "B-B": {"X"}, "B-C": {"X"}})

        assert len(flags) == 1
        assert flags[0].booth_ids == ("B-A", "B-B", "B-C")

    def test_only_epics_restricts_flagging(self, scorer):
        booths = {"B-A": {"X", "Y"}, "B-B": {"X", "Y"}}

        flags = scorer.check_cross_booth(booths, only_epics={"Y"})

        assert [f.entity_id for f in flags] == ["Y"]

    def test_no_duplicates(self, scorer):
        assert scorer.check_cross_booth({"B-A": {"X"}, "B-B": {"Y"}}) == []


# =============================================================
# TEST: Validation
# =============================================================

class TestEntryValidation:

    def test_missing_serial_rejected(self):
        entries = [Form17AEntry("E1", "1"), Form17AEntry("E2", " ")]

        with pytest.raises(AuditValidationError) as exc:
            validate_entries(entries)

        assert exc.value.entry_index == 1
        assert exc.value.fields == ["serial_number"]

    def test_missing_document_number_rejected_by_scorer(self, scorer):
        with pytest.raises(AuditValidationError):
            scorer.score_batch([record("", "1")])
