"""
Tests for the Voter Registry Service.

Tests cover:
- Submission, scoring and event publication
- Rejected submissions leave no trace
- Approval side effects (record creation, deletion)
- Status transitions
- Queue listing, tracking and counters
"""

import pytest

from core.exceptions import (
    InvalidStatusTransitionError,
    RequestNotFoundError,
    RequestValidationError,
    VoterRecordNotFoundError,
)
from risk_engine.alerting import IntegrityEventType
from risk_engine.types import RecordStatus, RequestStatus, RequestType, RiskTier, RuleId


REGISTRATION = {"name": "Asha Verma", "address": "12 MG Road", "age": "34"}


@pytest.fixture
def registry(services):
    return services.registry


# =============================================================
# TEST: Submission
# =============================================================

class TestSubmit:

    def test_clean_registration(self, services, registry):
        request = registry.submit_request("registration", REGISTRATION, origin_address="10.0.0.1")

        assert request.status == RequestStatus.PENDING
        assert request.risk_tier == RiskTier.NORMAL
        assert request.risk_explanation == "No anomalies detected"
        assert registry.get_request(request.request_id) is request

        scored = services.events.of_type(IntegrityEventType.NEW_REQUEST_SCORED)
        assert [e.entity_id for e in scored] == [request.request_id]
        assert services.events.of_type(IntegrityEventType.FLAG_RAISED) == []

    def test_flags_reach_shared_store(self, services, registry, make_record):
        registry.seed_records([make_record("V-1", "ABC1234567")])

        request = registry.submit_request(
            RequestType.REGISTRATION, {**REGISTRATION, "epic_id": "ABC1234567"}
        )

        assert request.risk_tier == RiskTier.HIGH_RISK
        assert [f.rule_id for f in request.flags] == [RuleId.DUPLICATE_EPIC]
        assert services.flag_store.get(request.flags[0].flag_id) is request.flags[0]
        raised = services.events.of_type(IntegrityEventType.FLAG_RAISED)
        assert [e.entity_id for e in raised] == [request.flags[0].flag_id]

    def test_underage_flag_visible_to_audit(self, services, registry):
        request = registry.submit_request(
            "registration", {**REGISTRATION, "age": 16}
        )

        assert registry.flag_store is services.flag_store
        assert services.audit.flag_store is services.flag_store
        assert [f.flag_id for f in services.audit.list_flags()] == [request.flags[0].flag_id]
        assert services.stats()["total_flags"] == 1

    def test_rejected_submission_stores_nothing(self, services, registry):
        with pytest.raises(RequestValidationError):
            registry.submit_request("registration", {"name": "No Address"})
        with pytest.raises(RequestValidationError):
            registry.submit_request("renewal", REGISTRATION)

        assert registry.list_requests() == []
        assert services.events.events == []

    def test_correction_links_existing_record(self, registry, make_record):
        registry.seed_records([make_record("V-1", "ABC1234567")])

        request = registry.submit_request(
            "correction", {"name": "Asha V."}, document_number="ABC1234567"
        )

        assert request.voter_record_id == "V-1"
        assert request.flags == []

    def test_registration_never_links_existing_record(self, registry, make_record):
        registry.seed_records([make_record("V-1", "ABC1234567")])

        request = registry.submit_request(
            "registration", REGISTRATION, document_number="ABC1234567"
        )

        assert request.voter_record_id != "V-1"
        assert RuleId.DUPLICATE_EPIC in [f.rule_id for f in request.flags]


# =============================================================
# TEST: Approval side effects
# =============================================================

class TestApproval:

    def test_approved_registration_creates_indexed_record(self, registry):
        request = registry.submit_request("registration", REGISTRATION)

        registry.approve_request(request.request_id, approved_by="ERO-7")

        record = registry.find_voter_by_document(request.epic_id)
        assert request.epic_id.startswith("DL")
        assert len(request.epic_id) == 12
        assert record.voter_record_id == request.voter_record_id
        assert record.age == 34
        assert registry.total_voters() == 1

        again = registry.submit_request(
            "registration", {**REGISTRATION, "epic_id": request.epic_id}
        )
        assert RuleId.DUPLICATE_EPIC in [f.rule_id for f in again.flags]

    def test_approved_deletion_keeps_record(self, registry, make_record):
        registry.seed_records([make_record("V-1", "ABC1234567")])
        request = registry.submit_request("deletion", {}, document_number="ABC1234567")

        registry.approve_request(request.request_id)

        assert registry.total_voters() == 0
        records = registry.get_voter_records(include_deleted=True)
        assert [r.status for r in records] == [RecordStatus.DELETED]

    def test_approval_does_not_rescore(self, registry):
        request = registry.submit_request("registration", REGISTRATION)
        score, tier = request.risk_score, request.risk_tier

        registry.approve_request(request.request_id)

        assert (request.risk_score, request.risk_tier) == (score, tier)


# =============================================================
# TEST: Status transitions
# =============================================================

class TestStatus:

    def test_hold_then_reject(self, registry, clock):
        request = registry.submit_request("registration", REGISTRATION)
        clock.advance(60)

        registry.update_request_status(request.request_id, "On Hold", updated_by="ERO-7")
        assert request.status == RequestStatus.ON_HOLD
        assert request.updated_by == "ERO-7"
        assert request.updated_at == clock.now()

        registry.update_request_status(request.request_id, RequestStatus.REJECTED)
        assert request.status == RequestStatus.REJECTED

    def test_finalized_request_cannot_change(self, registry):
        request = registry.submit_request("registration", REGISTRATION)
        registry.update_request_status(request.request_id, "Rejected")

        with pytest.raises(InvalidStatusTransitionError):
            registry.approve_request(request.request_id)

    def test_approving_twice_is_a_no_op(self, registry):
        request = registry.submit_request("registration", REGISTRATION)
        registry.approve_request(request.request_id)
        epic_id = request.epic_id

        registry.approve_request(request.request_id)

        assert request.epic_id == epic_id
        assert registry.total_voters() == 1

    def test_unknown_status(self, registry):
        request = registry.submit_request("registration", REGISTRATION)
        with pytest.raises(RequestValidationError):
            registry.update_request_status(request.request_id, "Archived")

    def test_unknown_request(self, registry):
        with pytest.raises(RequestNotFoundError):
            registry.approve_request("missing")


# =============================================================
# TEST: Queries
# =============================================================

class TestQueries:

    def test_list_newest_first_and_filtered(self, registry, make_record, clock):
        registry.seed_records([make_record("V-1", "ABC1234567")])
        first = registry.submit_request("registration", REGISTRATION)
        clock.advance(5)
        second = registry.submit_request("registration", {**REGISTRATION, "epic_id": "ABC1234567"})
        third = registry.submit_request("correction", {}, document_number="ABC1234567")

        assert registry.list_requests() == [third, second, first]
        assert registry.list_requests(risk_tier="High Risk") == [second]
        assert registry.list_requests(request_type="correction") == [third]
        with pytest.raises(RequestValidationError):
            registry.list_requests(risk_tier="Severe")

    def test_pending_counts(self, registry, make_record):
        registry.seed_records([make_record("V-1", "ABC1234567")])
        registry.submit_request("registration", REGISTRATION)
        flagged = registry.submit_request("registration", {**REGISTRATION, "epic_id": "ABC1234567"})
        done = registry.submit_request("registration", REGISTRATION)
        registry.update_request_status(done.request_id, "Rejected")

        assert registry.pending_counts() == {"total": 2, "high_risk": 1}
        assert flagged.risk_tier.is_high_severity

    def test_track_by_document_or_mobile(self, registry):
        request = registry.submit_request(
            "registration", {**REGISTRATION, "mobile": "9876543210"}, document_number="XYZ0000001"
        )

        assert registry.track_request(request_id=request.request_id) is request
        assert registry.track_request(epic_id="XYZ0000001") is request
        assert registry.track_request(mobile="9876543210") is request
        with pytest.raises(RequestNotFoundError):
            registry.track_request(mobile="0000000000")

    def test_find_unknown_voter(self, registry):
        with pytest.raises(VoterRecordNotFoundError):
            registry.find_voter_by_document("NOPE000000")
