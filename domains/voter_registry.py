"""
Voter Registry Service (pre-election).

This service handles:
- Citizen request submission and risk scoring
- Authority status changes (approve / reject / hold)
- Voter record creation on approved registrations
- Request tracking and queue statistics
"""

import logging
import random
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional
from uuid import uuid4

from core.clock import ClockProtocol, get_clock
from core.exceptions import (
    InvalidStatusTransitionError,
    RequestNotFoundError,
    RequestValidationError,
    VoterRecordNotFoundError,
)
from risk_engine.alerting import EventPublisher, IntegrityEventType, create_logging_publisher
from risk_engine.assessors import parse_age
from risk_engine.engine import RequestRiskScorer
from risk_engine.flag_store import FlagStore, InMemoryFlagStore
from risk_engine.types import (
    RecordStatus,
    RequestStatus,
    RequestType,
    RiskTier,
    VoterRecord,
    VoterRequest,
)

logger = logging.getLogger(__name__)


# Optional profile fields copied onto a record created from a registration
_RECORD_FIELDS = (
    "guardian_name",
    "relation",
    "gender",
    "dob",
    "constituency",
    "assembly_constituency",
    "polling_station",
    "part_no",
    "serial_no",
    "state",
    "mobile",
    "email",
)


def generate_document_number(state_code: str = "DL") -> str:
    """Random document number: state code + 10 digits."""
    return f"{state_code}{random.randrange(10 ** 10):010d}"


def _coerce(enum_cls, value, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise RequestValidationError(f"Invalid {field_name}: {value}", fields=[field_name])


# =============================================================
# VOTER REGISTRY SERVICE
# =============================================================

class VoterRegistryService:
    """Owns voter records and requests; scores every submission once."""

    def __init__(
        self,
        scorer: Optional[RequestRiskScorer] = None,
        flag_store: Optional[FlagStore] = None,
        publisher: Optional[EventPublisher] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._clock = clock or get_clock()
        self.scorer = scorer if scorer is not None else RequestRiskScorer(clock=self._clock)
        self.flag_store = flag_store if flag_store is not None else InMemoryFlagStore(clock=self._clock)
        self.publisher = publisher if publisher is not None else create_logging_publisher()

        self._records: Dict[str, VoterRecord] = {}
        self._requests: Dict[str, VoterRequest] = {}
        self._sequence: Dict[str, int] = {}
        self._lock = threading.Lock()

    # ---------------------------------------------------------
    # VOTER RECORDS
    # ---------------------------------------------------------

    def seed_records(self, records: Iterable[VoterRecord]) -> int:
        """Load existing voter records and index them. Returns the count loaded."""
        count = 0
        for record in records:
            with self._lock:
                self._records[record.voter_record_id] = record
            self.scorer.register_voter_record(record)
            count += 1
        logger.info(f"Seeded voter records: count={count}")
        return count

    def find_voter_by_document(self, epic_id: str) -> VoterRecord:
        record = self._lookup_by_document(epic_id)
        if record is None:
            raise VoterRecordNotFoundError(epic_id)
        return record

    def get_voter_records(self, include_deleted: bool = False) -> List[VoterRecord]:
        with self._lock:
            records = list(self._records.values())
        if include_deleted:
            return records
        return [r for r in records if r.status == RecordStatus.ACTIVE]

    def total_voters(self) -> int:
        return len(self.get_voter_records())

    def _lookup_by_document(self, epic_id: Optional[str]) -> Optional[VoterRecord]:
        if not epic_id:
            return None
        with self._lock:
            for record in self._records.values():
                if record.epic_id == epic_id:
                    return record
        return None

    # ---------------------------------------------------------
    # SUBMISSION
    # ---------------------------------------------------------

    def submit_request(
        self,
        request_type,
        fields: Optional[Mapping[str, Any]] = None,
        origin_address: Optional[str] = None,
        document_number: Optional[str] = None,
    ) -> VoterRequest:
        """
        Score and store a citizen request.

        The request is rejected outright (nothing stored, no index
        touched) when it fails validation.

        Raises:
            RequestValidationError: unknown type or missing fields
        """
        request_type = _coerce(RequestType, request_type, "request_type")
        # A registration always describes a new person
        existing = None
        if request_type != RequestType.REGISTRATION:
            existing = self._lookup_by_document(document_number or (fields or {}).get("epic_id"))
        now = self._clock.now()

        request = VoterRequest(
            voter_record_id=existing.voter_record_id if existing else str(uuid4()),
            request_type=request_type,
            submitted_data=dict(fields or {}),
            epic_id=document_number,
            origin_address=origin_address,
            submitted_at=now,
            updated_at=now,
        )

        assessment = self.scorer.score(request)
        request.risk_score = assessment.score
        request.risk_tier = assessment.tier
        request.risk_explanation = assessment.explanation
        request.flags = list(assessment.flags)

        with self._lock:
            self._sequence[request.request_id] = len(self._sequence)
            self._requests[request.request_id] = request

        self.flag_store.add_many(request.flags)

        logger.info(
            f"Request submitted: id={request.request_id} type={request_type.value} "
            f"tier={request.risk_tier.value} score={request.risk_score}"
        )

        self.publisher.emit(
            IntegrityEventType.NEW_REQUEST_SCORED,
            request.request_id,
            payload=request.to_dict(),
            severity=request.risk_tier,
            timestamp=now,
        )
        for flag in request.flags:
            self.publisher.emit(
                IntegrityEventType.FLAG_RAISED,
                flag.flag_id,
                payload=flag.to_dict(),
                severity=flag.risk_tier,
                timestamp=now,
            )
        return request

    # ---------------------------------------------------------
    # AUTHORITY ACTIONS
    # ---------------------------------------------------------

    def approve_request(self, request_id: str, approved_by: Optional[str] = None) -> VoterRequest:
        return self.update_request_status(request_id, RequestStatus.APPROVED, approved_by)

    def update_request_status(
        self,
        request_id: str,
        status,
        updated_by: Optional[str] = None,
    ) -> VoterRequest:
        """
        Apply an authority status change.

        Approving a registration creates the voter record (generating
        a document number when none was given) and indexes it.
        Approving a deletion marks the record deleted; it is kept.
        Risk fields are never recomputed.

        Raises:
            RequestNotFoundError: unknown request id
            RequestValidationError: unknown status value
            InvalidStatusTransitionError: changing a finalized request
        """
        status = _coerce(RequestStatus, status, "status")

        with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                raise RequestNotFoundError(request_id)
            if request.status == status:
                return request
            if request.status.is_terminal:
                raise InvalidStatusTransitionError(request_id, request.status.value, status.value)

            previous = request.status
            request.status = status
            request.updated_at = self._clock.now()
            request.updated_by = updated_by

        logger.info(
            f"Request status changed: id={request_id} {previous.value}->{status.value} "
            f"by={updated_by}"
        )

        if status == RequestStatus.APPROVED:
            if request.request_type == RequestType.REGISTRATION:
                self._create_record(request)
            elif request.request_type == RequestType.DELETION:
                self._delete_record(request)
        return request

    def _create_record(self, request: VoterRequest) -> VoterRecord:
        data = request.submitted_data
        epic_id = request.epic_id or data.get("epic_id") or self._unused_document_number()
        request.epic_id = epic_id
        now = self._clock.now()

        record = VoterRecord(
            voter_record_id=request.voter_record_id,
            name=str(data.get("name", "")),
            address=str(data.get("address", "")),
            epic_id=epic_id,
            age=parse_age(data.get("age")),
            created_at=now,
            updated_at=now,
            **{name: data.get(name) for name in _RECORD_FIELDS},
        )
        with self._lock:
            self._records[record.voter_record_id] = record
        self.scorer.register_voter_record(record)

        logger.info(f"Voter record created: id={record.voter_record_id} epic={epic_id}")
        return record

    def _delete_record(self, request: VoterRequest) -> None:
        with self._lock:
            record = self._records.get(request.voter_record_id)
            if record is None:
                logger.warning(
                    f"Deletion approved for unknown record: request={request.request_id} "
                    f"epic={request.epic_id}"
                )
                return
            record.status = RecordStatus.DELETED
            record.updated_at = self._clock.now()
        logger.info(f"Voter record deleted: id={record.voter_record_id} epic={record.epic_id}")

    def _unused_document_number(self) -> str:
        while True:
            candidate = generate_document_number()
            if not self.scorer.identity_index.lookup(candidate):
                return candidate

    # ---------------------------------------------------------
    # QUERIES
    # ---------------------------------------------------------

    def get_request(self, request_id: str) -> VoterRequest:
        with self._lock:
            request = self._requests.get(request_id)
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    def track_request(
        self,
        request_id: Optional[str] = None,
        epic_id: Optional[str] = None,
        mobile: Optional[str] = None,
    ) -> VoterRequest:
        """Find a request by id, else the newest one matching document number or mobile."""
        if request_id:
            return self.get_request(request_id)

        for request in self.list_requests():
            if epic_id and request.epic_id == epic_id:
                return request
            if mobile and request.submitted_data.get("mobile") == mobile:
                return request
        raise RequestNotFoundError(request_id or epic_id or mobile or "")

    def list_requests(
        self,
        status=None,
        risk_tier=None,
        request_type=None,
    ) -> List[VoterRequest]:
        """Requests matching every given filter, newest first."""
        with self._lock:
            requests = list(self._requests.values())
            sequence = dict(self._sequence)

        if status is not None:
            status = _coerce(RequestStatus, status, "status")
            requests = [r for r in requests if r.status == status]
        if risk_tier is not None:
            risk_tier = _coerce(RiskTier, risk_tier, "risk_level")
            requests = [r for r in requests if r.risk_tier == risk_tier]
        if request_type is not None:
            request_type = _coerce(RequestType, request_type, "request_type")
            requests = [r for r in requests if r.request_type == request_type]

        return sorted(
            requests,
            key=lambda r: (r.submitted_at, sequence[r.request_id]),
            reverse=True,
        )

    def pending_counts(self) -> Dict[str, int]:
        pending = self.list_requests(status=RequestStatus.PENDING)
        return {
            "total": len(pending),
            "high_risk": sum(1 for r in pending if r.risk_tier.is_high_severity),
        }
