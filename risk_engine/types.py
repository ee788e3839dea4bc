"""
Risk Engine - Type Definitions.

============================================================
PURPOSE
============================================================
Data contracts for the election integrity risk engine.

This module defines all enums and dataclasses used by the
request scorer, the audit scorer, the flag store and the
integrity certificate aggregator.

============================================================
DESIGN PRINCIPLES
============================================================
- One closed risk-tier vocabulary for every threshold table
- Immutable input and output records where possible
- Flags are immutable apart from their resolution tuple
- Clear separation between records and derived views

============================================================
ADVISORY ONLY
============================================================
Nothing in this module represents an accept/reject decision
or a vote tally. Scores and certificates are surfaced to a
human reviewer.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ============================================================
# ENUMS
# ============================================================


class RiskTier(str, Enum):
    """
    Discrete risk classification derived from a 0-100 score.

    Score ladder:
    - CRITICAL: >= 90
    - HIGH_RISK: >= 70
    - NEEDS_REVIEW: >= 40
    - NORMAL: below 40
    """

    NORMAL = "Normal"
    NEEDS_REVIEW = "Needs Review"
    HIGH_RISK = "High Risk"
    CRITICAL = "Critical"

    @classmethod
    def from_score(
        cls,
        score: int,
        critical_at: int = 90,
        high_at: int = 70,
        review_at: int = 40,
    ) -> "RiskTier":
        """
        Classify a tier from a final score.

        Args:
            score: Final score (0-100)
            critical_at: Lowest score mapped to CRITICAL
            high_at: Lowest score mapped to HIGH_RISK
            review_at: Lowest score mapped to NEEDS_REVIEW

        Returns:
            Appropriate RiskTier classification
        """
        if score >= critical_at:
            return cls.CRITICAL
        elif score >= high_at:
            return cls.HIGH_RISK
        elif score >= review_at:
            return cls.NEEDS_REVIEW
        return cls.NORMAL

    @property
    def severity_order(self) -> int:
        """Numeric ordering for severity comparison."""
        return _TIER_ORDER[self]

    @property
    def is_high_severity(self) -> bool:
        return self.severity_order >= _TIER_ORDER[RiskTier.HIGH_RISK]


_TIER_ORDER = {
    RiskTier.NORMAL: 0,
    RiskTier.NEEDS_REVIEW: 1,
    RiskTier.HIGH_RISK: 2,
    RiskTier.CRITICAL: 3,
}


class RequestType(str, Enum):
    """Kinds of citizen change request."""

    REGISTRATION = "registration"
    CORRECTION = "correction"
    TRANSFER = "transfer"
    DELETION = "deletion"
    LOST_CARD = "lost_card"


class RequestStatus(str, Enum):
    """Lifecycle of a voter request. Only authority action changes it."""

    PENDING = "Pending"
    UNDER_REVIEW = "Under Review"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    ON_HOLD = "On Hold"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestStatus.APPROVED, RequestStatus.REJECTED)


class RecordStatus(str, Enum):
    """Voter record status. Deletion flips status, never erases."""

    ACTIVE = "active"
    DELETED = "deleted"


class EntityType(str, Enum):
    """What a flag concerns."""

    VOTER_REQUEST = "voter_request"
    FORM17A = "form17a"
    FORM17C = "form17c"
    BOOTH = "booth"


class RuleId(str, Enum):
    """Stable machine-readable rule codes carried by flags."""

    DUPLICATE_EPIC = "DUPLICATE_EPIC"
    UNDERAGE_APPLICANT = "UNDERAGE_APPLICANT"
    ADDRESS_DENSITY_CRITICAL = "ADDRESS_DENSITY_CRITICAL"
    ADDRESS_DENSITY_HIGH = "ADDRESS_DENSITY_HIGH"
    ADDRESS_DENSITY_MEDIUM = "ADDRESS_DENSITY_MEDIUM"
    BOT_VELOCITY_HIGH = "BOT_VELOCITY_HIGH"
    BOT_VELOCITY_MEDIUM = "BOT_VELOCITY_MEDIUM"
    DUPLICATE_EPIC_AUDIT = "DUPLICATE_EPIC_AUDIT"
    DUPLICATE_SERIAL_AUDIT = "DUPLICATE_SERIAL_AUDIT"
    CROSS_BOOTH_DUPLICATE = "CROSS_BOOTH_DUPLICATE"
    POLLING_MISMATCH_MAJOR = "POLLING_MISMATCH_MAJOR"
    POLLING_MISMATCH_MODERATE = "POLLING_MISMATCH_MODERATE"


# Rules that indicate one identity appearing more than once
DUPLICATE_IDENTITY_RULES = frozenset({
    RuleId.DUPLICATE_EPIC,
    RuleId.DUPLICATE_EPIC_AUDIT,
    RuleId.CROSS_BOOTH_DUPLICATE,
})


class SignalKind(str, Enum):
    """The weighted components of a request score."""

    IDENTITY = "identity"
    ADDRESS = "address"
    VELOCITY = "velocity"


class CertificateStatus(str, Enum):
    PROVISIONAL = "PROVISIONAL"
    VERIFIED = "VERIFIED"
    FLAGGED = "FLAGGED"


class PollingStatus(str, Enum):
    MATCH = "MATCH"
    CRITICAL_MISMATCH = "CRITICAL_MISMATCH"


class RollRiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# ============================================================
# FLAGS
# ============================================================


@dataclass
class Flag:
    """
    One detected anomaly.

    Everything except the resolution tuple (resolved, resolved_by,
    resolved_at) is fixed at creation. Resolution goes one way and
    is performed only by a FlagStore.
    """

    entity_type: EntityType
    entity_id: str
    risk_tier: RiskTier
    risk_score: int
    rule_id: RuleId
    reason: str
    explanation: str
    flag_id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)
    booth_ids: Tuple[str, ...] = ()

    resolved: bool = False
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None

    @property
    def is_high_severity(self) -> bool:
        return self.risk_tier.is_high_severity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flag_id": self.flag_id,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "risk_level": self.risk_tier.value,
            "risk_score": self.risk_score,
            "rule_id": self.rule_id.value,
            "reason": self.reason,
            "explanation": self.explanation,
            "booth_ids": list(self.booth_ids),
            "created_at": self.created_at.isoformat(),
            "resolved": self.resolved,
            "resolved_by": self.resolved_by,
            "resolved_at": _iso(self.resolved_at),
        }


# ============================================================
# VOTER REGISTRY RECORDS
# ============================================================


@dataclass
class VoterRecord:
    """A registered identity. Mutated only by the registry service."""

    voter_record_id: str
    name: str
    address: str
    epic_id: Optional[str] = None
    age: Optional[int] = None
    dob: Optional[str] = None
    gender: Optional[str] = None
    guardian_name: Optional[str] = None
    relation: Optional[str] = None
    constituency: Optional[str] = None
    assembly_constituency: Optional[str] = None
    polling_station: Optional[str] = None
    part_no: Optional[str] = None
    serial_no: Optional[str] = None
    state: Optional[str] = None
    mobile: Optional[str] = None
    email: Optional[str] = None
    status: RecordStatus = RecordStatus.ACTIVE
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "voter_record_id": self.voter_record_id,
            "epic_id": self.epic_id,
            "name": self.name,
            "guardian_name": self.guardian_name,
            "relation": self.relation,
            "gender": self.gender,
            "age": self.age,
            "dob": self.dob,
            "address": self.address,
            "constituency": self.constituency,
            "assembly_constituency": self.assembly_constituency,
            "polling_station": self.polling_station,
            "part_no": self.part_no,
            "serial_no": self.serial_no,
            "state": self.state,
            "mobile": self.mobile,
            "email": self.email,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class VoterRequest:
    """
    One citizen-submitted change action.

    Risk fields are computed once at submission and never
    recomputed. Status changes only by authority action.
    """

    voter_record_id: str
    request_type: RequestType
    submitted_data: Dict[str, Any]
    request_id: str = field(default_factory=_new_id)
    epic_id: Optional[str] = None
    origin_address: Optional[str] = None
    status: RequestStatus = RequestStatus.PENDING
    risk_tier: RiskTier = RiskTier.NORMAL
    risk_score: int = 0
    risk_explanation: str = ""
    flags: List[Flag] = field(default_factory=list)
    submitted_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    updated_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "voter_record_id": self.voter_record_id,
            "request_type": self.request_type.value,
            "epic_id": self.epic_id,
            "submitted_data": dict(self.submitted_data),
            "status": self.status.value,
            "risk_level": self.risk_tier.value,
            "risk_score": self.risk_score,
            "risk_explanation": self.risk_explanation,
            "flags": [f.to_dict() for f in self.flags],
            "submitted_at": self.submitted_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "updated_by": self.updated_by,
            "ip_address": self.origin_address,
        }


# ============================================================
# AUDIT RECORDS
# ============================================================


@dataclass(frozen=True)
class Form17AEntry:
    """One poll-book entry as submitted, before ingestion."""

    epic_id: str
    serial_number: str
    voter_name: str = ""
    thumb_impression_hash: Optional[str] = None
    signature_hash: Optional[str] = None


@dataclass(frozen=True)
class Form17ARecord:
    """One digitized poll-book entry. Write-once on ingestion."""

    booth_id: str
    epic_id: str
    serial_number: str
    voter_name: str
    upload_id: str
    record_id: str = field(default_factory=_new_id)
    thumb_impression_hash: Optional[str] = None
    signature_hash: Optional[str] = None
    uploaded_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "booth_id": self.booth_id,
            "epic_id": self.epic_id,
            "serial_number": self.serial_number,
            "voter_name": self.voter_name,
            "thumb_impression_hash": self.thumb_impression_hash,
            "signature_hash": self.signature_hash,
            "form17a_upload_id": self.upload_id,
            "uploaded_at": self.uploaded_at.isoformat(),
        }


@dataclass(frozen=True)
class Form17CSummary:
    """One booth's official aggregate tally. Later uploads replace earlier."""

    booth_id: str
    constituency: str
    total_electors: int
    total_votes_polled: int
    valid_votes: int = 0
    rejected_votes: int = 0
    summary_id: str = field(default_factory=_new_id)
    uploaded_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary_id": self.summary_id,
            "booth_id": self.booth_id,
            "constituency": self.constituency,
            "total_electors": self.total_electors,
            "total_votes_polled": self.total_votes_polled,
            "valid_votes": self.valid_votes,
            "rejected_votes": self.rejected_votes,
            "uploaded_at": self.uploaded_at.isoformat(),
        }


# ============================================================
# SCORING OUTPUTS
# ============================================================


@dataclass(frozen=True)
class SignalAssessment:
    """
    Result of one request signal.

    contribution is the 0-100 value fed into the weighted sum;
    flag is None when the signal stayed quiet.
    """

    signal: SignalKind
    contribution: int = 0
    flag: Optional[Flag] = None
    score_floor: int = 0
    factors: Dict[str, Any] = field(default_factory=dict)

    @property
    def triggered(self) -> bool:
        return self.flag is not None


@dataclass(frozen=True)
class RequestRiskAssessment:
    """
    Complete output of the request scorer.

    ============================================================
    OUTPUT GUARANTEES
    ============================================================
    - score: integer in [0, 100]
    - tier: RiskTier.from_score(score)
    - explanation: never empty
    ============================================================
    """

    score: int
    tier: RiskTier
    explanation: str
    flags: List[Flag] = field(default_factory=list)
    contributions: Dict[str, int] = field(default_factory=dict)
    ceiling_applied: bool = False
    assessed_at: datetime = field(default_factory=_utcnow)

    @property
    def rule_ids(self) -> List[RuleId]:
        return [f.rule_id for f in self.flags]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risk_score": self.score,
            "risk_level": self.tier.value,
            "explanation": self.explanation,
            "flags": [f.to_dict() for f in self.flags],
            "contributions": dict(self.contributions),
            "ceiling_applied": self.ceiling_applied,
            "assessed_at": self.assessed_at.isoformat(),
        }


@dataclass(frozen=True)
class AuditBatchResult:
    """Outcome of ingesting one Form 17A upload."""

    batch_id: str
    booth_id: str
    record_count: int
    flags: List[Flag] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "upload_id": self.batch_id,
            "booth_id": self.booth_id,
            "record_count": self.record_count,
            "flags": [f.to_dict() for f in self.flags],
        }


@dataclass(frozen=True)
class BoothRiskSummary:
    booth_id: str
    risk_tier: RiskTier
    flag_count: int
    high_risk_flags: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "booth_id": self.booth_id,
            "risk_level": self.risk_tier.value,
            "flag_count": self.flag_count,
            "high_risk_flags": self.high_risk_flags,
        }


# ============================================================
# INTEGRITY CERTIFICATE
# ============================================================


@dataclass(frozen=True)
class RollRiskScore:
    total_voters: int
    high_risk_detected: int
    duplicate_probability: float
    cluster_size_alerts: int
    final_score: int
    risk_level: RollRiskLevel

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_voters": self.total_voters,
            "high_risk_detected": self.high_risk_detected,
            "duplicate_probability": self.duplicate_probability,
            "cluster_size_alerts": self.cluster_size_alerts,
            "final_score": self.final_score,
            "risk_level": self.risk_level.value,
        }


@dataclass(frozen=True)
class PollingConsistency:
    total_booths: int
    matched_booths: int
    mismatched_booths: int
    total_votes_form17a: int
    total_votes_form17c: int
    deviation_percentage: float
    status: PollingStatus
    final_score: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_booths": self.total_booths,
            "matched_booths": self.matched_booths,
            "mismatched_booths": self.mismatched_booths,
            "total_votes_form17a": self.total_votes_form17a,
            "total_votes_form17c": self.total_votes_form17c,
            "deviation_percentage": self.deviation_percentage,
            "status": self.status.value,
            "final_score": self.final_score,
        }


@dataclass(frozen=True)
class TurnoutAnalytics:
    current_turnout: float
    historical_average: float
    deviation_from_baseline: float
    spike_detected: bool
    final_score: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_turnout": self.current_turnout,
            "historical_average": self.historical_average,
            "deviation_from_baseline": self.deviation_from_baseline,
            "spike_detected": self.spike_detected,
            "final_score": self.final_score,
        }


@dataclass(frozen=True)
class ScoreBreakdown:
    roll_risk_weight: float
    polling_consistency_weight: float
    turnout_analytics_weight: float
    roll_score_contribution: float
    polling_score_contribution: float
    turnout_score_contribution: float

    @property
    def total_weight(self) -> float:
        return round(
            self.roll_risk_weight + self.polling_consistency_weight + self.turnout_analytics_weight,
            10,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "roll_risk_weight": self.roll_risk_weight,
            "polling_consistency_weight": self.polling_consistency_weight,
            "turnout_analytics_weight": self.turnout_analytics_weight,
            "roll_score_contribution": self.roll_score_contribution,
            "polling_score_contribution": self.polling_score_contribution,
            "turnout_score_contribution": self.turnout_score_contribution,
        }


@dataclass(frozen=True)
class IntegrityCertificate:
    """
    Point-in-time, read-only confidence view for one constituency.

    Regenerated on every request and never stored. It must not
    gate or alter any tally or approval.
    """

    constituency_id: str
    roll_risk: RollRiskScore
    polling_consistency: PollingConsistency
    turnout_analytics: TurnoutAnalytics
    final_confidence_index: int
    score_breakdown: ScoreBreakdown
    status: CertificateStatus
    generated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "constituency_id": self.constituency_id,
            "generated_at": self.generated_at.isoformat(),
            "roll_risk": self.roll_risk.to_dict(),
            "polling_consistency": self.polling_consistency.to_dict(),
            "turnout_analytics": self.turnout_analytics.to_dict(),
            "final_confidence_index": self.final_confidence_index,
            "score_breakdown": self.score_breakdown.to_dict(),
            "status": self.status.value,
        }
