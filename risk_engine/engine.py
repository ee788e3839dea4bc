"""
Risk Engine - Request Risk Scorer.

============================================================
PURPOSE
============================================================
The RequestRiskScorer is the entry point for scoring one
citizen request.

It orchestrates:
1. Input validation
2. Individual signal assessments
3. Weighted aggregation with ceiling override and floors
4. Tier classification
5. Result packaging

============================================================
AGGREGATION
============================================================
- Any CRITICAL flag forces the score to 100
- Otherwise: 0.4 x identity + 0.3 x address + 0.3 x velocity,
  rounded half-up, then raised to the highest signal floor
- Tier: >= 90 CRITICAL, >= 70 HIGH_RISK, >= 40 NEEDS_REVIEW

============================================================
STATE
============================================================
The scorer owns its indexes. Identity/address indexes are
read here and written by register_voter_record(); the
velocity window is appended on every scoring call. A scoring
call holds the scorer lock from validation to result, so
concurrent callers are serialized.

============================================================
USAGE
============================================================
    scorer = RequestRiskScorer()
    scorer.register_voter_record(existing_record)

    assessment = scorer.score(request)
    print(assessment.tier.value, assessment.score)

============================================================
"""

import logging
import threading
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Mapping, Optional

from core.clock import ClockProtocol, get_clock
from core.exceptions import RequestValidationError
from .assessors import (
    AddressDensityAssessor,
    BaseSignalAssessor,
    DocumentReuseAssessor,
    UnderageAssessor,
    VelocityAssessor,
)
from .config import (
    DEFAULT_REQUIRED_FIELDS,
    DOCUMENT_REQUIRED_TYPES,
    RequestRiskConfig,
)
from .indexes import AddressIndex, IdentityIndex, VelocityIndex
from .types import (
    RecordStatus,
    RequestRiskAssessment,
    RequestType,
    RiskTier,
    SignalAssessment,
    SignalKind,
    VoterRecord,
    VoterRequest,
)

logger = logging.getLogger(__name__)


NO_ANOMALIES = "No anomalies detected"


# ============================================================
# ARITHMETIC HELPERS
# ============================================================


def round_half_up(value) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def weighted_sum(values: Mapping[str, float], weights: Mapping[str, float]) -> Decimal:
    """Exact decimal sum of value x weight over the weight keys."""
    total = Decimal("0")
    for key, weight in weights.items():
        total += Decimal(str(weight)) * Decimal(str(values.get(key, 0)))
    return total


def clamp_score(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, value))


# ============================================================
# VALIDATION
# ============================================================


def validate_request(request: VoterRequest) -> RequestType:
    """
    Refuse requests that cannot be scored.

    Returns:
        The request type as a RequestType member

    Raises:
        RequestValidationError: unknown type, missing required
            fields, or no document number where one is required
    """
    try:
        request_type = RequestType(request.request_type)
    except ValueError:
        raise RequestValidationError(
            f"Invalid request type: {request.request_type}",
            fields=["request_type"],
        )

    data = request.submitted_data or {}
    missing = sorted(
        name for name in DEFAULT_REQUIRED_FIELDS.get(request_type, ())
        if data.get(name) in (None, "") or (isinstance(data.get(name), str) and not data[name].strip())
    )
    if request_type in DOCUMENT_REQUIRED_TYPES and not (request.epic_id or data.get("epic_id")):
        missing.append("epic_id")

    if missing:
        raise RequestValidationError(
            f"Missing required fields for {request_type.value}: {', '.join(missing)}",
            fields=missing,
        )
    return request_type


# ============================================================
# SCORER
# ============================================================


class RequestRiskScorer:
    """
    Scores citizen requests against the identity, address and
    velocity indexes.

    ============================================================
    RESPONSIBILITIES
    ============================================================
    1. Own the identity/address/velocity indexes
    2. Validate input
    3. Run every signal assessor
    4. Aggregate contributions into a 0-100 score
    5. Classify the tier and build the explanation
    ============================================================
    """

    def __init__(
        self,
        config: Optional[RequestRiskConfig] = None,
        identity_index: Optional[IdentityIndex] = None,
        address_index: Optional[AddressIndex] = None,
        velocity_index: Optional[VelocityIndex] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        """
        Initialize the scorer.

        Args:
            config: Thresholds and weights. Uses defaults if not provided.
            identity_index: Document number index (created if omitted)
            address_index: Address index (created if omitted)
            velocity_index: Per-origin window (created if omitted)
            clock: Time source for velocity windows and flag timestamps
        """
        self.config = config or RequestRiskConfig()
        self.config.validate()
        self.identity_index = identity_index if identity_index is not None else IdentityIndex()
        self.address_index = address_index if address_index is not None else AddressIndex()
        self.velocity_index = (
            velocity_index if velocity_index is not None
            else VelocityIndex(self.config.velocity_window_seconds)
        )
        self._clock = clock or get_clock()
        self._lock = threading.Lock()

        # Velocity stays last: it is the only assessor that writes.
        self._assessors: List[BaseSignalAssessor] = [
            DocumentReuseAssessor(self.identity_index, self.config),
            UnderageAssessor(self.config),
            AddressDensityAssessor(self.address_index, self.config),
            VelocityAssessor(self.velocity_index, self.config),
        ]

        self._weights: Dict[str, float] = {
            SignalKind.IDENTITY.value: self.config.identity_weight,
            SignalKind.ADDRESS.value: self.config.address_weight,
            SignalKind.VELOCITY.value: self.config.velocity_weight,
        }

    # --------------------------------------------------------
    # INDEX MAINTENANCE
    # --------------------------------------------------------

    def register_voter_record(self, record: VoterRecord) -> None:
        """Index an approved/seeded record for later lookups."""
        if record.status == RecordStatus.DELETED:
            return
        self.identity_index.add(record.epic_id, record.voter_record_id)
        self.address_index.add(record.address, record.voter_record_id)
        logger.debug(
            f"Indexed voter record: id={record.voter_record_id} epic={record.epic_id}"
        )

    # --------------------------------------------------------
    # SCORING
    # --------------------------------------------------------

    def score(self, request: VoterRequest) -> RequestRiskAssessment:
        """
        Score one request.

        Args:
            request: The submitted request (not yet stored)

        Returns:
            RequestRiskAssessment with score, tier, explanation, flags

        Raises:
            RequestValidationError: if the request cannot be scored
        """
        with self._lock:
            # --------------------------------------------------
            # Step 1: Validate input
            # --------------------------------------------------
            request.request_type = validate_request(request)
            now = self._clock.now()

            # --------------------------------------------------
            # Step 2: Run all assessors
            # --------------------------------------------------
            assessments = [assessor.assess(request, now) for assessor in self._assessors]

        # --------------------------------------------------
        # Step 3: Aggregate
        # --------------------------------------------------
        flags = [a.flag for a in assessments if a.flag is not None]
        contributions = self._contributions(assessments)
        ceiling = any(f.risk_tier == RiskTier.CRITICAL for f in flags)

        if ceiling:
            final_score = 100
        else:
            weighted = round_half_up(weighted_sum(contributions, self._weights))
            floor = max((a.score_floor for a in assessments if a.triggered), default=0)
            final_score = clamp_score(max(weighted, floor))

        # --------------------------------------------------
        # Step 4: Classify
        # --------------------------------------------------
        tier = self.tier_for(final_score)
        explanation = "; ".join(f.reason for f in flags) or NO_ANOMALIES

        for assessment in assessments:
            logger.debug(
                f"Signal {assessment.signal.value}: contribution={assessment.contribution} "
                f"factors={assessment.factors}"
            )

        result = RequestRiskAssessment(
            score=final_score,
            tier=tier,
            explanation=explanation,
            flags=flags,
            contributions=contributions,
            ceiling_applied=ceiling,
            assessed_at=now,
        )

        log = logger.warning if tier.is_high_severity else logger.info
        log(
            f"Scored request: id={request.request_id} type={request.request_type.value} "
            f"score={final_score} tier={tier.value} flags={len(flags)}"
        )
        return result

    def tier_for(self, score: int) -> RiskTier:
        c = self.config
        return RiskTier.from_score(
            score,
            critical_at=c.critical_score,
            high_at=c.high_risk_score,
            review_at=c.needs_review_score,
        )

    def _contributions(self, assessments: List[SignalAssessment]) -> Dict[str, int]:
        """Highest contribution per weighted signal."""
        contributions = {kind.value: 0 for kind in SignalKind}
        for assessment in assessments:
            key = assessment.signal.value
            contributions[key] = max(contributions[key], assessment.contribution)
        return contributions


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================


def format_risk_summary(assessment: RequestRiskAssessment) -> str:
    """
    Format a human-readable risk summary.

    Useful for logging, notifications, and reviewer queues.
    """
    lines = [
        "=" * 50,
        "REQUEST RISK SUMMARY",
        "=" * 50,
        f"Score: {assessment.score}/100",
        f"Tier: {assessment.tier.value}",
        f"Ceiling applied: {'yes' if assessment.ceiling_applied else 'no'}",
        "",
        "Signal Contributions:",
    ]
    for signal, value in assessment.contributions.items():
        lines.append(f"  {signal:<10} {value}")
    lines.append("")
    lines.append(f"Explanation: {assessment.explanation}")
    for flag in assessment.flags:
        lines.append(f"  [{flag.risk_tier.value}] {flag.rule_id.value}: {flag.explanation}")
    lines.append("=" * 50)
    return "\n".join(lines)
