"""
Risk Engine - Request Signal Assessors.

============================================================
PURPOSE
============================================================
Individual signal assessors for citizen requests.

Each assessor:
1. Reads the submitted request and the current indexes
2. Applies a threshold ladder
3. Returns a SignalAssessment with contribution + optional flag

============================================================
ASSESSMENT LOGIC PATTERN
============================================================
For each ladder (bands sorted top-down):
    if value >= band.threshold:
        contribute band.contribution, raise band flag
Below every band: contribute 0, no flag

============================================================
SIDE EFFECTS
============================================================
Only the VelocityAssessor writes: it appends the current
submission to its origin window. The identity and address
indexes are read-only here; the registry service writes them
on approval.

============================================================
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

from .config import RequestRiskConfig
from .indexes import AddressIndex, IdentityIndex, VelocityIndex, normalize_address
from .types import (
    EntityType,
    Flag,
    RiskTier,
    RuleId,
    SignalAssessment,
    SignalKind,
    VoterRequest,
)


# ============================================================
# BANDS
# ============================================================


@dataclass(frozen=True)
class Band:
    """One rung of a threshold ladder."""

    threshold: int
    tier: RiskTier
    contribution: int
    rule_id: RuleId
    reason: str


def match_band(value: int, bands: Sequence[Band]) -> Optional[Band]:
    """Return the first band (top-down) whose threshold value meets."""
    for band in bands:
        if value >= band.threshold:
            return band
    return None


def parse_age(value: Any) -> Optional[int]:
    """
    Parse a submitted age leniently.

    Leading integer digits win ("17", " 17 ", "17.9" -> 17);
    anything unparsable yields None so the check is skipped.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    digits = ""
    for i, ch in enumerate(text):
        if ch.isdigit() or (i == 0 and ch in "+-"):
            digits += ch
        else:
            break
    try:
        return int(digits)
    except ValueError:
        return None


# ============================================================
# BASE ASSESSOR
# ============================================================


class BaseSignalAssessor(ABC):
    """
    Abstract base class for request signal assessors.

    Provides flag construction shared by every signal.
    """

    @property
    @abstractmethod
    def signal(self) -> SignalKind:
        """Return the weighted signal this assessor feeds."""
        pass

    @abstractmethod
    def assess(self, request: VoterRequest, now: datetime) -> SignalAssessment:
        pass

    def _quiet(self, **factors: Any) -> SignalAssessment:
        return SignalAssessment(signal=self.signal, contribution=0, flag=None, factors=factors)

    def _flag(
        self,
        request: VoterRequest,
        tier: RiskTier,
        score: int,
        rule_id: RuleId,
        reason: str,
        explanation: str,
        now: datetime,
    ) -> Flag:
        return Flag(
            entity_type=EntityType.VOTER_REQUEST,
            entity_id=request.request_id,
            risk_tier=tier,
            risk_score=score,
            rule_id=rule_id,
            reason=reason,
            explanation=explanation,
            created_at=now,
        )


# ============================================================
# IDENTITY: DOCUMENT NUMBER REUSE
# ============================================================


class DocumentReuseAssessor(BaseSignalAssessor):
    """
    Flag a document number already held by another voter record.

    The request's own record (a correction of one's own card) is
    not counted. A hit applies a score floor so reuse alone lands
    at HIGH_RISK or above.
    """

    def __init__(self, identity_index: IdentityIndex, config: Optional[RequestRiskConfig] = None):
        self.config = config or RequestRiskConfig()
        self._index = identity_index

    @property
    def signal(self) -> SignalKind:
        return SignalKind.IDENTITY

    def assess(self, request: VoterRequest, now: datetime) -> SignalAssessment:
        epic_id = request.submitted_data.get("epic_id") or request.epic_id
        if not epic_id:
            return self._quiet(epic_id=None)

        holders = [
            rid for rid in self._index.lookup(str(epic_id))
            if rid != request.voter_record_id
        ]
        if not holders:
            return self._quiet(epic_id=epic_id, holders=0)

        contribution = self.config.document_reuse_contribution
        flag = self._flag(
            request,
            RiskTier.HIGH_RISK,
            contribution,
            RuleId.DUPLICATE_EPIC,
            "Existing EPIC detected",
            f"EPIC {epic_id} already linked to {len(holders)} voter record(s)",
            now,
        )
        return SignalAssessment(
            signal=self.signal,
            contribution=contribution,
            flag=flag,
            score_floor=self.config.document_reuse_score_floor,
            factors={"epic_id": epic_id, "holders": len(holders)},
        )


# ============================================================
# IDENTITY: UNDERAGE
# ============================================================


class UnderageAssessor(BaseSignalAssessor):
    """
    Flag an applicant below the statutory voting age.

    The flag is CRITICAL, which forces the final score to 100
    regardless of any other signal.
    """

    def __init__(self, config: Optional[RequestRiskConfig] = None):
        self.config = config or RequestRiskConfig()

    @property
    def signal(self) -> SignalKind:
        return SignalKind.IDENTITY

    def assess(self, request: VoterRequest, now: datetime) -> SignalAssessment:
        age = parse_age(request.submitted_data.get("age"))
        minimum = self.config.minimum_voting_age
        if age is None or age >= minimum:
            return self._quiet(age=age)

        flag = self._flag(
            request,
            RiskTier.CRITICAL,
            100,
            RuleId.UNDERAGE_APPLICANT,
            "Underage Applicant",
            f"Age {age} is below statutory limit of {minimum}",
            now,
        )
        return SignalAssessment(signal=self.signal, contribution=100, flag=flag, factors={"age": age})


# ============================================================
# ADDRESS DENSITY
# ============================================================


class AddressDensityAssessor(BaseSignalAssessor):
    """
    Count registrations sharing the submitted address.

    Count = indexed records at the normalized address + 1 for the
    current submission.
    """

    def __init__(self, address_index: AddressIndex, config: Optional[RequestRiskConfig] = None):
        self.config = config or RequestRiskConfig()
        self._index = address_index
        c = self.config
        self._bands = (
            Band(c.address_critical_count, RiskTier.CRITICAL, c.address_critical_contribution,
                 RuleId.ADDRESS_DENSITY_CRITICAL, "Mass Voter Registration"),
            Band(c.address_high_count, RiskTier.HIGH_RISK, c.address_high_contribution,
                 RuleId.ADDRESS_DENSITY_HIGH, "High Density Address"),
            Band(c.address_medium_count, RiskTier.NEEDS_REVIEW, c.address_medium_contribution,
                 RuleId.ADDRESS_DENSITY_MEDIUM, "Medium Density Address"),
        )

    @property
    def signal(self) -> SignalKind:
        return SignalKind.ADDRESS

    def assess(self, request: VoterRequest, now: datetime) -> SignalAssessment:
        address = normalize_address(request.submitted_data.get("address"))
        if not address:
            return self._quiet(address=None)

        count = self._index.count(address) + 1
        band = match_band(count, self._bands)
        if band is None:
            return self._quiet(address=address, count=count)

        flag = self._flag(
            request,
            band.tier,
            band.contribution,
            band.rule_id,
            band.reason,
            f"{count} voters at single address",
            now,
        )
        return SignalAssessment(
            signal=self.signal,
            contribution=band.contribution,
            flag=flag,
            factors={"address": address, "count": count},
        )


# ============================================================
# VELOCITY
# ============================================================


class VelocityAssessor(BaseSignalAssessor):
    """
    Detect bursts of submissions from one network origin.

    Records the current submission, then classifies the window
    occupancy. Requests without an origin address are skipped.
    """

    def __init__(self, velocity_index: VelocityIndex, config: Optional[RequestRiskConfig] = None):
        self.config = config or RequestRiskConfig()
        self._index = velocity_index
        c = self.config
        self._bands = (
            Band(c.velocity_high_count, RiskTier.HIGH_RISK, c.velocity_high_contribution,
                 RuleId.BOT_VELOCITY_HIGH, "Bot-like Activity"),
            Band(c.velocity_medium_count, RiskTier.NEEDS_REVIEW, c.velocity_medium_contribution,
                 RuleId.BOT_VELOCITY_MEDIUM, "Suspicious Velocity"),
        )

    @property
    def signal(self) -> SignalKind:
        return SignalKind.VELOCITY

    def assess(self, request: VoterRequest, now: datetime) -> SignalAssessment:
        origin = request.origin_address
        if not origin:
            return self._quiet(origin=None)

        count = self._index.record(origin, now)
        band = match_band(count, self._bands)
        if band is None:
            return self._quiet(origin=origin, count=count)

        minutes = int(self._index.window_seconds // 60)
        flag = self._flag(
            request,
            band.tier,
            band.contribution,
            band.rule_id,
            band.reason,
            f"{count} requests from origin {origin} in {minutes} mins",
            now,
        )
        return SignalAssessment(
            signal=self.signal,
            contribution=band.contribution,
            flag=flag,
            factors={"origin": origin, "count": count},
        )
