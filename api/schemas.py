"""
Pydantic Schemas for the Election Integrity API.
"""

import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


# =============================================================
# VOTER REGISTRY
# =============================================================

class VoterRequestCreate(BaseModel):
    """Citizen submission."""
    request_type: str
    submitted_data: Dict[str, Any] = Field(default_factory=dict)
    epic_id: Optional[str] = None

    @field_validator("submitted_data")
    @classmethod
    def drop_non_finite_numbers(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        """NaN and Infinity are accepted by the JSON parser but cannot be echoed back."""
        return {
            key: None if isinstance(value, float) and not math.isfinite(value) else value
            for key, value in v.items()
        }


class TrackStatusRequest(BaseModel):
    request_id: Optional[str] = None
    epic_id: Optional[str] = None
    mobile: Optional[str] = None


class RequestStatusUpdate(BaseModel):
    """Authority action on a request."""
    status: str
    updated_by: Optional[str] = None


class ApproveRequest(BaseModel):
    approved_by: Optional[str] = None


# =============================================================
# FLAGS
# =============================================================

class FlagResolve(BaseModel):
    resolved_by: Optional[str] = None


# =============================================================
# AUDIT
# =============================================================

class Form17AEntrySchema(BaseModel):
    """One poll-book entry. Blank identifiers are rejected by the service."""
    epic_id: str = ""
    serial_number: str = ""
    voter_name: str = ""
    thumb_impression_hash: Optional[str] = None
    signature_hash: Optional[str] = None


class Form17AUpload(BaseModel):
    booth_id: str
    records: List[Form17AEntrySchema]


class Form17CUpload(BaseModel):
    booth_id: str
    constituency: str
    total_electors: int = Field(0, ge=0)
    total_votes_polled: int = Field(..., ge=0)
    valid_votes: int = Field(0, ge=0)
    rejected_votes: int = Field(0, ge=0)


# =============================================================
# RESPONSES
# =============================================================

class HealthResponse(BaseModel):
    status: str
    timestamp: str


class DashboardStats(BaseModel):
    pending_requests: int
    high_risk_requests: int
    total_flags: int
    high_risk_flags: int
    voters_registered: int


class StatsResponse(BaseModel):
    success: bool = True
    stats: DashboardStats


class BoothRiskResponse(BaseModel):
    success: bool = True
    summary: Dict[str, Any]
