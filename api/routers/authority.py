"""
FastAPI Router for Election Authority Endpoints.

Provides REST API for the review workflow:
- Request queue and status changes
- Flag listing and resolution
- Booth risk and dashboard counters
- Recent integrity events
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_services
from api.schemas import (
    ApproveRequest,
    BoothRiskResponse,
    FlagResolve,
    RequestStatusUpdate,
    StatsResponse,
)
from domains.factory import IntegrityServices

router = APIRouter(prefix="/api/authority", tags=["Election Authority"])


# =============================================================
# REQUEST QUEUE
# =============================================================

@router.get("/voter-requests")
def list_voter_requests(
    status: Optional[str] = Query(None, description="Filter by status"),
    risk_level: Optional[str] = Query(None, description="Filter by risk tier"),
    request_type: Optional[str] = Query(None, description="Filter by request type"),
    services: IntegrityServices = Depends(get_services),
):
    """Requests sorted newest first."""
    requests = services.registry.list_requests(
        status=status,
        risk_tier=risk_level,
        request_type=request_type,
    )
    return {"success": True, "requests": [r.to_dict() for r in requests]}


@router.post("/voter-request/{request_id}/status")
def update_request_status(
    request_id: str,
    body: RequestStatusUpdate,
    services: IntegrityServices = Depends(get_services),
):
    request = services.registry.update_request_status(request_id, body.status, body.updated_by)
    return {
        "success": True,
        "request": request.to_dict(),
        "queue": services.registry.pending_counts(),
    }


@router.post("/voter-request/{request_id}/approve")
def approve_request(
    request_id: str,
    body: Optional[ApproveRequest] = None,
    services: IntegrityServices = Depends(get_services),
):
    approved_by = body.approved_by if body else None
    request = services.registry.approve_request(request_id, approved_by)
    return {"success": True, "request": request.to_dict()}


# =============================================================
# FLAGS
# =============================================================

@router.get("/flags")
def list_flags(
    risk_level: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None),
    resolved: Optional[bool] = Query(None),
    booth_id: Optional[str] = Query(None),
    services: IntegrityServices = Depends(get_services),
):
    flags = services.audit.list_flags(
        risk_tier=risk_level,
        entity_type=entity_type,
        resolved=resolved,
        booth_id=booth_id,
    )
    return {"success": True, "flags": [f.to_dict() for f in flags]}


@router.post("/flag/{flag_id}/resolve")
def resolve_flag(
    flag_id: str,
    body: FlagResolve,
    services: IntegrityServices = Depends(get_services),
):
    """Resolve a flag. A second resolve keeps the first resolver."""
    flag = services.audit.resolve_flag(flag_id, body.resolved_by)
    return {"success": True, "flag": flag.to_dict()}


# =============================================================
# DASHBOARD
# =============================================================

@router.get("/booth/{booth_id}/risk", response_model=BoothRiskResponse)
def get_booth_risk(
    booth_id: str,
    services: IntegrityServices = Depends(get_services),
):
    summary = services.audit.get_booth_risk_summary(booth_id)
    return BoothRiskResponse(summary=summary.to_dict())


@router.get("/stats", response_model=StatsResponse)
def get_stats(services: IntegrityServices = Depends(get_services)):
    return StatsResponse(stats=services.stats())


@router.get("/events")
def recent_events(
    limit: int = Query(50, ge=1, le=500),
    services: IntegrityServices = Depends(get_services),
):
    """Most recent integrity events, newest first."""
    events = services.events.events[-limit:]
    return {"success": True, "events": [e.to_dict() for e in reversed(events)]}
