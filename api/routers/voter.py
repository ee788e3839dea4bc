"""
FastAPI Router for Citizen Voter Endpoints.

- Submit a request (scored on arrival)
- Track a request
- Look up a voter by document number
"""

from fastapi import APIRouter, Depends, Request

from api.dependencies import client_address, get_services
from api.schemas import TrackStatusRequest, VoterRequestCreate
from domains.factory import IntegrityServices

router = APIRouter(prefix="/api/voter", tags=["Voter Registry"])


@router.post("/request")
def submit_voter_request(
    body: VoterRequestCreate,
    request: Request,
    services: IntegrityServices = Depends(get_services),
):
    """
    Submit a citizen request. Invalid requests are rejected with 400.

    The velocity origin is the connecting client address, never a body field.
    """
    voter_request = services.registry.submit_request(
        body.request_type,
        body.submitted_data,
        origin_address=client_address(request),
        document_number=body.epic_id,
    )
    return {"success": True, "request": voter_request.to_dict()}


@router.post("/track-status")
def track_status(
    body: TrackStatusRequest,
    services: IntegrityServices = Depends(get_services),
):
    voter_request = services.registry.track_request(
        request_id=body.request_id,
        epic_id=body.epic_id,
        mobile=body.mobile,
    )
    return {"success": True, "request": voter_request.to_dict()}


@router.get("/epic/{epic_id}")
def get_voter_by_epic(
    epic_id: str,
    services: IntegrityServices = Depends(get_services),
):
    voter = services.registry.find_voter_by_document(epic_id)
    return {"success": True, "voter": voter.to_dict()}
