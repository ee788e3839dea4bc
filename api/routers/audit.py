"""
FastAPI Router for Post-Election Audit Endpoints.

No endpoint here exposes vote choice or per-candidate counts.
"""

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_services
from api.schemas import Form17AUpload, Form17CUpload
from domains.factory import IntegrityServices

router = APIRouter(prefix="/api/audit", tags=["Election Audit"])


@router.post("/form17a/upload")
def upload_form17a(
    body: Form17AUpload,
    services: IntegrityServices = Depends(get_services),
):
    result = services.audit.ingest_audit_batch(
        body.booth_id,
        [entry.model_dump() for entry in body.records],
    )
    return {
        "success": True,
        **result.to_dict(),
        "booth_risk": services.audit.get_booth_risk_summary(result.booth_id).to_dict(),
    }


@router.get("/form17a/{booth_id}")
def get_form17a_records(
    booth_id: str,
    services: IntegrityServices = Depends(get_services),
):
    records = services.audit.get_form17a_records_by_booth(booth_id)
    return {"success": True, "records": [r.to_dict() for r in records]}


@router.post("/form17c/upload")
def upload_form17c(
    body: Form17CUpload,
    services: IntegrityServices = Depends(get_services),
):
    summary = services.audit.ingest_booth_summary(body.model_dump())
    form17a_count = len(services.audit.get_form17a_records_by_booth(summary.booth_id))
    return {
        "success": True,
        "summary": summary.to_dict(),
        "form17a_count": form17a_count,
    }


@router.get("/form17c/{booth_id}")
def get_form17c_summary(
    booth_id: str,
    services: IntegrityServices = Depends(get_services),
):
    summary = services.audit.get_booth_summary(booth_id)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"No Form 17C summary for booth {booth_id}")
    return {"success": True, "summary": summary.to_dict()}


@router.get("/certificate/{constituency_id}")
def get_certificate(
    constituency_id: str,
    services: IntegrityServices = Depends(get_services),
):
    """Provisional integrity certificate, computed fresh on every call."""
    certificate = services.audit.get_certificate(constituency_id)
    return {"success": True, "certificate": certificate.to_dict()}
