import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routers import audit, authority, voter
from api.schemas import HealthResponse
from core.exceptions import (
    IntegrityException,
    InvalidStatusTransitionError,
    NotFoundError,
    ValidationError,
)
from domains.factory import IntegrityServices, create_services
from risk_engine.config import load_config_from_env

logger = logging.getLogger(__name__)


def _error_status(exc: IntegrityException) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (ValidationError, InvalidStatusTransitionError)):
        return 400
    return 500


def create_app(services: Optional[IntegrityServices] = None) -> FastAPI:
    """Build the API over the given services (environment-configured when omitted)."""
    app = FastAPI(
        title="Election Integrity Risk API",
        description="Advisory risk scoring for voter-roll changes and post-election audits.",
        version="1.0.0",
    )
    if services is None:
        services = create_services(config=load_config_from_env())
    app.state.services = services

    # CORS (Allow local frontend development)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(IntegrityException)
    async def integrity_exception_handler(request: Request, exc: IntegrityException):
        status_code = _error_status(exc)
        log = logger.error if status_code >= 500 else logger.info
        log(f"Request failed: path={request.url.path} status={status_code} {exc.to_log_format()}")
        return JSONResponse(
            status_code=status_code,
            content={"success": False, "error": exc.message, "details": exc.to_dict()},
        )

    app.include_router(voter.router)
    app.include_router(authority.router)
    app.include_router(audit.router)

    @app.get("/api/health", response_model=HealthResponse)
    def health():
        return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc).isoformat())

    @app.get("/")
    def root():
        return {"status": "ok", "message": "Election Integrity API is running"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=5000)
