"""Public certificate verification endpoint."""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from core.config import get_settings
from core.database import DbSession
from core.ratelimit import VERIFY_LIMIT, get_client_ip, limiter
from schemas import VerificationError, VerificationResult
from services.verification_service import verify_certificate

router = APIRouter(prefix="/api/verify", tags=["verification"])

MIN_CERTIFICATE_ID_LENGTH = 8
MAX_CERTIFICATE_ID_LENGTH = 64

_STATUS_BY_ERROR = {
    VerificationError.NOT_FOUND: 404,
    VerificationError.REVOKED: 410,
    VerificationError.SERVER_ERROR: 500,
}


def request_time() -> datetime:
    """Clock used for the daily visitor salt. Overridden in tests."""
    return datetime.now(UTC)


RequestTime = Annotated[datetime, Depends(request_time)]


@router.get(
    "/{certificate_id}",
    response_model=VerificationResult,
    response_model_exclude_none=True,
    responses={
        400: {"description": "Malformed certificate id"},
        404: {"description": "Certificate not found"},
        410: {"description": "Certificate has been revoked"},
        429: {"description": "Rate limit exceeded"},
        500: {"description": "Verification temporarily unavailable"},
    },
)
@limiter.limit(VERIFY_LIMIT)
async def verify_certificate_endpoint(
    request: Request,
    certificate_id: str,
    db: DbSession,
    now: RequestTime,
) -> JSONResponse:
    """Verify a certificate by its public code and count the view."""
    if not (
        MIN_CERTIFICATE_ID_LENGTH <= len(certificate_id) <= MAX_CERTIFICATE_ID_LENGTH
    ):
        raise HTTPException(status_code=400, detail="Invalid certificate ID")

    result = await verify_certificate(
        db,
        certificate_id,
        get_client_ip(request),
        now,
        base_salt=get_settings().daily_ip_salt,
    )

    status_code = _STATUS_BY_ERROR[result.error] if result.error else 200
    return JSONResponse(
        status_code=status_code,
        content=result.model_dump(mode="json", exclude_none=True),
        headers={"Cache-Control": "no-store"},
    )
