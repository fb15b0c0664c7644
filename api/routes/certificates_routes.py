"""Certificate issuance endpoints.

Route ordering note: Literal path segments (/batch) are defined before
parameterized segments (/{certificate_id}/) to prevent routing conflicts.
"""

from fastapi import APIRouter, HTTPException, Path, Query, Request, Response

from core.config import get_settings
from core.database import DbSession, SessionMaker
from core.ratelimit import BATCH_LIMIT, limiter
from rendering.export import build_archive
from schemas import (
    BatchGenerateRequest,
    BatchJobResponse,
    CertificateListResponse,
    CertificateSummary,
    RowErrorResponse,
    TemplateValidationError,
)
from services.batch_service import BatchJob, BatchValidationError, IssuanceContext
from services.certificates_service import (
    CertificateNotFoundError,
    generate_batch,
    list_certificates,
    revoke_certificate,
)
from services.dataset_service import DatasetError, from_records
from services.templates_service import TemplateNotFoundError

router = APIRouter(prefix="/api/certificates", tags=["certificates"])


def _issuance_context(body: BatchGenerateRequest) -> IssuanceContext:
    return IssuanceContext(
        template_id=body.template_id,
        issuer_name=body.issuer_name,
        site_url=get_settings().site_url,
        name_field=body.name_field,
        title_field=body.title_field,
        email_field=body.email_field,
        description_field=body.description_field,
        output_format=body.output_format,
        required_columns=tuple(body.required_columns),
        owner_id=body.owner_id,
    )


async def _run_batch(session_maker: SessionMaker, body: BatchGenerateRequest) -> BatchJob:
    try:
        dataset = from_records(body.rows, max_rows=get_settings().batch_max_rows)
    except DatasetError as e:
        raise HTTPException(status_code=413, detail=str(e))

    try:
        return await generate_batch(
            session_maker, dataset.rows, _issuance_context(body)
        )
    except TemplateNotFoundError:
        raise HTTPException(status_code=404, detail="Template not found")
    except (TemplateValidationError, BatchValidationError) as e:
        raise HTTPException(status_code=422, detail=str(e))


def _to_response(job: BatchJob) -> BatchJobResponse:
    return BatchJobResponse(
        total=job.total,
        current=job.current,
        status=job.status,
        percentage=round(job.percentage, 1),
        errors=[RowErrorResponse(index=e.index, message=e.message) for e in job.errors],
        generated_ids=job.generated_ids,
        is_cancelled=job.is_cancelled,
    )


# --- Collection endpoints ---


@router.get("", response_model=CertificateListResponse)
async def list_certificates_endpoint(
    db: DbSession,
    owner_id: str = Query(min_length=1, max_length=255),
    limit: int = Query(default=500, ge=1, le=500),
) -> CertificateListResponse:
    """Certificates issued by an owner, most recent first."""
    certificates = await list_certificates(db, owner_id, limit=limit)
    return CertificateListResponse(
        certificates=[CertificateSummary.model_validate(c) for c in certificates]
    )


# --- Literal path routes (before parameterized) ---


@router.post(
    "/batch",
    response_model=BatchJobResponse,
    responses={
        404: {"description": "Template not found"},
        413: {"description": "Too many rows"},
        422: {"description": "Malformed template or batch input"},
    },
)
@limiter.limit(BATCH_LIMIT)
async def generate_batch_endpoint(
    request: Request,
    body: BatchGenerateRequest,
    session_maker: SessionMaker,
) -> BatchJobResponse:
    """Generate one certificate per row. Failed rows are reported, not raised."""
    job = await _run_batch(session_maker, body)
    return _to_response(job)


@router.post(
    "/batch/archive",
    responses={
        200: {"content": {"application/zip": {}}, "description": "ZIP of certificates"},
        404: {"description": "Template not found"},
        413: {"description": "Too many rows"},
        422: {"description": "Malformed template or batch input"},
    },
)
@limiter.limit(BATCH_LIMIT)
async def generate_batch_archive_endpoint(
    request: Request,
    body: BatchGenerateRequest,
    session_maker: SessionMaker,
) -> Response:
    """Generate a batch and download the rendered files as a ZIP."""
    job = await _run_batch(session_maker, body)
    return Response(
        content=build_archive(job.deliverables),
        media_type="application/zip",
        headers={
            "Content-Disposition": 'attachment; filename="certificates.zip"',
            "X-Generated-Count": str(len(job.generated_ids)),
            "X-Failed-Count": str(len(job.errors)),
        },
    )


# --- Parameterized routes ---


@router.post(
    "/{certificate_id}/revoke",
    status_code=204,
    responses={404: {"description": "Certificate not found"}},
)
async def revoke_certificate_endpoint(
    db: DbSession,
    certificate_id: str = Path(min_length=1, max_length=64),
) -> Response:
    """Revoke a certificate. Verification reports it as revoked afterwards."""
    try:
        await revoke_certificate(db, certificate_id)
    except CertificateNotFoundError:
        raise HTTPException(status_code=404, detail="Certificate not found")
    return Response(status_code=204)
