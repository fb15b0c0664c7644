"""Template store endpoints."""

from fastapi import APIRouter, HTTPException, Path, Query, Request

from core.cache import TemplateListingCache
from core.database import DbSession
from schemas import (
    TemplateCreateRequest,
    TemplateListResponse,
    TemplateResponse,
    TemplateValidationError,
)
from services.templates_service import (
    TemplateNotFoundError,
    create_template,
    get_template,
    list_public_templates,
)

router = APIRouter(prefix="/api/templates", tags=["templates"])


def _listing_cache(request: Request) -> TemplateListingCache:
    return request.app.state.template_cache


@router.get("", response_model=TemplateListResponse)
async def list_templates_endpoint(
    request: Request,
    db: DbSession,
    q: str | None = Query(default=None, max_length=100),
    limit: int = Query(default=50, ge=1, le=100),
) -> TemplateListResponse:
    """Public templates, most recently updated first."""
    templates = await list_public_templates(
        db, _listing_cache(request), query=q, limit=limit
    )
    return TemplateListResponse(templates=templates, count=len(templates))


@router.post(
    "",
    response_model=TemplateResponse,
    status_code=201,
    responses={422: {"description": "Canvas JSON is not a usable template"}},
)
async def create_template_endpoint(
    request: Request,
    body: TemplateCreateRequest,
    db: DbSession,
) -> TemplateResponse:
    try:
        template = await create_template(db, body, cache=_listing_cache(request))
    except TemplateValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return TemplateResponse.model_validate(template)


@router.get(
    "/{template_id}",
    response_model=TemplateResponse,
    responses={404: {"description": "Template not found"}},
)
async def get_template_endpoint(
    db: DbSession,
    template_id: str = Path(min_length=1, max_length=64),
) -> TemplateResponse:
    try:
        template = await get_template(db, template_id)
    except TemplateNotFoundError:
        raise HTTPException(status_code=404, detail="Template not found")
    return TemplateResponse.model_validate(template)
