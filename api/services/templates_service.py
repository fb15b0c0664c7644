"""Template business logic.

- Loading stored templates as TemplateDocuments for binding
- Public template listing (cached, per worker)
- Template creation (invalidates the listing cache)
"""

import logging
import secrets

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.cache import TemplateListingCache
from models import Template
from repositories.template_repository import TemplateRepository
from schemas import (
    TemplateCreateRequest,
    TemplateDocument,
    TemplateSummary,
)

logger = logging.getLogger(__name__)

TEMPLATE_ID_BYTES = 12


class TemplateNotFoundError(Exception):
    """Raised when a template id does not exist."""

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Template not found: {template_id}")


def to_document(template: Template) -> TemplateDocument:
    """Parse a stored template row.

    Raises:
        TemplateValidationError: If the stored canvas is malformed.
    """
    return TemplateDocument.from_canvas_json(
        template.id,
        template.canvas_json,
        width=template.width,
        height=template.height,
    )


async def get_template(db: AsyncSession, template_id: str) -> Template:
    template = await TemplateRepository(db).get_by_id(template_id)
    if template is None:
        raise TemplateNotFoundError(template_id)
    return template


async def get_template_document(db: AsyncSession, template_id: str) -> TemplateDocument:
    """Load a template ready for binding.

    Raises:
        TemplateNotFoundError: If the template does not exist.
        TemplateValidationError: If the stored canvas is malformed.
    """
    return to_document(await get_template(db, template_id))


class SqlTemplateStore:
    """TemplateStore backed by the templates table."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def get(self, template_id: str) -> TemplateDocument:
        async with self.session_maker() as session:
            return await get_template_document(session, template_id)


async def list_public_templates(
    db: AsyncSession,
    cache: TemplateListingCache,
    *,
    query: str | None = None,
    limit: int = 50,
) -> list[TemplateSummary]:
    """Public templates, newest first. Served from cache when fresh."""
    normalized = (query or "").strip().lower()
    cached = cache.get(normalized, limit)
    if cached is not None:
        return cached

    templates = await TemplateRepository(db).list_public(query=normalized, limit=limit)
    summaries = [TemplateSummary.model_validate(t) for t in templates]
    cache.set(normalized, limit, summaries)
    return summaries


async def create_template(
    db: AsyncSession,
    request: TemplateCreateRequest,
    *,
    cache: TemplateListingCache | None = None,
) -> Template:
    """Store a new template after checking its canvas parses.

    Raises:
        TemplateValidationError: If ``canvas_json`` is not a usable canvas.
    """
    template_id = secrets.token_urlsafe(TEMPLATE_ID_BYTES)
    TemplateDocument.from_canvas_json(
        template_id,
        request.canvas_json,
        width=request.width,
        height=request.height,
    )

    template = await TemplateRepository(db).create(
        template_id,
        name=request.name,
        canvas_json=request.canvas_json,
        width=request.width,
        height=request.height,
        owner_id=request.owner_id,
        is_public=request.is_public,
        creator_name=request.creator_name,
        tags=request.tags,
    )
    if cache is not None and request.is_public:
        cache.invalidate()

    logger.info(
        "template.created",
        extra={"template_id": template_id, "is_public": request.is_public},
    )
    return template
