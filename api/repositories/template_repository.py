"""Template repository for database operations."""

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models import Template
from repositories.utils import log_slow_query


class TemplateRepository:
    """Repository for Template database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @log_slow_query("template.get_by_id")
    async def get_by_id(self, template_id: str) -> Template | None:
        result = await self.db.execute(select(Template).where(Template.id == template_id))
        return result.scalar_one_or_none()

    @log_slow_query("template.list_public")
    async def list_public(self, *, query: str | None = None, limit: int = 50) -> list[Template]:
        """Public templates, most recently updated first.

        ``query`` matches case-insensitively against the template name and
        creator name.
        """
        stmt = select(Template).where(Template.is_public.is_(True))
        if query:
            pattern = f"%{query.strip().lower()}%"
            stmt = stmt.where(
                or_(
                    Template.name.ilike(pattern),
                    Template.creator_name.ilike(pattern),
                )
            )
        stmt = stmt.order_by(Template.updated_at.desc()).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create(
        self,
        template_id: str,
        *,
        name: str,
        canvas_json: str,
        width: int,
        height: int,
        owner_id: str | None = None,
        is_public: bool = False,
        creator_name: str | None = None,
        tags: list[str] | None = None,
    ) -> Template:
        template = Template(
            id=template_id,
            name=name,
            canvas_json=canvas_json,
            width=width,
            height=height,
            owner_id=owner_id,
            is_public=is_public,
            creator_name=creator_name,
            tags=tags or [],
            certificate_count=0,
        )
        self.db.add(template)
        await self.db.flush()
        return template

    async def increment_certificate_count(self, template_id: str, by: int = 1) -> None:
        """Bump the issued-certificate counter. Does NOT touch updated_at."""
        if by <= 0:
            return
        await self.db.execute(
            update(Template)
            .where(Template.id == template_id)
            .values(certificate_count=Template.certificate_count + by)
        )

