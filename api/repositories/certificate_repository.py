"""Certificate repository for database operations."""

from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models import Certificate, utcnow
from repositories.utils import log_slow_query

MAX_LIST_LIMIT = 500


class CertificateRepository:
    """Repository for Certificate database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @log_slow_query("certificate.get_by_id")
    async def get_by_id(self, certificate_id: str) -> Certificate | None:
        """Get a certificate by its public id."""
        result = await self.db.execute(
            select(Certificate).where(Certificate.id == certificate_id)
        )
        return result.scalar_one_or_none()

    @log_slow_query("certificate.list_by_owner")
    async def list_by_owner(
        self, owner_id: str, *, limit: int = MAX_LIST_LIMIT
    ) -> list[Certificate]:
        """Certificates issued by an owner, newest first."""
        result = await self.db.execute(
            select(Certificate)
            .where(Certificate.owner_id == owner_id)
            .order_by(Certificate.issued_at.desc())
            .limit(min(limit, MAX_LIST_LIMIT))
        )
        return list(result.scalars().all())

    async def create(
        self,
        certificate_id: str,
        *,
        template_id: str,
        recipient_name: str,
        title: str,
        issuer_name: str,
        owner_id: str | None = None,
        recipient_email: str | None = None,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
        issued_at: datetime | None = None,
    ) -> Certificate:
        """Add a new certificate to the session and flush it.

        Flushing surfaces primary key collisions as IntegrityError here,
        inside the caller's transaction.
        """
        certificate = Certificate(
            id=certificate_id,
            template_id=template_id,
            owner_id=owner_id,
            recipient_name=recipient_name,
            recipient_email=recipient_email,
            title=title,
            description=description,
            issuer_name=issuer_name,
            issued_at=issued_at or utcnow(),
            view_count=0,
            is_active=True,
            metadata_=metadata or {},
        )
        self.db.add(certificate)
        await self.db.flush()
        return certificate

    async def increment_view_count(self, certificate_id: str) -> None:
        """Atomically add one to the total view counter."""
        await self.db.execute(
            update(Certificate)
            .where(Certificate.id == certificate_id)
            .values(view_count=Certificate.view_count + 1)
        )

    async def get_view_count(self, certificate_id: str) -> int:
        """Read the counter straight from the table (not the identity map)."""
        result = await self.db.execute(
            select(Certificate.view_count).where(Certificate.id == certificate_id)
        )
        return result.scalar_one()

    async def set_active(self, certificate_id: str, *, is_active: bool) -> bool:
        """Toggle the active flag. Returns False if no such certificate."""
        result = await self.db.execute(
            update(Certificate)
            .where(Certificate.id == certificate_id)
            .values(is_active=is_active, updated_at=utcnow())
        )
        return result.rowcount > 0
