"""Visitor repository for per-day view dedup records."""

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from models import CertificateVisitor
from repositories.utils import insert_if_absent


class VisitorRepository:
    """Repository for CertificateVisitor database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert_if_absent(
        self, certificate_id: str, visitor_hash: str, *, now: datetime
    ) -> bool:
        """Record a first view. Returns False if this visitor already exists.

        Concurrent callers with the same hash race on the composite primary
        key; exactly one of them gets True.
        """
        return await insert_if_absent(
            self.db,
            CertificateVisitor,
            {
                "certificate_id": certificate_id,
                "visitor_hash": visitor_hash,
                "first_view_at": now,
                "last_view_at": now,
                "view_count": 1,
            },
            index_elements=["certificate_id", "visitor_hash"],
        )

    async def record_repeat_view(
        self, certificate_id: str, visitor_hash: str, *, now: datetime
    ) -> None:
        await self.db.execute(
            update(CertificateVisitor)
            .where(
                CertificateVisitor.certificate_id == certificate_id,
                CertificateVisitor.visitor_hash == visitor_hash,
            )
            .values(
                last_view_at=now,
                view_count=CertificateVisitor.view_count + 1,
            )
        )
