"""Certificate business logic.

This module handles:
- Persisting generated certificates (one transaction per row)
- Running a batch for a stored template
- Listing an issuer's certificates
- Revocation

Routes and the CLI delegate to this module; the batch loop itself lives in
services.batch_service.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models import Certificate
from rendering.export import SvgArtifactExporter
from repositories.certificate_repository import CertificateRepository
from repositories.template_repository import TemplateRepository
from services.batch_service import (
    ArtifactExporter,
    BatchController,
    BatchJob,
    CertificateRecord,
    IssuanceContext,
    ProgressCallback,
    TemplateStore,
)
from services.templates_service import SqlTemplateStore

logger = logging.getLogger(__name__)


class CertificateNotFoundError(Exception):
    """Raised when a certificate id does not exist."""

    def __init__(self, certificate_id: str):
        self.certificate_id = certificate_id
        super().__init__(f"Certificate not found: {certificate_id}")


class SqlCertificatePersistence:
    """CertificatePersistence that commits each certificate on its own.

    A failed row rolls back only its own insert, so earlier rows of the
    batch stay persisted.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def save_certificate(self, record: CertificateRecord) -> str:
        async with self.session_maker() as session, session.begin():
            await CertificateRepository(session).create(
                record.id,
                template_id=record.template_id,
                owner_id=record.owner_id,
                recipient_name=record.recipient_name,
                recipient_email=record.recipient_email,
                title=record.title,
                description=record.description,
                issuer_name=record.issuer_name,
                metadata=record.metadata,
                issued_at=record.issued_at,
            )
            await TemplateRepository(session).increment_certificate_count(
                record.template_id
            )
        return record.id


async def generate_batch(
    session_maker: async_sessionmaker[AsyncSession],
    rows: Sequence[Mapping[str, Any]],
    context: IssuanceContext,
    *,
    templates: TemplateStore | None = None,
    exporter: ArtifactExporter | None = None,
    job: BatchJob | None = None,
    on_progress: ProgressCallback | None = None,
) -> BatchJob:
    """Load the template and run a batch over ``rows``.

    Raises:
        TemplateNotFoundError: If the template does not exist.
        TemplateValidationError: If the stored canvas is malformed.
        BatchValidationError: If the batch input is malformed.
    """
    templates = templates or SqlTemplateStore(session_maker)
    template = await templates.get(context.template_id)

    controller = BatchController(
        exporter or SvgArtifactExporter(context.output_format),
        SqlCertificatePersistence(session_maker),
    )
    return await controller.run(
        template, rows, context, job=job, on_progress=on_progress
    )


async def list_certificates(
    db: AsyncSession, owner_id: str, *, limit: int = 500
) -> list[Certificate]:
    return await CertificateRepository(db).list_by_owner(owner_id, limit=limit)


async def revoke_certificate(db: AsyncSession, certificate_id: str) -> None:
    """Mark a certificate inactive. Verification reports it as revoked.

    Raises:
        CertificateNotFoundError: If the certificate does not exist.
    """
    updated = await CertificateRepository(db).set_active(certificate_id, is_active=False)
    if not updated:
        raise CertificateNotFoundError(certificate_id)
    logger.info("certificate.revoked", extra={"certificate_id": certificate_id})
