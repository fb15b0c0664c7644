"""Public certificate verification and view counting.

A verification looks a certificate up by its public code, reports revoked
certificates without side effects, and counts a view at most once per
visitor per calendar day (UTC).

Visitors are identified by a truncated SHA-256 of their network identity
and a salt that changes daily, so stored hashes cannot be joined across
days or reversed into addresses. Raw identities are never stored or logged.
"""

import hashlib
import logging
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models import Certificate
from repositories.certificate_repository import CertificateRepository
from repositories.visitor_repository import VisitorRepository
from schemas import VerificationResult, VerifiedCertificate

logger = logging.getLogger(__name__)

VISITOR_HASH_LENGTH = 32


def daily_salt(now: datetime, base_salt: str) -> str:
    """``<base_salt>-<YYYY-MM-DD>`` for the UTC calendar day of ``now``."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return f"{base_salt}-{now.astimezone(UTC).date().isoformat()}"


def hash_identity(identity: str, now: datetime, base_salt: str) -> str:
    """Privacy-preserving visitor key, stable within one UTC day."""
    salted = f"{identity}-{daily_salt(now, base_salt)}"
    return hashlib.sha256(salted.encode()).hexdigest()[:VISITOR_HASH_LENGTH]


def _to_verified(certificate: Certificate, view_count: int) -> VerifiedCertificate:
    return VerifiedCertificate(
        id=certificate.id,
        recipient_name=certificate.recipient_name,
        recipient_email=certificate.recipient_email,
        title=certificate.title,
        description=certificate.description,
        issued_at=certificate.issued_at,
        issuer_name=certificate.issuer_name,
        view_count=view_count,
        template_id=certificate.template_id,
    )


async def record_view(
    db: AsyncSession,
    certificate_id: str,
    visitor_hash: str,
    now: datetime,
) -> tuple[bool, int]:
    """Dedup and count one view inside the caller's transaction.

    Returns (is_new_view, view_count after this view). The visitor insert
    and the counter increment commit or roll back together.
    """
    visitors = VisitorRepository(db)
    certificates = CertificateRepository(db)

    is_new_view = await visitors.insert_if_absent(certificate_id, visitor_hash, now=now)
    if is_new_view:
        await certificates.increment_view_count(certificate_id)
    else:
        await visitors.record_repeat_view(certificate_id, visitor_hash, now=now)

    view_count = await certificates.get_view_count(certificate_id)
    return is_new_view, view_count


async def verify_certificate(
    db: AsyncSession,
    certificate_id: str,
    requester_identity: str,
    now: datetime,
    *,
    base_salt: str,
) -> VerificationResult:
    """Verify a certificate and count the view.

    Never raises for storage failures: they are logged and reported as a
    ``server_error`` result. The session is rolled back in that case; on
    success the caller commits.
    """
    try:
        certificate = await CertificateRepository(db).get_by_id(certificate_id)
        if certificate is None:
            logger.info("verify.not_found", extra={"certificate_id": certificate_id})
            return VerificationResult.not_found()

        if not certificate.is_active:
            logger.info("verify.revoked", extra={"certificate_id": certificate_id})
            return VerificationResult.revoked()

        visitor_hash = hash_identity(requester_identity, now, base_salt)
        is_new_view, view_count = await record_view(db, certificate_id, visitor_hash, now)
    except SQLAlchemyError as e:
        logger.exception(
            "verify.failed",
            extra={"certificate_id": certificate_id, "error_type": type(e).__name__},
        )
        await db.rollback()
        return VerificationResult.server_error()

    logger.info(
        "verify.view.counted" if is_new_view else "verify.view.repeat",
        extra={"certificate_id": certificate_id, "view_count": view_count},
    )
    return VerificationResult.valid(
        _to_verified(certificate, view_count), is_new_view=is_new_view
    )
