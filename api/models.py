"""SQLAlchemy models for certificate issuance and verification."""

from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from core.database import Base


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow)

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Template(TimestampMixin, Base):
    """A designed certificate layout.

    ``canvas_json`` holds the serialized canvas object graph as produced by
    the editor. It is parsed into a TemplateDocument before binding.
    """

    __tablename__ = "templates"
    __table_args__ = (Index("ix_templates_public_updated", "is_public", "updated_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    canvas_json: Mapped[str] = mapped_column(Text, nullable=False)
    width: Mapped[int] = mapped_column(Integer, nullable=False, default=842)
    height: Mapped[int] = mapped_column(Integer, nullable=False, default=595)
    owner_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    creator_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    certificate_count: Mapped[int] = mapped_column(Integer, default=0)


class Certificate(TimestampMixin, Base):
    """An issued certificate. ``id`` is the public verification code."""

    __tablename__ = "certificates"
    __table_args__ = (Index("ix_certificates_owner_issued", "owner_id", "issued_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    template_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    owner_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    issuer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict[str, str]] = mapped_column("metadata", JSON, default=dict)

    visitors: Mapped[list["CertificateVisitor"]] = relationship(
        back_populates="certificate",
        cascade="all, delete-orphan",
    )


class CertificateVisitor(Base):
    """Day-scoped view dedup record.

    Keyed by a daily-salted hash of the requester's network identity, so the
    same visitor gets a new row (and counts again) on each calendar day.
    """

    __tablename__ = "certificate_visitors"

    certificate_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("certificates.id", ondelete="CASCADE"),
        primary_key=True,
    )
    visitor_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    first_view_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    last_view_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    certificate: Mapped["Certificate"] = relationship(back_populates="visitors")
