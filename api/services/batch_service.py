"""Batch certificate generation.

BatchController binds one template against every row of a dataset, exporting
and persisting one certificate per row. Rows are processed strictly in order,
one at a time. A failing row is recorded on the job and the batch carries on;
only malformed batch input aborts before the first row.

Collaborators are injected as protocols so the controller has no knowledge of
the database or the rendering backend:

    ArtifactExporter.render(artifact)          -> exported files
    CertificatePersistence.save_certificate(r) -> certificate id
    TemplateStore.get(template_id)             -> TemplateDocument
"""

import inspect
import logging
import secrets
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from rendering.binding import bind, stringify_value
from rendering.export import Deliverable, ExportedFile, sanitize_filename
from schemas import MaterializedArtifact, OutputFormat, TemplateDocument

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Certificate of Completion"
CERTIFICATE_ID_BYTES = 9  # 12 URL-safe characters

STATUS_INITIALIZING = "Initializing"
STATUS_COMPLETE = "Complete"
STATUS_CANCELLED = "Cancelled"


class BatchValidationError(ValueError):
    """Raised when batch input is malformed. Fatal before any row runs."""

    pass


@dataclass(frozen=True)
class RowError:
    index: int
    message: str


@dataclass(frozen=True)
class CertificateRecord:
    """Everything persisted for one generated certificate."""

    id: str
    template_id: str
    recipient_name: str
    title: str
    issuer_name: str
    issued_at: datetime
    recipient_email: str | None = None
    description: str | None = None
    owner_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class BatchJob:
    """Progress of one batch run. Owned by a single BatchController.run call."""

    total: int = 0
    current: int = 0
    status: str = STATUS_INITIALIZING
    percentage: float = 0.0
    errors: list[RowError] = field(default_factory=list)
    generated_ids: list[str] = field(default_factory=list)
    is_cancelled: bool = False
    is_generating: bool = False
    deliverables: list[Deliverable] = field(default_factory=list)

    def cancel(self) -> None:
        """Request cancellation. Honoured before the next row starts."""
        self.is_cancelled = True


@dataclass(frozen=True)
class IssuanceContext:
    """Per-batch settings: which columns mean what, and who issues."""

    template_id: str
    issuer_name: str = "Serenity"
    site_url: str = "http://localhost:3000"
    name_field: str = "Name"
    title_field: str = "Certificate"
    email_field: str = "Email"
    description_field: str | None = None
    default_title: str = DEFAULT_TITLE
    output_format: OutputFormat = OutputFormat.PDF
    required_columns: Sequence[str] = ()
    owner_id: str | None = None


class ArtifactExporter(Protocol):
    async def render(self, artifact: MaterializedArtifact) -> list[ExportedFile]: ...


class CertificatePersistence(Protocol):
    async def save_certificate(self, record: CertificateRecord) -> str: ...


class TemplateStore(Protocol):
    async def get(self, template_id: str) -> TemplateDocument: ...


ProgressCallback = Callable[[BatchJob], Any]


def generate_certificate_id() -> str:
    """Fresh public verification code (12 URL-safe characters)."""
    return secrets.token_urlsafe(CERTIFICATE_ID_BYTES)


def _cell(row: Mapping[str, Any], key: str | None) -> str:
    if not key:
        return ""
    return stringify_value(row.get(key)).strip()


def _email(row: Mapping[str, Any], field_name: str) -> str | None:
    value = _cell(row, field_name) or _cell(row, field_name.lower())
    return value or None


def build_record(
    row: Mapping[str, Any],
    index: int,
    certificate_id: str,
    context: IssuanceContext,
    *,
    issued_at: datetime | None = None,
) -> CertificateRecord:
    """Derive the persisted certificate fields from one data row."""
    return CertificateRecord(
        id=certificate_id,
        template_id=context.template_id,
        recipient_name=_cell(row, context.name_field) or f"Certificate_{index + 1}",
        title=_cell(row, context.title_field) or context.default_title,
        issuer_name=context.issuer_name,
        issued_at=issued_at or datetime.now(UTC),
        recipient_email=_email(row, context.email_field),
        description=_cell(row, context.description_field) or None,
        owner_id=context.owner_id,
        metadata={str(k): stringify_value(v) for k, v in row.items()},
    )


def validate_batch(
    template: TemplateDocument,
    rows: Sequence[Any],
    context: IssuanceContext,
) -> None:
    """Reject batch input that cannot produce any certificate.

    Raises:
        BatchValidationError: On an empty canvas, a non-positive size,
            rows that are not mappings, or missing required columns.
    """
    if not template.canvas_graph:
        raise BatchValidationError("Template has no canvas objects")
    if template.width <= 0 or template.height <= 0:
        raise BatchValidationError(
            f"Template size must be positive, got {template.width}x{template.height}"
        )

    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise BatchValidationError(f"Row {index} is not a mapping")

    if context.required_columns:
        headers: set[str] = set()
        for row in rows:
            headers.update(row.keys())
        missing = [c for c in context.required_columns if c not in headers]
        if missing:
            raise BatchValidationError(
                f"Missing required columns: {', '.join(missing)}"
            )


class BatchController:
    """Runs BindingEngine over every row and drives export + persistence."""

    def __init__(
        self,
        exporter: ArtifactExporter,
        persistence: CertificatePersistence,
        *,
        id_factory: Callable[[], str] = generate_certificate_id,
    ) -> None:
        self.exporter = exporter
        self.persistence = persistence
        self.id_factory = id_factory

    async def run(
        self,
        template: TemplateDocument,
        rows: Sequence[Mapping[str, Any]],
        context: IssuanceContext,
        *,
        job: BatchJob | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BatchJob:
        """Generate one certificate per row.

        Pass ``job`` to keep a handle for cancellation; ``on_progress`` is
        called after initialisation and after every row. An exception from
        ``on_progress`` is logged and the batch carries on.

        Raises:
            BatchValidationError: Before any row is processed.
        """
        validate_batch(template, rows, context)

        if job is None:
            job = BatchJob()
        total = len(rows)
        job.total = total
        job.current = 0
        job.status = STATUS_INITIALIZING
        job.percentage = 0.0
        job.errors = []
        job.generated_ids = []
        job.deliverables = []
        job.is_cancelled = False
        job.is_generating = True

        logger.info(
            "batch.started",
            extra={"template_id": context.template_id, "total": total},
        )
        await self._report(job, on_progress)

        for index, row in enumerate(rows):
            if job.is_cancelled:
                job.status = STATUS_CANCELLED
                job.is_generating = False
                logger.info(
                    "batch.cancelled",
                    extra={"template_id": context.template_id, "current": job.current},
                )
                await self._report(job, on_progress)
                return job

            try:
                certificate_id = await self._process_row(template, row, index, context, job)
            except Exception as e:
                job.errors.append(RowError(index=index, message=str(e) or type(e).__name__))
                logger.warning(
                    "batch.row.failed",
                    extra={
                        "template_id": context.template_id,
                        "row_index": index,
                        "error_type": type(e).__name__,
                    },
                )
            else:
                job.generated_ids.append(certificate_id)

            job.current = index + 1
            job.percentage = job.current / total * 100
            job.status = f"Processing {job.current} of {total}..."
            await self._report(job, on_progress)

        job.status = STATUS_COMPLETE
        job.percentage = 100.0
        job.is_generating = False
        logger.info(
            "batch.completed",
            extra={
                "template_id": context.template_id,
                "generated": len(job.generated_ids),
                "failed": len(job.errors),
            },
        )
        await self._report(job, on_progress)
        return job

    async def _process_row(
        self,
        template: TemplateDocument,
        row: Mapping[str, Any],
        index: int,
        context: IssuanceContext,
        job: BatchJob,
    ) -> str:
        certificate_id = self.id_factory()
        artifact = await bind(template, row, certificate_id, site_url=context.site_url)
        files = await self.exporter.render(artifact)

        record = build_record(row, index, certificate_id, context)
        saved_id = await self.persistence.save_certificate(record)

        base_name = f"{sanitize_filename(record.recipient_name)}_{saved_id}"
        job.deliverables.extend(
            Deliverable(
                certificate_id=saved_id,
                filename=f"{base_name}.{f.extension}",
                content=f.content,
                media_type=f.media_type,
            )
            for f in files
        )
        return saved_id

    @staticmethod
    async def _report(job: BatchJob, on_progress: ProgressCallback | None) -> None:
        if on_progress is None:
            return
        try:
            result = on_progress(job)
            if inspect.isawaitable(result):
                await result
        except Exception:
            # Listener failures never abort or stall the batch
            logger.warning(
                "batch.progress.failed",
                extra={"status": job.status, "current": job.current},
                exc_info=True,
            )
