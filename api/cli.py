#!/usr/bin/env python3
"""CLI for Serenity certificate management tasks.

Usage:
    python -m cli <command>

Commands:
    create-tables   Create database tables that do not exist yet
    add-template    Store a canvas JSON file as a template
    generate        Generate certificates for a template from a CSV or .xlsx file
    revoke          Revoke a certificate by its verification code
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def _with_session_maker(action):
    from core.database import create_engine, create_session_maker, dispose_engine

    engine = create_engine()
    try:
        return await action(create_session_maker(engine))
    finally:
        await dispose_engine(engine)


def cmd_create_tables() -> int:
    """Create database tables."""
    from core.database import create_engine, create_tables, dispose_engine

    async def _run() -> None:
        engine = create_engine()
        try:
            await create_tables(engine)
        finally:
            await dispose_engine(engine)

    asyncio.run(_run())
    logger.info("Tables ready")
    return 0


def cmd_add_template(args: argparse.Namespace) -> int:
    """Store a canvas JSON file as a template."""
    from schemas import TemplateCreateRequest, TemplateValidationError
    from services.templates_service import create_template

    request = TemplateCreateRequest(
        name=args.name,
        canvas_json=Path(args.file).read_text(encoding="utf-8"),
        width=args.width,
        height=args.height,
        owner_id=args.owner,
        is_public=args.public,
    )

    async def _run(session_maker):
        async with session_maker() as session, session.begin():
            return await create_template(session, request)

    try:
        template = asyncio.run(_with_session_maker(_run))
    except TemplateValidationError as e:
        logger.error(f"Invalid template: {e}")
        return 1

    print(template.id)
    return 0


def _read_dataset(args: argparse.Namespace, max_rows: int):
    from services.dataset_service import (
        SPREADSHEET_SUFFIXES,
        parse_csv,
        parse_spreadsheet,
    )

    path = Path(args.data)
    if path.suffix.lower() in SPREADSHEET_SUFFIXES:
        return parse_spreadsheet(path.read_bytes(), sheet=args.sheet, max_rows=max_rows)
    return parse_csv(path.read_text(encoding="utf-8"), max_rows=max_rows)


def cmd_generate(args: argparse.Namespace) -> int:
    """Generate certificates from a CSV or .xlsx file and write them to a ZIP.

    Ctrl+C cancels before the next row; the certificates issued so far are
    still written to the archive.
    """
    from core.config import get_settings
    from rendering.export import build_archive
    from schemas import OutputFormat, TemplateValidationError
    from services.batch_service import (
        STATUS_CANCELLED,
        BatchJob,
        BatchValidationError,
        IssuanceContext,
    )
    from services.certificates_service import generate_batch
    from services.dataset_service import DatasetError
    from services.templates_service import TemplateNotFoundError

    settings = get_settings()
    try:
        dataset = _read_dataset(args, settings.batch_max_rows)
    except (DatasetError, UnicodeDecodeError) as e:
        logger.error(f"Cannot read {args.data}: {e}")
        return 1
    if not dataset.rows:
        logger.error(f"No data rows in {args.data}")
        return 1

    context = IssuanceContext(
        template_id=args.template_id,
        issuer_name=args.issuer,
        site_url=settings.site_url,
        name_field=args.name_field,
        title_field=args.title_field,
        output_format=OutputFormat(args.format),
        required_columns=tuple(args.require or ()),
        owner_id=args.owner,
    )
    job = BatchJob()

    def _progress(current: BatchJob) -> None:
        logger.info(f"{current.status} ({current.percentage:.0f}%)")

    async def _run(session_maker):
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, job.cancel)
            handles_sigint = True
        except NotImplementedError:
            logger.debug("SIGINT handler unavailable; Ctrl+C aborts the batch")
            handles_sigint = False
        try:
            return await generate_batch(
                session_maker, dataset.rows, context, job=job, on_progress=_progress
            )
        finally:
            if handles_sigint:
                loop.remove_signal_handler(signal.SIGINT)

    try:
        asyncio.run(_with_session_maker(_run))
    except TemplateNotFoundError:
        logger.error(f"Template not found: {args.template_id}")
        return 1
    except (TemplateValidationError, BatchValidationError) as e:
        logger.error(f"Cannot generate batch: {e}")
        return 1

    Path(args.output).write_bytes(build_archive(job.deliverables))
    for error in job.errors:
        logger.warning(f"Row {error.index + 1} failed: {error.message}")
    if job.status == STATUS_CANCELLED:
        logger.warning(
            f"Cancelled after {job.current} of {job.total} rows; "
            f"{len(job.generated_ids)} certificates -> {args.output}"
        )
        return 130
    logger.info(
        f"Generated {len(job.generated_ids)} of {job.total} certificates -> {args.output}"
    )
    return 0 if not job.errors else 2


def cmd_revoke(args: argparse.Namespace) -> int:
    """Revoke a certificate."""
    from services.certificates_service import (
        CertificateNotFoundError,
        revoke_certificate,
    )

    async def _run(session_maker) -> None:
        async with session_maker() as session, session.begin():
            await revoke_certificate(session, args.certificate_id)

    try:
        asyncio.run(_with_session_maker(_run))
    except CertificateNotFoundError:
        logger.error(f"Certificate not found: {args.certificate_id}")
        return 1

    logger.info(f"Revoked {args.certificate_id}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Serenity certificate CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("create-tables", help="Create database tables")

    add_template = subparsers.add_parser(
        "add-template", help="Store a canvas JSON file as a template"
    )
    add_template.add_argument("file", help="Path to the canvas JSON")
    add_template.add_argument("--name", required=True)
    add_template.add_argument("--width", type=int, default=842)
    add_template.add_argument("--height", type=int, default=595)
    add_template.add_argument("--owner", default=None)
    add_template.add_argument("--public", action="store_true")

    generate = subparsers.add_parser(
        "generate", help="Generate certificates for a template from a CSV or .xlsx file"
    )
    generate.add_argument("template_id")
    generate.add_argument("data", help="CSV or .xlsx file with a header row")
    generate.add_argument("--sheet", default=None, help="Worksheet name (default: first)")
    generate.add_argument("-o", "--output", default="certificates.zip")
    generate.add_argument("--issuer", default="Serenity")
    generate.add_argument("--name-field", default="Name")
    generate.add_argument("--title-field", default="Certificate")
    generate.add_argument("--format", choices=["pdf", "png", "both"], default="pdf")
    generate.add_argument(
        "--require", action="append", help="Column that must be present (repeatable)"
    )
    generate.add_argument("--owner", default=None)

    revoke = subparsers.add_parser("revoke", help="Revoke a certificate")
    revoke.add_argument("certificate_id")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "create-tables":
        return cmd_create_tables()
    elif args.command == "add-template":
        return cmd_add_template(args)
    elif args.command == "generate":
        return cmd_generate(args)
    elif args.command == "revoke":
        return cmd_revoke(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
