"""End-to-end tests for the management CLI against a temporary database."""

import io
import os
import signal
import zipfile
from unittest.mock import patch

import pytest
from openpyxl import Workbook

from cli import build_parser, main
from core.config import clear_settings_cache
from tests.factories import canvas_json, qr_object, text_object


@pytest.fixture
def cli_db(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")
    clear_settings_cache()
    assert main(["create-tables"]) == 0
    return tmp_path


@pytest.fixture
def template_id(cli_db, capsys) -> str:
    canvas = cli_db / "canvas.json"
    canvas.write_text(canvas_json(text_object("Name"), qr_object()), encoding="utf-8")

    assert main(["add-template", str(canvas), "--name", "Workshop", "--public"]) == 0
    return capsys.readouterr().out.strip()


@pytest.mark.unit
class TestParser:
    def test_generate_defaults(self):
        args = build_parser().parse_args(["generate", "tpl_1", "rows.csv"])

        assert args.output == "certificates.zip"
        assert args.format == "pdf"
        assert args.name_field == "Name"
        assert args.title_field == "Certificate"
        assert args.sheet is None
        assert args.require is None

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out


@pytest.mark.integration
class TestCommands:
    def test_add_template_rejects_bad_canvas(self, cli_db):
        bad = cli_db / "bad.json"
        bad.write_text("{}", encoding="utf-8")

        assert main(["add-template", str(bad), "--name", "Broken"]) == 1

    def test_generate_writes_archive(self, cli_db, template_id):
        rows = cli_db / "rows.csv"
        rows.write_text("Name,Course\nAda,Engines\nAlan,Computability\n", encoding="utf-8")
        output = cli_db / "out.zip"

        with patch("rendering.export.svg_to_pdf", return_value=b"%PDF-1.4 fake"):
            code = main(["generate", template_id, str(rows), "-o", str(output)])

        assert code == 0
        with zipfile.ZipFile(io.BytesIO(output.read_bytes())) as archive:
            assert len(archive.namelist()) == 2

    def test_generate_from_spreadsheet(self, cli_db, template_id):
        workbook = Workbook()
        workbook.active.title = "Notes"
        recipients = workbook.create_sheet("Recipients")
        for row in [("Name", "Course"), ("Ada", "Engines"), ("Grace", "Compilers")]:
            recipients.append(row)
        rows = cli_db / "rows.xlsx"
        workbook.save(rows)
        output = cli_db / "out.zip"

        with patch("rendering.export.svg_to_pdf", return_value=b"%PDF-1.4 fake"):
            code = main(
                ["generate", template_id, str(rows), "--sheet", "Recipients", "-o", str(output)]
            )

        assert code == 0
        with zipfile.ZipFile(io.BytesIO(output.read_bytes())) as archive:
            names = sorted(archive.namelist())
        assert len(names) == 2
        assert names[0].startswith("Ada_")
        assert names[1].startswith("Grace_")

    def test_generate_unknown_sheet(self, cli_db, template_id):
        workbook = Workbook()
        workbook.active.append(("Name",))
        rows = cli_db / "rows.xlsx"
        workbook.save(rows)

        assert main(["generate", template_id, str(rows), "--sheet", "Missing"]) == 1

    def test_generate_without_data_rows(self, cli_db, template_id):
        rows = cli_db / "rows.csv"
        rows.write_text("Name,Course\n", encoding="utf-8")
        output = cli_db / "out.zip"

        assert main(["generate", template_id, str(rows), "-o", str(output)]) == 1
        assert not output.exists()

    def test_interrupt_cancels_and_keeps_partial_archive(self, cli_db, template_id):
        rows = cli_db / "rows.csv"
        rows.write_text("Name\nAda\nAlan\nGrace\n", encoding="utf-8")
        output = cli_db / "out.zip"

        def _render_then_interrupt(svg_content: str) -> bytes:
            os.kill(os.getpid(), signal.SIGINT)
            return b"%PDF-1.4 fake"

        with patch("rendering.export.svg_to_pdf", side_effect=_render_then_interrupt):
            code = main(["generate", template_id, str(rows), "-o", str(output)])

        assert code == 130
        with zipfile.ZipFile(io.BytesIO(output.read_bytes())) as archive:
            names = archive.namelist()
        assert len(names) == 1
        assert names[0].startswith("Ada_")

    def test_generate_reports_row_failures(self, cli_db, template_id):
        rows = cli_db / "rows.csv"
        rows.write_text("Name\nAda\nAlan\n", encoding="utf-8")
        output = cli_db / "out.zip"

        with patch(
            "rendering.export.svg_to_pdf", side_effect=[b"%PDF", RuntimeError("cairo")]
        ):
            code = main(["generate", template_id, str(rows), "-o", str(output)])

        assert code == 2

    def test_generate_unknown_template(self, cli_db):
        rows = cli_db / "rows.csv"
        rows.write_text("Name\nAda\n", encoding="utf-8")

        assert main(["generate", "missing", str(rows)]) == 1

    def test_generate_missing_required_column(self, cli_db, template_id):
        rows = cli_db / "rows.csv"
        rows.write_text("Name\nAda\n", encoding="utf-8")

        code = main(["generate", template_id, str(rows), "--require", "Course"])

        assert code == 1

    def test_revoke_unknown(self, cli_db):
        assert main(["revoke", "missing-01"]) == 1
