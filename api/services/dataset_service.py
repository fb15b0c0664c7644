"""Dataset ingestion for batch generation.

Rows arrive as CSV text or an .xlsx workbook (CLI), or as JSON objects
(API). Either way they end up as a Dataset: one header set plus rows keyed
by those headers. Blank cells become None, which binds as empty text.
"""

import csv
import io
import zipfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from schemas import DataRow

SPREADSHEET_SUFFIXES = (".xlsx", ".xlsm")


class DatasetError(ValueError):
    """Raised when uploaded data cannot be read as a table."""

    pass


@dataclass(frozen=True)
class Dataset:
    headers: list[str]
    rows: list[DataRow] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def parse_csv(text: str, *, max_rows: int | None = None) -> Dataset:
    """Read CSV text with a header line.

    Raises:
        DatasetError: If there is no header or more rows than ``max_rows``.
    """
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    if not reader.fieldnames:
        raise DatasetError("CSV has no header row")

    headers = [h.strip() for h in reader.fieldnames if h and h.strip()]
    rows: list[DataRow] = []
    for raw in reader:
        row = {
            (k or "").strip(): _clean(v)
            for k, v in raw.items()
            if k and k.strip() in headers
        }
        if all(v is None for v in row.values()):
            continue
        rows.append(row)
        if max_rows is not None and len(rows) > max_rows:
            raise DatasetError(f"Too many rows (max {max_rows})")
    return Dataset(headers=headers, rows=rows)


def from_records(
    records: Sequence[Mapping[str, Any]], *, max_rows: int | None = None
) -> Dataset:
    """Build a Dataset from JSON objects. Headers are the union of keys in
    first-seen order.

    Raises:
        DatasetError: If a record is not an object or there are too many.
    """
    if max_rows is not None and len(records) > max_rows:
        raise DatasetError(f"Too many rows (max {max_rows})")

    headers: dict[str, None] = {}
    rows: list[DataRow] = []
    for index, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise DatasetError(f"Row {index} is not an object")
        for key in record:
            headers.setdefault(str(key), None)
        rows.append({str(k): _clean(v) for k, v in record.items()})
    return Dataset(headers=list(headers), rows=rows)


def _sheet_value(value: Any) -> Any:
    # Date-only cells come back as midnight datetimes
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    return _clean(value)


def parse_spreadsheet(
    data: bytes, *, sheet: str | None = None, max_rows: int | None = None
) -> Dataset:
    """Read one worksheet of an .xlsx workbook. The first row is the header.

    ``sheet`` defaults to the first worksheet. Blank cells become None and
    fully blank rows are skipped, as with CSV.

    Raises:
        DatasetError: If the workbook cannot be read, the sheet does not
            exist, there is no header, or more rows than ``max_rows``.
    """
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise DatasetError(f"Cannot read spreadsheet: {e}") from e

    try:
        if sheet is None:
            if not workbook.worksheets:
                raise DatasetError("Workbook has no worksheets")
            worksheet = workbook.worksheets[0]
        elif sheet in workbook.sheetnames:
            worksheet = workbook[sheet]
        else:
            raise DatasetError(f"Sheet not found in workbook: {sheet}")

        values = worksheet.iter_rows(values_only=True)
        header_row = next(values, None) or ()
        columns = [
            (position, str(name).strip())
            for position, name in enumerate(header_row)
            if name is not None and str(name).strip()
        ]
        if not columns:
            raise DatasetError("Spreadsheet has no header row")

        rows: list[DataRow] = []
        for raw in values:
            row = {
                name: _sheet_value(raw[position]) if position < len(raw) else None
                for position, name in columns
            }
            if all(v is None for v in row.values()):
                continue
            rows.append(row)
            if max_rows is not None and len(rows) > max_rows:
                raise DatasetError(f"Too many rows (max {max_rows})")
    finally:
        workbook.close()

    return Dataset(headers=[name for _, name in columns], rows=rows)
