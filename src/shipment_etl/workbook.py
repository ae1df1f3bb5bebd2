"""shipment_etl.workbook

Workbook access: open the file, pick the sheet, find the header row and
yield data rows with their delivered flag.

The incoming-goods sheet has an "as of" date on row 1, headers on row 2
and data from row 3.  Any other sheet is read as a plain table with
headers on row 1.
"""

from __future__ import annotations

import logging
import zipfile
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import openpyxl
from openpyxl.utils import column_index_from_string
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet

from shipment_etl.styles import FillInfo, is_delivered_row

log = logging.getLogger(__name__)


class WorkbookReadError(Exception):
    """Raised when the workbook file cannot be opened or parsed."""


@dataclass(frozen=True)
class SheetLayout:
    headers: list[str | None]
    header_row: int
    first_data_row: int
    classify_styles: bool


@dataclass
class SourceRow:
    """One data row: 1-based worksheet row number, header -> value map, flag."""

    row_number: int
    values: dict[str, Any]
    delivered: bool = False


def open_workbook(path: Path) -> Workbook:
    try:
        return openpyxl.load_workbook(path, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise WorkbookReadError(f"cannot read workbook {path}: {exc}") from exc


def locate_sheet(workbook: Workbook, title: str) -> tuple[Worksheet, bool]:
    """Return (sheet, fallback_used).

    The sheet titled *title* when present, otherwise the first sheet.
    """
    if title in workbook.sheetnames:
        return workbook[title], False
    if not workbook.worksheets:
        raise WorkbookReadError("workbook has no worksheets")
    first = workbook.worksheets[0]
    log.debug("sheet %r not found in %s; using %r", title, workbook.sheetnames, first.title)
    return first, True


def resolve_layout(sheet: Worksheet, matched: bool) -> SheetLayout:
    """Header row and first data row, chosen by which sheet was selected."""
    header_row = 2 if matched else 1
    raw = next(
        sheet.iter_rows(min_row=header_row, max_row=header_row, values_only=True),
        (),
    )
    headers = [None if v is None else str(v) for v in raw]
    return SheetLayout(
        headers=headers,
        header_row=header_row,
        first_data_row=header_row + 1,
        classify_styles=matched,
    )


def _row_values(headers: Sequence[str | None], cells: Sequence[Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for idx, header in enumerate(headers):
        if header is None or header in values:
            continue
        values[header] = cells[idx].value if idx < len(cells) else None
    return values


def iter_source_rows(
    sheet: Worksheet,
    layout: SheetLayout,
    designated_columns: Sequence[str] = ("A", "B"),
) -> Iterator[SourceRow]:
    """Yield every row below the header row, top to bottom."""
    col_idx = [column_index_from_string(c) - 1 for c in designated_columns]
    for row_number, cells in enumerate(
        sheet.iter_rows(min_row=layout.first_data_row),
        start=layout.first_data_row,
    ):
        delivered = False
        if layout.classify_styles:
            fills = [FillInfo.from_cell(cells[i]) if i < len(cells) else None for i in col_idx]
            delivered = is_delivered_row(fills)
        yield SourceRow(
            row_number=row_number,
            values=_row_values(layout.headers, cells),
            delivered=delivered,
        )
