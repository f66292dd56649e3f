"""Workbook reader: every sheet becomes a grid of display strings."""

from __future__ import annotations

import io
import logging
import struct
import zipfile
from datetime import date, datetime, time

import xlrd
from xlrd.compdoc import CompDocError
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .errors import FileStructureError
from .file_types import OLE_SIGNATURE
from .sheets import SheetData, trim_trailing_blank_rows

logger = logging.getLogger(__name__)


def format_cell(value) -> str:
    """Render a cell value the way a spreadsheet would display it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.strftime("%H:%M")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value).strip()


def _legacy_cell(book, cell) -> str:
    if cell.ctype == xlrd.XL_CELL_DATE:
        try:
            return format_cell(xlrd.xldate_as_datetime(cell.value, book.datemode))
        except (OverflowError, ValueError):
            return format_cell(cell.value)
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return format_cell(bool(cell.value))
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
        return ""
    return format_cell(cell.value)


def read_legacy_workbook(data: bytes) -> list[SheetData]:
    """Read every sheet of a BIFF (.xls) workbook."""
    try:
        book = xlrd.open_workbook(file_contents=data)
    except (xlrd.XLRDError, CompDocError, struct.error, OSError, ValueError) as exc:
        raise FileStructureError(f"Could not read workbook: {exc}") from exc

    sheets: list[SheetData] = []
    try:
        for worksheet in book.sheets():
            rows = [
                [_legacy_cell(book, cell) for cell in worksheet.row(index)]
                for index in range(worksheet.nrows)
            ]
            rows = trim_trailing_blank_rows(rows)
            sheets.append(SheetData(name=worksheet.name, rows=rows))
            logger.info("Sheet %r read: %d rows", worksheet.name, len(rows))
    finally:
        book.release_resources()

    return sheets


def read_workbook(data: bytes) -> list[SheetData]:
    """Read every sheet of an XLSX or legacy XLS workbook.

    Interior blank rows and columns are kept as empty cells; only the
    trailing run of empty rows is dropped.
    """
    if data.startswith(OLE_SIGNATURE):
        return read_legacy_workbook(data)

    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise FileStructureError(f"Could not read workbook: {exc}") from exc

    sheets: list[SheetData] = []
    try:
        for worksheet in workbook.worksheets:
            rows = [
                [format_cell(value) for value in row]
                for row in worksheet.iter_rows(values_only=True)
            ]
            rows = trim_trailing_blank_rows(rows)
            sheets.append(SheetData(name=worksheet.title, rows=rows))
            logger.info("Sheet %r read: %d rows", worksheet.title, len(rows))
    finally:
        workbook.close()

    return sheets
