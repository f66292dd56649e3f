"""Quote-aware CSV reader.

Cells are kept as raw text: no date or number coercion happens here, the
locale-aware conversion belongs to the data transformer once a column's
meaning is known.
"""

from __future__ import annotations

import csv
import io
import logging

from .errors import FileStructureError
from .sheets import SheetData, trim_trailing_blank_rows

logger = logging.getLogger(__name__)

DEFAULT_SHEET_NAME = "CSV"


def decode_csv_bytes(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.info("CSV is not valid UTF-8, decoding as Latin-1")
        return data.decode("latin-1")


def detect_delimiter(text: str) -> str:
    """Comma unless the first non-blank line uses semicolons exclusively."""
    for line in text.splitlines():
        if not line.strip():
            continue
        if ";" in line and "," not in line:
            return ";"
        return ","
    return ","


def parse_csv_text(text: str, *, delimiter: str = ",") -> list[list[str]]:
    """Parse *text* into rows with RFC-4180 quoting.

    Doubled quotes are unescaped, separators and newlines inside quoted
    cells are kept, blank lines survive as empty rows and cells are trimmed.
    """
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, strict=False)
    try:
        rows = [[cell.strip() for cell in row] for row in reader]
    except csv.Error as exc:
        raise FileStructureError(f"Malformed CSV: {exc}") from exc
    return trim_trailing_blank_rows(rows)


def parse_csv_line(line: str, *, delimiter: str = ",") -> list[str]:
    rows = parse_csv_text(line, delimiter=delimiter)
    return rows[0] if rows else []


def escape_csv_value(value: str) -> str:
    if any(ch in value for ch in (",", '"', "\n", "\r")):
        return '"' + value.replace('"', '""') + '"'
    return value


def rows_to_csv(rows: list[list[str]]) -> str:
    return "\n".join(",".join(escape_csv_value(cell) for cell in row) for row in rows)


def read_csv(data: bytes, *, sheet_name: str = DEFAULT_SHEET_NAME) -> list[SheetData]:
    text = decode_csv_bytes(data)
    if "\x00" in text:
        raise FileStructureError("File does not look like a text CSV")
    delimiter = detect_delimiter(text)
    rows = parse_csv_text(text, delimiter=delimiter)
    logger.info("CSV parsed: %d rows (delimiter=%r)", len(rows), delimiter)
    return [SheetData(name=sheet_name, rows=rows)]
