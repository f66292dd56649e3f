"""Table segmentation inside a sheet.

A sheet may hold several tables laid out side by side or stacked, separated
by blank rows or columns. Segmentation finds those separators and cuts the
sheet into candidate regions, each with its own header guess and a
confidence score.

All work is proportional to the number of cells: one pass computes the
row and column blank profiles, boundaries come from scanning those
profiles, and every partition cell of the cross product is visited once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .sheets import (
    SheetData,
    detect_header_row,
    is_blank_cell,
)

logger = logging.getLogger(__name__)

COLUMN_BLANK_RATIO = 0.95
MIN_BOUNDARY_CONFIDENCE = 0.5
MIN_REGION_CONFIDENCE = 0.3
MIN_REGION_ROWS = 2
MAX_SAMPLE_ROWS = 20

ROW_SEPARATOR = "row-separator"
COLUMN_SEPARATOR = "column-separator"


@dataclass(frozen=True)
class Boundary:
    kind: str
    position: int
    run_length: int
    confidence: float

    @property
    def end(self) -> int:
        """First index after the blank run."""
        return self.position + self.run_length


@dataclass
class TableRegion:
    sheet_name: str
    row_range: tuple[int, int]
    col_range: tuple[int, int]
    header_row_index: int | None
    sample_rows: list[list[str]]
    confidence: float
    label: str = ""

    @property
    def row_count(self) -> int:
        return self.row_range[1] - self.row_range[0] + 1


@dataclass
class RegionTable:
    """Header and data rows of a region, ready for column mapping."""

    label: str
    headers: list[str]
    rows: list[list[str]]
    row_numbers: list[int] = field(default_factory=list)

    def sample(self, limit: int = MAX_SAMPLE_ROWS) -> list[list[str]]:
        return self.rows[:limit]


# ─── Blank profiles ──────────────────────────────────


def _blank_profile(rows: list[list[str]], column_count: int) -> tuple[list[bool], list[bool]]:
    row_blank: list[bool] = []
    empty_per_column = [0] * column_count
    for row in rows:
        filled_any = False
        for index in range(column_count):
            value = row[index] if index < len(row) else ""
            if is_blank_cell(value):
                empty_per_column[index] += 1
            else:
                filled_any = True
        row_blank.append(not filled_any)

    total = len(rows)
    column_blank = [
        total > 0 and empty / total >= COLUMN_BLANK_RATIO for empty in empty_per_column
    ]
    return row_blank, column_blank


def _blank_runs(flags: list[bool]) -> list[tuple[int, int]]:
    """Maximal blank runs with filled cells on both sides, as (start, length)."""
    runs: list[tuple[int, int]] = []
    seen_filled = False
    run_start: int | None = None
    for index, blank in enumerate(flags):
        if blank:
            if run_start is None and seen_filled:
                run_start = index
            continue
        if run_start is not None:
            runs.append((run_start, index - run_start))
            run_start = None
        seen_filled = True
    return runs


def detect_blank_rows(sheet: SheetData) -> list[Boundary]:
    row_blank, _ = _blank_profile(sheet.rows, sheet.column_count)
    return _row_boundaries(row_blank)


def detect_blank_columns(sheet: SheetData) -> list[Boundary]:
    _, column_blank = _blank_profile(sheet.rows, sheet.column_count)
    return _column_boundaries(column_blank)


def _row_boundaries(row_blank: list[bool]) -> list[Boundary]:
    boundaries = [
        Boundary(ROW_SEPARATOR, start, length, min(1.0, length / 2))
        for start, length in _blank_runs(row_blank)
    ]
    return [b for b in boundaries if b.confidence >= MIN_BOUNDARY_CONFIDENCE]


def _column_boundaries(column_blank: list[bool]) -> list[Boundary]:
    boundaries = [
        Boundary(COLUMN_SEPARATOR, start, length, min(1.0, length / 1.5))
        for start, length in _blank_runs(column_blank)
    ]
    return [b for b in boundaries if b.confidence >= MIN_BOUNDARY_CONFIDENCE]


def _partitions(size: int, boundaries: list[Boundary]) -> list[tuple[int, int]]:
    """Inclusive index ranges between separators, separators excluded."""
    ranges: list[tuple[int, int]] = []
    start = 0
    for boundary in boundaries:
        ranges.append((start, boundary.position - 1))
        start = boundary.end
    ranges.append((start, size - 1))
    return [(lo, hi) for lo, hi in ranges if hi >= lo]


# ─── Regions ─────────────────────────────────────────


def _slice(rows: list[list[str]], row_range: tuple[int, int], col_range: tuple[int, int]) -> list[list[str]]:
    col_lo, col_hi = col_range
    sliced = []
    for index in range(row_range[0], row_range[1] + 1):
        row = rows[index]
        sliced.append([
            row[col] if col < len(row) else ""
            for col in range(col_lo, col_hi + 1)
        ])
    return sliced


def _filled_count(row: list[str]) -> int:
    return sum(1 for cell in row if not is_blank_cell(cell))


def _first_filled(rows: list[list[str]]) -> int:
    return next((index for index, row in enumerate(rows) if _filled_count(row) > 0), 0)


def _region_confidence(rows: list[list[str]], header_index: int | None) -> float:
    confidence = 0.3
    if header_index is not None:
        confidence += 0.3

    data_start = (header_index if header_index is not None else 0) + 1
    data_rows = [row for row in rows[data_start:] if _filled_count(row) > 0]
    if len(data_rows) >= 3:
        confidence += 0.2

    filled_rows = [row for row in rows if _filled_count(row) > 0]
    if filled_rows:
        average_filled = sum(_filled_count(row) for row in filled_rows) / len(filled_rows)
        if average_filled >= 3:
            confidence += 0.2

    return round(min(1.0, confidence), 2)


def _build_region(
    sheet: SheetData,
    row_range: tuple[int, int],
    col_range: tuple[int, int],
    *,
    confidence: float | None = None,
) -> TableRegion | None:
    rows = _slice(sheet.rows, row_range, col_range)

    filled = [index for index, row in enumerate(rows) if _filled_count(row) > 0]
    if len(filled) < MIN_REGION_ROWS:
        return None

    if confidence is None:
        # Trim blank edges so the region hugs its data.
        first, last = filled[0], filled[-1]
        rows = rows[first : last + 1]
        row_range = (row_range[0] + first, row_range[0] + last)

    header_index = detect_header_row(rows)
    if confidence is None:
        confidence = _region_confidence(rows, header_index)

    header_offset = header_index if header_index is not None else _first_filled(rows)
    sample = [row for row in rows[header_offset + 1 :] if _filled_count(row) > 0][:MAX_SAMPLE_ROWS]

    return TableRegion(
        sheet_name=sheet.name,
        row_range=row_range,
        col_range=col_range,
        header_row_index=row_range[0] + header_index if header_index is not None else None,
        sample_rows=sample,
        confidence=confidence,
    )


def _label_regions(sheet_name: str, regions: list[TableRegion]) -> list[TableRegion]:
    for index, region in enumerate(regions):
        region.label = sheet_name if len(regions) == 1 else f"{sheet_name}_table{index}"
    return regions


def segment_tables(sheet: SheetData) -> list[TableRegion]:
    """Split *sheet* into candidate table regions, ordered top-left first."""
    row_count = len(sheet.rows)
    column_count = sheet.column_count
    if row_count == 0 or column_count == 0:
        return []

    row_blank, column_blank = _blank_profile(sheet.rows, column_count)
    row_boundaries = _row_boundaries(row_blank)
    column_boundaries = _column_boundaries(column_blank)

    if not row_boundaries and not column_boundaries:
        region = _build_region(sheet, (0, row_count - 1), (0, column_count - 1), confidence=1.0)
        return _label_regions(sheet.name, [region] if region else [])

    regions: list[TableRegion] = []
    for row_range in _partitions(row_count, row_boundaries):
        for col_range in _partitions(column_count, column_boundaries):
            region = _build_region(sheet, row_range, col_range)
            if region is None:
                continue
            if region.confidence < MIN_REGION_CONFIDENCE:
                logger.info(
                    "Dropping low-confidence region in %r rows %s cols %s (%.2f)",
                    sheet.name,
                    region.row_range,
                    region.col_range,
                    region.confidence,
                )
                continue
            regions.append(region)

    logger.info(
        "Sheet %r: %d row / %d column boundaries, %d regions",
        sheet.name,
        len(row_boundaries),
        len(column_boundaries),
        len(regions),
    )
    return _label_regions(sheet.name, regions)


def header_region(sheet: SheetData) -> list[TableRegion]:
    """Single region from the detected header row to the end of the sheet.

    Used when mixed sheets are disabled; sheets without a recognisable
    header are skipped.
    """
    header_index = detect_header_row(sheet.rows)
    if header_index is None:
        logger.info("Sheet %r skipped: no header row detected", sheet.name)
        return []
    row_range = (header_index, len(sheet.rows) - 1)
    col_range = (0, sheet.column_count - 1)
    data = [row for row in _slice(sheet.rows, row_range, col_range)[1:] if _filled_count(row) > 0]
    if not data:
        return []
    region = TableRegion(
        sheet_name=sheet.name,
        row_range=row_range,
        col_range=col_range,
        header_row_index=header_index,
        sample_rows=data[:MAX_SAMPLE_ROWS],
        confidence=1.0,
    )
    return _label_regions(sheet.name, [region])


# ─── Extraction ──────────────────────────────────────


def _unique_headers(cells: list[str]) -> list[str]:
    headers: list[str] = []
    seen: dict[str, int] = {}
    for index, cell in enumerate(cells):
        name = cell.strip() or f"Column {index + 1}"
        if name in seen:
            seen[name] += 1
            name = f"{name} ({seen[name]})"
        else:
            seen[name] = 1
        headers.append(name)
    return headers


def extract_table(sheet: SheetData, region: TableRegion) -> RegionTable:
    """Materialise *region* as headers plus its non-blank data rows."""
    rows = _slice(sheet.rows, region.row_range, region.col_range)
    if region.header_row_index is not None:
        header_offset = region.header_row_index - region.row_range[0]
    else:
        header_offset = _first_filled(rows)

    headers = _unique_headers(rows[header_offset])
    data: list[list[str]] = []
    row_numbers: list[int] = []
    for offset, row in enumerate(rows[header_offset + 1 :], start=header_offset + 1):
        if _filled_count(row) == 0:
            continue
        data.append(row)
        row_numbers.append(region.row_range[0] + offset + 1)

    return RegionTable(label=region.label or region.sheet_name, headers=headers, rows=data, row_numbers=row_numbers)
