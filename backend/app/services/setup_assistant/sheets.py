"""Sheet grids shared by the raw table readers and the segmenter."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field

HEADER_SCAN_ROWS = 5
HEADER_MIN_SCORE = 3

# Domain header keywords, English and Portuguese (accents stripped before matching).
HEADER_KEYWORDS = (
    "name",
    "date",
    "value",
    "amount",
    "description",
    "category",
    "project",
    "client",
    "vendor",
    "installment",
    "type",
    "status",
    "nome",
    "data",
    "valor",
    "descricao",
    "categoria",
    "projeto",
    "cliente",
    "fornecedor",
    "parcela",
    "tipo",
    "vencimento",
)

_NUMERIC_LIKE_RE = re.compile(r"^[\d\s,.$%R\-()€]+$")


@dataclass
class SheetData:
    """One physical sheet (or a CSV file) as a grid of display strings."""

    name: str
    rows: list[list[str]] = field(default_factory=list)

    @property
    def column_count(self) -> int:
        return max((len(row) for row in self.rows), default=0)


def strip_accents(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))


def is_blank_cell(value: str | None) -> bool:
    if value is None:
        return True
    stripped = value.strip()
    return stripped == "" or set(stripped) <= {",", ";"}


def is_blank_row(row: list[str]) -> bool:
    return all(is_blank_cell(cell) for cell in row)


def trim_trailing_blank_rows(rows: list[list[str]]) -> list[list[str]]:
    end = len(rows)
    while end > 0 and is_blank_row(rows[end - 1]):
        end -= 1
    return rows[:end]


def score_header_row(row: list[str]) -> int:
    """Heuristic score of how much *row* looks like a table header."""
    if not row:
        return 0

    filled = [cell.strip() for cell in row if not is_blank_cell(cell)]
    text_cells = sum(1 for cell in filled if not _NUMERIC_LIKE_RE.match(cell))

    score = min(text_cells, 5)

    folded = [strip_accents(cell).lower() for cell in filled]
    if any(keyword in cell for cell in folded for keyword in HEADER_KEYWORDS):
        score += 3

    if len(filled) / len(row) > 0.5:
        score += 2

    return score


def detect_header_row(rows: list[list[str]]) -> int | None:
    """Index of the best header candidate among the first rows, or ``None``."""
    best_index: int | None = None
    best_score = HEADER_MIN_SCORE - 1
    for index, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        score = score_header_row(row)
        if score > best_score:
            best_index = index
            best_score = score
    return best_index
