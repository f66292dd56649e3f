"""Batch planning under an output budget, and the cross-batch contract context."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable

from app.schemas.setup_assistant import ContractDraft, ExtractionResult

from .csv_parser import rows_to_csv
from .table_segmenter import RegionTable, TableRegion

logger = logging.getLogger(__name__)

OUTPUT_OVERHEAD_TOKENS = 500
OUTPUT_INPUT_RATIO = 4


def estimate_tokens(text: str, chars_per_token: float = 3.5) -> int:
    return math.ceil(len(text) / chars_per_token)


def estimate_output_tokens(input_tokens: int) -> int:
    """Predicted response size: a fraction of the input plus fixed overhead."""
    return math.ceil(input_tokens / OUTPUT_INPUT_RATIO) + OUTPUT_OVERHEAD_TOKENS


@dataclass
class TableJob:
    sheet_name: str
    region: TableRegion
    table: RegionTable
    input_tokens: int = 0
    estimated_output_tokens: int = 0

    @property
    def label(self) -> str:
        return self.table.label

    @classmethod
    def build(
        cls,
        sheet_name: str,
        region: TableRegion,
        table: RegionTable,
        *,
        chars_per_token: float = 3.5,
    ) -> "TableJob":
        input_tokens = estimate_tokens(rows_to_csv([table.headers, *table.rows]), chars_per_token)
        return cls(
            sheet_name=sheet_name,
            region=region,
            table=table,
            input_tokens=input_tokens,
            estimated_output_tokens=estimate_output_tokens(input_tokens),
        )


def create_batches(
    jobs: list[TableJob],
    *,
    output_budget: int = 6000,
    large_threshold: int = 2500,
) -> list[list[TableJob]]:
    """Group jobs in order so each batch's predicted output stays within *output_budget*.

    A job predicted above *large_threshold* always gets a batch of its own.
    """
    batches: list[list[TableJob]] = []
    current: list[TableJob] = []
    current_output = 0

    for job in jobs:
        if job.estimated_output_tokens > large_threshold:
            if current:
                batches.append(current)
                current, current_output = [], 0
            batches.append([job])
            continue

        if current and current_output + job.estimated_output_tokens > output_budget:
            batches.append(current)
            current, current_output = [], 0

        current.append(job)
        current_output += job.estimated_output_tokens

    if current:
        batches.append(current)

    logger.info(
        "Planned %d batches for %d tables: %s",
        len(batches),
        len(jobs),
        [[job.label for job in batch] for batch in batches],
    )
    return batches


def plan_row_sub_batches(row_count: int, rows_per_batch: int) -> list[tuple[int, int]]:
    """Half-open row ranges covering ``range(row_count)`` in chunks."""
    if row_count <= 0:
        return []
    size = max(1, rows_per_batch)
    return [(start, min(start + size, row_count)) for start in range(0, row_count, size)]


@dataclass(frozen=True)
class KnownContracts:
    """Contract names seen so far in a file, threaded from batch to batch."""

    names: tuple[str, ...] = field(default_factory=tuple)

    def with_contracts(self, contracts: Iterable[ContractDraft]) -> "KnownContracts":
        seen = {name.casefold() for name in self.names}
        names = list(self.names)
        for contract in contracts:
            name = (contract.project_name or contract.client_name or "").strip()
            if name and name.casefold() not in seen:
                seen.add(name.casefold())
                names.append(name)
        return KnownContracts(names=tuple(names))

    def __len__(self) -> int:
        return len(self.names)


def merge_results(results: Iterable[ExtractionResult]) -> ExtractionResult:
    merged = ExtractionResult()
    for result in results:
        merged.contracts.extend(result.contracts)
        merged.receivables.extend(result.receivables)
        merged.expenses.extend(result.expenses)
        merged.warnings.extend(result.warnings)
    return merged
