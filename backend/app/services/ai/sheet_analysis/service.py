"""Sheet analysis: one classification call per table, failures isolated per table."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from ..common.reasoning import ReasoningService
from .contracts import AnalysisContext, SheetAnalysisResult, TableSample

logger = logging.getLogger(__name__)


@dataclass
class TableAnalysis:
    """Outcome of analysing one table; exactly one of ``result``/``error`` is set."""

    label: str
    result: SheetAnalysisResult | None = None
    error: str | None = None
    exception: Exception | None = field(default=None, repr=False)
    latency_ms: float = 0.0

    @property
    def failed(self) -> bool:
        return self.result is None


async def analyze_table(
    reasoning: ReasoningService,
    sample: TableSample,
    context: AnalysisContext,
) -> TableAnalysis:
    t0 = time.monotonic()
    try:
        result = await reasoning.classify(sample, context)
    except Exception as exc:
        logger.warning("Analysis of table %r failed: %s", sample.label, exc)
        return TableAnalysis(
            label=sample.label,
            error=str(exc) or exc.__class__.__name__,
            exception=exc,
            latency_ms=round((time.monotonic() - t0) * 1000, 2),
        )
    return TableAnalysis(
        label=sample.label,
        result=result,
        latency_ms=round((time.monotonic() - t0) * 1000, 2),
    )


async def analyze_tables(
    reasoning: ReasoningService,
    samples: list[TableSample],
    context: AnalysisContext,
) -> list[TableAnalysis]:
    """Analyse *samples* concurrently; results keep the input order."""
    return list(await asyncio.gather(*(analyze_table(reasoning, sample, context) for sample in samples)))
