"""
Setup Assistant: file import orchestrator

Turns an uploaded spreadsheet, CSV, PDF or image into contracts,
receivables and expenses:

  spreadsheet/CSV: read sheets → segment tables → batch → classify each
                   table (AI) → deterministic row extraction
  PDF/image:       one vision extraction call

then post-processing (inference + filtering) and ordered bulk persistence.
The result is always a best-effort summary; only an unreadable file or a
file where no table could be classified raises.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.schemas.setup_assistant import (
    EntityType,
    ExtractionResult,
    FileResult,
    FileType,
    MultiFileResult,
    ProcessingResult,
    SheetsSummary,
)
from app.services.ai.common.providers.base import ProviderRateLimitError
from app.services.ai.common.reasoning import ProviderReasoningService, ReasoningService
from app.services.ai.sheet_analysis.contracts import AnalysisContext, SheetAnalysisResult, TableSample
from app.services.ai.sheet_analysis.service import analyze_tables
from app.services.ai.vision.contracts import VisualDocument
from app.services.ai.vision.service import extract_from_document
from app.services.finance_entities import ContractService, EntityService, ExpenseService, ReceivableService

from .batching import KnownContracts, TableJob, create_batches, merge_results, plan_row_sub_batches
from .bulk_creator import create_entities
from .business_context import BusinessContext, get_business_context
from .csv_parser import read_csv
from .data_transformer import build_drafts, post_process_entities
from .errors import ClassificationError, SetupAssistantError
from .excel_parser import read_workbook
from .file_types import detect_file_type, image_media_type
from .table_segmenter import extract_table, header_region, segment_tables

logger = logging.getLogger(__name__)

RESULT_ARRAYS = {
    EntityType.CONTRACT: "contracts",
    EntityType.RECEIVABLE: "receivables",
    EntityType.EXPENSE: "expenses",
}


def _elapsed_ms(t0: float) -> float:
    return round((time.monotonic() - t0) * 1000, 2)


def _is_rate_limited(exc: BaseException) -> bool:
    current: Optional[BaseException] = exc
    while current is not None:
        if isinstance(current, ProviderRateLimitError):
            return True
        current = current.__cause__
    return False


class SetupAssistantService:
    def __init__(
        self,
        db: Session,
        team_id: str,
        *,
        reasoning: Optional[ReasoningService] = None,
        settings: Optional[Settings] = None,
        contract_service: Optional[EntityService] = None,
        receivable_service: Optional[EntityService] = None,
        expense_service: Optional[EntityService] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.db = db
        self.team_id = team_id
        self.settings = settings or get_settings()
        self.reasoning = reasoning or ProviderReasoningService(db, team_id=team_id, settings=self.settings)
        self.contract_service = contract_service or ContractService(db, team_id)
        self.receivable_service = receivable_service or ReceivableService(db, team_id)
        self.expense_service = expense_service or ExpenseService(db, team_id)
        self._sleep = sleep

    # ─── Single file ─────────────────────────────────

    async def process_file(
        self,
        data: bytes,
        filename: str,
        *,
        profession: Optional[str] = None,
        today: Optional[date] = None,
    ) -> ProcessingResult:
        t0 = time.monotonic()
        metrics: dict[str, float] = {}
        today = today or date.today()

        file_type = detect_file_type(filename, data)
        business = get_business_context(profession, self.settings.setup_assistant_default_profession)
        logger.info("Import of %r started (type=%s, profession=%s)", filename, file_type, business.key)

        sheets_summary: Optional[SheetsSummary] = None
        if file_type in (FileType.PDF, FileType.IMAGE):
            phase = time.monotonic()
            extraction = await self._extract_document(data, filename, file_type, business)
            metrics["vision_ms"] = _elapsed_ms(phase)
        else:
            extraction, sheets_summary = await self._extract_tables(data, filename, file_type, business, metrics)

        phase = time.monotonic()
        processed = post_process_entities(extraction, today)
        metrics["post_process_ms"] = _elapsed_ms(phase)

        phase = time.monotonic()
        creation = await create_entities(
            processed,
            contract_service=self.contract_service,
            receivable_service=self.receivable_service,
            expense_service=self.expense_service,
        )
        # AI audit rows share the session; commit them even when nothing was imported.
        self.db.commit()
        metrics["persistence_ms"] = _elapsed_ms(phase)
        metrics["total_ms"] = _elapsed_ms(t0)

        result = ProcessingResult(
            success=creation.success,
            file_type=file_type,
            contracts_created=creation.contracts_created,
            receivables_created=creation.receivables_created,
            expenses_created=creation.expenses_created,
            contracts_found=len(processed.contracts),
            receivables_found=len(processed.receivables),
            expenses_found=len(processed.expenses),
            errors=[*processed.warnings, *creation.errors],
            sheets=sheets_summary,
            metrics=metrics,
        )
        logger.info(
            "Import of %r finished: %d/%d contracts, %d/%d receivables, %d/%d expenses, %d errors (%.0fms)",
            filename,
            result.contracts_created,
            result.contracts_found,
            result.receivables_created,
            result.receivables_found,
            result.expenses_created,
            result.expenses_found,
            len(result.errors),
            metrics["total_ms"],
        )
        return result

    async def _extract_document(
        self,
        data: bytes,
        filename: str,
        file_type: FileType,
        business: BusinessContext,
    ) -> ExtractionResult:
        media_type = "application/pdf" if file_type == FileType.PDF else image_media_type(filename, data)
        document = VisualDocument(data=data, media_type=media_type, filename=filename)
        return await extract_from_document(self.reasoning, document, business.describe())

    # ─── Spreadsheets ────────────────────────────────

    def _plan_jobs(self, data: bytes, file_type: FileType) -> tuple[list[TableJob], int]:
        sheets = read_workbook(data) if file_type == FileType.XLSX else read_csv(data)
        segment = segment_tables if self.settings.setup_assistant_support_mixed_sheets else header_region

        jobs: list[TableJob] = []
        for sheet in sheets:
            for region in segment(sheet):
                table = extract_table(sheet, region)
                if not table.rows:
                    continue
                jobs.append(
                    TableJob.build(
                        sheet.name,
                        region,
                        table,
                        chars_per_token=self.settings.setup_assistant_chars_per_token,
                    )
                )
        return jobs, len(sheets)

    def _extract_rows(self, job: TableJob, analysis: SheetAnalysisResult) -> ExtractionResult:
        """Deterministic extraction of every row of *job* with its mapping.

        Large tables are walked in row-range sub-batches sharing one mapping.
        """
        table = job.table
        result = ExtractionResult()
        if job.estimated_output_tokens > self.settings.setup_assistant_large_table_threshold:
            ranges = plan_row_sub_batches(len(table.rows), self.settings.setup_assistant_rows_per_sub_batch)
            logger.info("Large table %r split into %d row sub-batches", job.label, len(ranges))
        else:
            ranges = [(0, len(table.rows))]

        target = getattr(result, RESULT_ARRAYS[analysis.entity_type])
        for start, end in ranges:
            drafts, warnings = build_drafts(
                analysis.entity_type,
                table.headers,
                table.rows[start:end],
                analysis.column_mapping,
                label=job.label,
                row_numbers=table.row_numbers[start:end],
            )
            target.extend(drafts)
            result.warnings.extend(warnings)
        return result

    async def _extract_tables(
        self,
        data: bytes,
        filename: str,
        file_type: FileType,
        business: BusinessContext,
        metrics: dict[str, float],
    ) -> tuple[ExtractionResult, SheetsSummary]:
        phase = time.monotonic()
        jobs, sheet_count = self._plan_jobs(data, file_type)
        batches = create_batches(
            jobs,
            output_budget=self.settings.setup_assistant_output_token_budget,
            large_threshold=self.settings.setup_assistant_large_table_threshold,
        )
        metrics["parse_ms"] = _elapsed_ms(phase)

        summary = SheetsSummary(total_sheets=sheet_count, total_tables=len(jobs), total_batches=len(batches))
        if not jobs:
            return ExtractionResult(warnings=[f"{filename}: no tables with data were found"]), summary

        phase = time.monotonic()
        known = KnownContracts()
        batch_results: list[ExtractionResult] = []
        failures: list[str] = []
        rate_limits: list[ProviderRateLimitError] = []

        for index, batch in enumerate(batches):
            if index > 0 and self.settings.setup_assistant_batch_pause_seconds > 0:
                await self._sleep(self.settings.setup_assistant_batch_pause_seconds)

            context = AnalysisContext(
                business_context=business.describe(),
                known_contract_names=list(known.names),
                filename=filename,
            )
            samples = [
                TableSample(
                    label=job.label,
                    headers=job.table.headers,
                    rows=job.table.sample(self.settings.setup_assistant_sample_rows),
                    total_rows=len(job.table.rows),
                )
                for job in batch
            ]
            analyses = await analyze_tables(self.reasoning, samples, context)

            batch_result = ExtractionResult()
            for job, analysis in zip(batch, analyses):
                if analysis.failed:
                    summary.failed_tables += 1
                    failures.append(f"{job.label}: {analysis.error}")
                    if isinstance(analysis.exception, ProviderRateLimitError):
                        rate_limits.append(analysis.exception)
                    batch_result.warnings.append(f"{job.label}: analysis failed, table skipped ({analysis.error})")
                    continue
                if analysis.result.entity_type == EntityType.SKIP:
                    summary.skipped_tables += 1
                    logger.info("Table %r skipped by analysis", job.label)
                    continue
                if not analysis.result.column_mapping:
                    summary.skipped_tables += 1
                    batch_result.warnings.append(f"{job.label}: no usable column mapping, table skipped")
                    continue
                summary.analyzed_tables += 1
                batch_result = merge_results([batch_result, self._extract_rows(job, analysis.result)])

            known = known.with_contracts(batch_result.contracts)
            batch_results.append(batch_result)
            logger.info(
                "Batch %d/%d done: %d tables, %d known contracts",
                index + 1,
                len(batches),
                len(batch),
                len(known),
            )

        metrics["analysis_ms"] = _elapsed_ms(phase)

        if summary.failed_tables == len(jobs):
            error = ClassificationError(f"Could not analyse any table in {filename}: " + "; ".join(failures))
            if len(rate_limits) == len(failures):
                raise error from rate_limits[0]
            raise error

        return merge_results(batch_results), summary

    # ─── Multiple files ──────────────────────────────

    async def process_files(
        self,
        files: list[tuple[str, bytes]],
        *,
        profession: Optional[str] = None,
        today: Optional[date] = None,
    ) -> MultiFileResult:
        """Import files one after another; a failing file never stops the rest."""
        pause = self.settings.setup_assistant_file_pause_seconds
        file_results: list[FileResult] = []

        for index, (filename, data) in enumerate(files):
            if index > 0 and pause > 0:
                await self._sleep(pause)

            t0 = time.monotonic()
            result: Optional[ProcessingResult] = None
            error: Optional[str] = None
            for attempt in (1, 2):
                try:
                    result = await self.process_file(data, filename, profession=profession, today=today)
                    error = None
                    break
                except SetupAssistantError as exc:
                    error = exc.message
                    if attempt == 1 and _is_rate_limited(exc):
                        logger.warning("File %r hit the rate limit, retrying once", filename)
                        await self._sleep(max(pause, self.settings.ai_rate_limit_backoff_seconds))
                        continue
                    break
                except Exception as exc:
                    logger.exception("Import of %r failed", filename)
                    error = str(exc) or exc.__class__.__name__
                    break

            file_results.append(
                FileResult(
                    filename=filename,
                    status="success" if result is not None else "error",
                    result=result,
                    error=error,
                    processing_ms=_elapsed_ms(t0),
                )
            )

        successful = [item.result for item in file_results if item.result is not None]
        return MultiFileResult(
            total_files=len(files),
            successful_files=len(successful),
            failed_files=len(files) - len(successful),
            contracts_created=sum(item.contracts_created for item in successful),
            receivables_created=sum(item.receivables_created for item in successful),
            expenses_created=sum(item.expenses_created for item in successful),
            file_results=file_results,
        )
