"""Remote reasoning interface used by the import pipeline.

Two fallible capabilities: classify a table sample into an entity type with
a column mapping, and extract entities directly from a PDF or image. The
provider-backed implementation below is the production one; tests swap in
stubs returning fixed responses.
"""

from __future__ import annotations

import abc
import logging
import time

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings

from ..sheet_analysis.contracts import AnalysisContext, SheetAnalysisResult, TableSample
from ..sheet_analysis.prompts import SHEET_ANALYSIS_SYSTEM_PROMPT, build_sheet_analysis_prompt
from ..vision.contracts import VisualDocument
from ..vision.prompts import VISION_SYSTEM_PROMPT, build_vision_prompt
from . import router as ai_router
from .audit import log_ai_run
from .json_tools import RecoveredEntities, ResponseRecoveryError, extract_json, recover_entity_arrays, repair_json
from .retry import generate_with_retry

logger = logging.getLogger(__name__)

ENTITY_TYPE_KEYS = ("entityType", "entity_type", "sheetType", "sheet_type", "type")


def _looks_like_analysis(parsed) -> bool:
    # A nested mapping entry can parse on its own when the outer object is broken.
    return isinstance(parsed, dict) and any(key in parsed for key in ENTITY_TYPE_KEYS)


class ReasoningService(abc.ABC):
    """Contract of the remote reasoning dependency."""

    @abc.abstractmethod
    async def classify(self, sample: TableSample, context: AnalysisContext) -> SheetAnalysisResult:
        """Return the entity type and column mapping of *sample*."""

    @abc.abstractmethod
    async def extract_visual(self, document: VisualDocument, schema: str, context: str) -> RecoveredEntities:
        """Return the entity arrays found in *document*."""


class ProviderReasoningService(ReasoningService):
    """Reasoning backed by the configured AI providers."""

    def __init__(
        self,
        db: Session | None = None,
        *,
        team_id: str | None = None,
        actor_id: str | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._db = db
        self._team_id = team_id
        self._actor_id = actor_id
        self._settings = settings or get_settings()

    def _audit(self, scope: str, provider_result, prompt: str, parsed: dict | None, extra_meta: dict) -> None:
        if self._db is None:
            return
        log_ai_run(
            self._db,
            scope=scope,
            provider_result=provider_result,
            prompt_text=prompt,
            parsed_output=parsed,
            actor_id=self._actor_id,
            team_id=self._team_id,
            extra_meta=extra_meta,
            settings=self._settings,
        )

    async def classify(self, sample: TableSample, context: AnalysisContext) -> SheetAnalysisResult:
        config = ai_router.resolve("sheet_analysis", settings=self._settings)
        prompt = build_sheet_analysis_prompt(sample, context)

        t0 = time.monotonic()
        provider_result, attempts = await generate_with_retry(
            config,
            prompt,
            system_prompt=SHEET_ANALYSIS_SYSTEM_PROMPT,
            settings=self._settings,
        )

        parsed = extract_json(provider_result.raw_text)
        if not _looks_like_analysis(parsed):
            parsed = extract_json(repair_json(provider_result.raw_text))
        if not _looks_like_analysis(parsed):
            raise ResponseRecoveryError(f"No analysis object in response for {sample.label!r}")

        try:
            analysis = SheetAnalysisResult.model_validate(parsed)
        except ValidationError as exc:
            raise ResponseRecoveryError(f"Unusable analysis of {sample.label!r}: {exc.errors()[0]['msg']}") from exc

        logger.info(
            "Table %r classified as %s (%d mapped columns, %d attempts, %.0fms)",
            sample.label,
            analysis.entity_type,
            len(analysis.column_mapping),
            attempts,
            (time.monotonic() - t0) * 1000,
        )
        self._audit(
            "sheet_analysis",
            provider_result,
            prompt,
            analysis.model_dump(mode="json"),
            {"table": sample.label, "attempts": attempts},
        )
        return analysis

    async def extract_visual(self, document: VisualDocument, schema: str, context: str) -> RecoveredEntities:
        config = ai_router.resolve("vision_extract", settings=self._settings)
        prompt = build_vision_prompt(schema, context, filename=document.filename)

        provider_result, attempts = await generate_with_retry(
            config,
            prompt,
            system_prompt=VISION_SYSTEM_PROMPT,
            attachments=[document.as_attachment()],
            settings=self._settings,
        )

        recovered = recover_entity_arrays(provider_result.raw_text)
        logger.info(
            "Document %r: %d entities recovered (layer=%s, attempts=%d)",
            document.filename,
            recovered.total,
            recovered.layer,
            attempts,
        )
        self._audit(
            "vision_extract",
            provider_result,
            prompt,
            {name: len(items) for name, items in recovered.arrays.items()},
            {
                "filename": document.filename,
                "media_type": document.media_type,
                "recovery_layer": recovered.layer,
                "attempts": attempts,
            },
        )
        return recovered
