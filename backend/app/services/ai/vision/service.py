"""Vision extraction: PDFs and images straight to entity drafts in one call."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from app.schemas.setup_assistant import DRAFT_MODELS, EntityType, ExtractionResult
from app.services.setup_assistant.data_transformer import STATUS_VALUES, coerce_fields, transform_status
from app.services.setup_assistant.errors import VisionExtractionError

from ..common.reasoning import ReasoningService
from ..sheet_analysis.contracts import normalize_field_name
from .contracts import VisualDocument
from .prompts import VISION_ENTITY_SCHEMA

logger = logging.getLogger(__name__)

ARRAY_ENTITY_TYPES = {
    "contracts": EntityType.CONTRACT,
    "receivables": EntityType.RECEIVABLE,
    "expenses": EntityType.EXPENSE,
}


def _normalize_item(item: dict[str, Any], entity_type: EntityType) -> dict[str, Any]:
    values = {normalize_field_name(str(key)): value for key, value in item.items()}
    status = values.get("status")
    if isinstance(status, str) and status.strip():
        values["status"] = transform_status(status, list(STATUS_VALUES[entity_type]))
    return coerce_fields(values)


async def extract_from_document(
    reasoning: ReasoningService,
    document: VisualDocument,
    business_context: str,
) -> ExtractionResult:
    """Extract all three entity arrays from *document*.

    Any failure of the call or an unrecoverable response is fatal for the
    document; individual items that do not fit a draft are skipped with a
    warning.
    """
    try:
        recovered = await reasoning.extract_visual(document, VISION_ENTITY_SCHEMA, business_context)
    except Exception as exc:
        logger.exception("Vision extraction failed for %r", document.filename)
        raise VisionExtractionError(
            f"Failed to extract data from {document.filename or 'document'}: {exc}"
        ) from exc

    result = ExtractionResult()
    label = document.filename or "document"
    for array_name, entity_type in ARRAY_ENTITY_TYPES.items():
        model = DRAFT_MODELS[entity_type]
        target = getattr(result, array_name)
        for index, item in enumerate(recovered.arrays.get(array_name, []), start=1):
            try:
                draft = model.model_validate({**_normalize_item(item, entity_type), "source_sheet": label})
            except ValidationError as exc:
                result.warnings.append(f"{label}: {entity_type} {index} skipped ({exc.errors()[0]['msg']})")
                continue
            target.append(draft)

    for array_name in recovered.failed_arrays:
        result.warnings.append(f"{label}: {array_name} could not be read from the response")

    logger.info(
        "Vision extraction %r: %d contracts, %d receivables, %d expenses",
        label,
        len(result.contracts),
        len(result.receivables),
        len(result.expenses),
    )
    return result
