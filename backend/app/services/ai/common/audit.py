"""Audit entries for every model call made during an import."""

from __future__ import annotations

import hashlib
import logging
import uuid
from typing import Any

from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.services.audit_service import create_audit_log

from .providers.base import ProviderResult

logger = logging.getLogger(__name__)

SCOPE_ACTIONS: dict[str, str] = {
    "sheet_analysis": "AI_SHEET_ANALYZED",
    "vision_extract": "AI_DOCUMENT_EXTRACTED",
}


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode()).hexdigest()


def run_metadata(
    scope: str,
    provider_result: ProviderResult,
    prompt_text: str,
    *,
    store_raw: bool = False,
) -> dict[str, Any]:
    """Provider, usage and content hashes of one call.

    Spreadsheets carry client data, so prompt and response are hashed and
    only kept verbatim when *store_raw* is set.
    """
    metadata: dict[str, Any] = {
        "scope": scope,
        "provider": provider_result.provider,
        "model": provider_result.model,
        "prompt_tokens": provider_result.prompt_tokens,
        "completion_tokens": provider_result.completion_tokens,
        "latency_ms": provider_result.latency_ms,
        "prompt_hash": _sha256(prompt_text),
        "response_hash": _sha256(provider_result.raw_text),
    }
    if store_raw:
        metadata["prompt_raw"] = prompt_text
        metadata["response_raw"] = provider_result.raw_text
    return metadata


def log_ai_run(
    db: Session,
    *,
    scope: str,
    provider_result: ProviderResult,
    prompt_text: str,
    parsed_output: dict[str, Any] | None,
    actor_id: str | None = None,
    team_id: str | None = None,
    extra_meta: dict[str, Any] | None = None,
    settings: Settings | None = None,
) -> None:
    settings = settings or get_settings()
    metadata = run_metadata(scope, provider_result, prompt_text, store_raw=settings.ai_debug_store_raw)
    metadata.update(extra_meta or {})

    create_audit_log(
        db,
        entity_type="ai",
        entity_id=str(uuid.uuid4()),
        action=SCOPE_ACTIONS.get(scope, "AI_RUN"),
        old_value=None,
        new_value=parsed_output,
        actor_type="SYSTEM",
        actor_id=actor_id,
        team_id=team_id,
        metadata=metadata,
    )
    logger.debug("Audited %s call (%s/%s)", scope, provider_result.provider, provider_result.model)
