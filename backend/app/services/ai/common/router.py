"""Scope routing: which provider, model and limits each AI call uses.

Resolution order for the provider name and the model, first non-empty
wins: request override (only with ``ENABLE_AI_OVERRIDES``), the scope's
own setting (``AI_SHEET_ANALYSIS_*`` / ``AI_VISION_*``), then ``mock``.
A model outside the provider's allowlist is swapped for the first
allowed one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from app.core.config import Settings, get_settings

from .providers import BaseProvider, get_provider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScopeSettings:
    provider_attr: str
    model_attr: str
    timeout_attr: str
    max_tokens_attr: str


SCOPE_SETTINGS: dict[str, ScopeSettings] = {
    "sheet_analysis": ScopeSettings(
        "ai_sheet_analysis_provider",
        "ai_sheet_analysis_model",
        "ai_sheet_analysis_timeout_seconds",
        "ai_max_tokens",
    ),
    "vision_extract": ScopeSettings(
        "ai_vision_provider",
        "ai_vision_model",
        "ai_vision_timeout_seconds",
        "ai_vision_max_tokens",
    ),
}


@dataclass(frozen=True)
class ResolvedConfig:
    provider: BaseProvider
    model: str
    temperature: float
    max_tokens: int
    timeout_seconds: float


def _first(*candidates: str | None) -> str:
    return next((value.strip() for value in candidates if value and value.strip()), "")


def _allowed_model(provider_name: str, model: str, settings: Settings) -> str:
    allowed = settings.ai_allowed_models.get(provider_name, [])
    if not allowed or model in allowed:
        return model
    if model:
        logger.warning("Model %r not allowed for %r, using %r", model, provider_name, allowed[0])
    return allowed[0]


def resolve(
    scope: str,
    *,
    override_provider: str | None = None,
    override_model: str | None = None,
    settings: Settings | None = None,
) -> ResolvedConfig:
    settings = settings or get_settings()
    scope_settings = SCOPE_SETTINGS.get(scope)
    if scope_settings is None:
        raise ValueError(f"Unknown AI scope: {scope!r}")

    if not settings.enable_ai_overrides:
        override_provider = override_model = None

    provider_name = _first(override_provider, getattr(settings, scope_settings.provider_attr)).lower() or "mock"
    model = _allowed_model(
        provider_name,
        _first(override_model, getattr(settings, scope_settings.model_attr)),
        settings,
    )

    return ResolvedConfig(
        provider=get_provider(provider_name, settings),
        model=model,
        temperature=settings.ai_temperature,
        max_tokens=getattr(settings, scope_settings.max_tokens_attr),
        timeout_seconds=getattr(settings, scope_settings.timeout_attr),
    )
