"""Provider factory: resolves a provider name to an instance, mock when unusable."""

from __future__ import annotations

import importlib
import logging

from app.core.config import Settings, get_settings

from .base import Attachment, BaseProvider, ProviderRateLimitError, ProviderResult
from .mock import MockProvider

logger = logging.getLogger(__name__)

__all__ = [
    "get_provider",
    "Attachment",
    "BaseProvider",
    "ProviderRateLimitError",
    "ProviderResult",
    "MockProvider",
]

# name -> (module, class, settings attribute holding the API key)
REMOTE_PROVIDERS: dict[str, tuple[str, str, str]] = {
    "claude": (".claude", "ClaudeProvider", "anthropic_api_key"),
    "openai": (".openai", "OpenAIProvider", "openai_api_key"),
}


def get_provider(provider_name: str, settings: Settings | None = None) -> BaseProvider:
    """Return a provider instance for *provider_name*.

    Providers outside the allowlist, unknown names and remote providers
    without an API key all resolve to ``MockProvider``.
    """
    settings = settings or get_settings()
    name = provider_name.lower().strip()

    if name == "mock":
        return MockProvider()
    if name not in settings.ai_allowed_providers:
        logger.warning("Provider %r not in allowlist, using mock", name)
        return MockProvider()
    if name not in REMOTE_PROVIDERS:
        logger.warning("Unknown provider %r, using mock", name)
        return MockProvider()

    module_name, class_name, key_attribute = REMOTE_PROVIDERS[name]
    api_key = getattr(settings, key_attribute)
    if not api_key:
        logger.warning("%s not set, provider %r replaced by mock", key_attribute.upper(), name)
        return MockProvider()

    provider_cls = getattr(importlib.import_module(module_name, __name__), class_name)
    return provider_cls(api_key=api_key)
