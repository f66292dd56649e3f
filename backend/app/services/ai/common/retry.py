"""Bounded retry for rate-limited provider calls.

Only HTTP 429 is retried; every other failure surfaces on the first
attempt so the caller can record it against the table or file.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from app.core.config import Settings, get_settings

from .providers.base import Attachment, ProviderRateLimitError, ProviderResult
from .router import ResolvedConfig

logger = logging.getLogger(__name__)


async def generate_with_retry(
    config: ResolvedConfig,
    prompt: str,
    *,
    system_prompt: str | None = None,
    attachments: list[Attachment] | None = None,
    settings: Settings | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> tuple[ProviderResult, int]:
    """Call the provider, retrying rate limits with linear back-off.

    Returns the provider result and the number of attempts made.
    """
    settings = settings or get_settings()
    max_retries = settings.ai_rate_limit_max_retries
    backoff = settings.ai_rate_limit_backoff_seconds

    attempt = 0
    while True:
        attempt += 1
        try:
            result = await config.provider.generate(
                prompt,
                system_prompt=system_prompt,
                attachments=attachments,
                model=config.model,
                temperature=config.temperature,
                max_tokens=config.max_tokens,
                timeout_seconds=config.timeout_seconds,
            )
            return result, attempt
        except ProviderRateLimitError as exc:
            if attempt > max_retries:
                logger.warning("Rate limit persisted after %d attempts (%s)", attempt, exc.provider)
                raise
            wait = backoff * attempt
            logger.warning(
                "Rate limited by %s (attempt %d/%d), retrying in %.1fs",
                exc.provider,
                attempt,
                max_retries + 1,
                wait,
            )
            await sleep(wait)
