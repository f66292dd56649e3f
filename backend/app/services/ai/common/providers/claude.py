"""Anthropic Messages API provider; PDFs go as document blocks, images as image blocks."""

from __future__ import annotations

import logging
import time
from typing import Any

from .base import Attachment, BaseProvider, ProviderResult

logger = logging.getLogger(__name__)

MESSAGES_URL = "https://api.anthropic.com/v1/messages"
API_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-sonnet-4-5"


def build_content(prompt: str, attachments: list[Attachment] | None) -> list[dict] | str:
    if not attachments:
        return prompt
    blocks: list[dict] = [
        {
            "type": "document" if attachment.kind == "document" else "image",
            "source": {"type": "base64", "media_type": attachment.media_type, "data": attachment.base64_data},
        }
        for attachment in attachments
    ]
    blocks.append({"type": "text", "text": prompt})
    return blocks


class ClaudeProvider(BaseProvider):
    name = "claude"

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        attachments: list[Attachment] | None = None,
        model: str = "",
        temperature: float = 0.3,
        max_tokens: int = 1024,
        timeout_seconds: float = 8.0,
    ) -> ProviderResult:
        model = model or DEFAULT_MODEL
        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": build_content(prompt, attachments)}],
        }
        if system_prompt:
            payload["system"] = system_prompt

        t0 = time.monotonic()
        data = await self._post_json(
            MESSAGES_URL,
            headers={"x-api-key": self._api_key, "anthropic-version": API_VERSION},
            payload=payload,
            timeout_seconds=timeout_seconds,
        )
        elapsed = (time.monotonic() - t0) * 1000

        if data.get("stop_reason") == "max_tokens":
            # Truncated JSON is left to the response recovery layers.
            logger.warning("Claude response truncated at max_tokens=%d", max_tokens)

        usage = data.get("usage", {})
        return ProviderResult(
            raw_text="".join(block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"),
            model=model,
            provider=self.name,
            prompt_tokens=usage.get("input_tokens", 0),
            completion_tokens=usage.get("output_tokens", 0),
            latency_ms=round(elapsed, 2),
        )
