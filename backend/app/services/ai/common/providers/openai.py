"""OpenAI Chat Completions provider."""

from __future__ import annotations

import logging
import time

from .base import Attachment, BaseProvider, ProviderResult

logger = logging.getLogger(__name__)

COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o-mini-2024-07-18"


def build_messages(prompt: str, system_prompt: str | None, attachments: list[Attachment] | None) -> list[dict]:
    messages: list[dict] = [{"role": "system", "content": system_prompt}] if system_prompt else []
    if not attachments:
        messages.append({"role": "user", "content": prompt})
        return messages

    parts: list[dict] = []
    for attachment in attachments:
        if attachment.kind == "document":
            parts.append({
                "type": "file",
                "file": {"filename": attachment.filename or "document.pdf", "file_data": attachment.data_url},
            })
        else:
            parts.append({"type": "image_url", "image_url": {"url": attachment.data_url}})
    parts.append({"type": "text", "text": prompt})
    messages.append({"role": "user", "content": parts})
    return messages


class OpenAIProvider(BaseProvider):
    name = "openai"

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
        t0 = time.monotonic()
        data = await self._post_json(
            COMPLETIONS_URL,
            headers={"Authorization": f"Bearer {self._api_key}"},
            payload={
                "model": model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": build_messages(prompt, system_prompt, attachments),
            },
            timeout_seconds=timeout_seconds,
        )
        elapsed = (time.monotonic() - t0) * 1000

        choice = data["choices"][0]
        if choice.get("finish_reason") == "length":
            logger.warning("OpenAI response truncated at max_tokens=%d", max_tokens)

        usage = data.get("usage", {})
        return ProviderResult(
            raw_text=choice["message"].get("content") or "",
            model=model,
            provider=self.name,
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            latency_ms=round(elapsed, 2),
        )
