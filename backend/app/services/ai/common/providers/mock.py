"""Mock provider: deterministic, offline answers for tests and unconfigured deployments."""

from __future__ import annotations

import json
import time

from .base import Attachment, BaseProvider, ProviderResult

# A skipped table and an empty document: nothing gets imported without a real model.
MOCK_ANALYSIS = {"entityType": "skip", "columnMapping": {}, "reasoning": "mock provider"}
MOCK_EXTRACTION = {"contracts": [], "receivables": [], "expenses": []}


class MockProvider(BaseProvider):
    name = "mock"

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
        t0 = time.monotonic()
        text = json.dumps(MOCK_EXTRACTION if attachments else MOCK_ANALYSIS)
        return ProviderResult(
            raw_text=text,
            model=model or "mock-v1",
            provider=self.name,
            prompt_tokens=len(prompt.split()),
            completion_tokens=len(text.split()),
            latency_ms=round((time.monotonic() - t0) * 1000, 2),
        )
