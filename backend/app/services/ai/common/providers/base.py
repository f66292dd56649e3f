"""Provider contract, call results and the shared HTTP helper."""

from __future__ import annotations

import abc
import base64
import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderResult:
    raw_text: str
    model: str
    provider: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    latency_ms: float = 0.0


@dataclass(frozen=True)
class Attachment:
    """Binary input sent alongside the prompt (a PDF or an image)."""

    kind: str  # "document" | "image"
    media_type: str
    data: bytes
    filename: str = ""

    @property
    def base64_data(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.base64_data}"


class ProviderRateLimitError(Exception):
    """The provider answered HTTP 429."""

    def __init__(self, provider: str, retry_after: str | None = None) -> None:
        super().__init__(f"{provider} rate limit exceeded")
        self.provider = provider
        self.retry_after = retry_after


class BaseProvider(abc.ABC):
    name: str = "base"

    @abc.abstractmethod
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
        """Send *prompt* (plus any attachments) and return the model's text."""

    async def _post_json(
        self,
        url: str,
        *,
        headers: dict[str, str],
        payload: dict[str, Any],
        timeout_seconds: float,
    ) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=timeout_seconds) as client:
            resp = await client.post(url, headers=headers, json=payload)
        if resp.status_code == 429:
            raise ProviderRateLimitError(self.name, resp.headers.get("retry-after"))
        if resp.is_error:
            logger.warning("%s answered HTTP %d", self.name, resp.status_code)
        resp.raise_for_status()
        return resp.json()
