"""Vision scope contracts: the document handed to a vision-capable model."""

from __future__ import annotations

from dataclasses import dataclass

from ..common.providers.base import Attachment


@dataclass(frozen=True)
class VisualDocument:
    """A PDF or image to extract entities from."""

    data: bytes
    media_type: str
    filename: str = ""

    @property
    def is_pdf(self) -> bool:
        return self.media_type == "application/pdf"

    def as_attachment(self) -> Attachment:
        return Attachment(
            kind="document" if self.is_pdf else "image",
            media_type=self.media_type,
            data=self.data,
            filename=self.filename,
        )
