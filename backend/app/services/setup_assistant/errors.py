"""Errors raised by the setup assistant import pipeline.

Only file-level failures propagate to the caller; everything scoped to a
single table, batch or row is turned into an error string in the result.
"""

from __future__ import annotations


class SetupAssistantError(Exception):
    code = "SETUP_ASSISTANT_ERROR"
    status_code = 500

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class UnsupportedFileTypeError(SetupAssistantError):
    code = "INVALID_FILE_TYPE"
    status_code = 400


class FileStructureError(SetupAssistantError):
    code = "PARSE_ERROR"
    status_code = 400


class ClassificationError(SetupAssistantError):
    code = "ANALYSIS_ERROR"
    status_code = 422


class VisionExtractionError(SetupAssistantError):
    code = "VISION_EXTRACTION_ERROR"
    status_code = 502
