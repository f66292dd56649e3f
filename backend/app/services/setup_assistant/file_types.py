"""File type sniffing: extension first, magic bytes as fallback."""

from __future__ import annotations

from pathlib import PurePath

from app.schemas.setup_assistant import FileType

from .errors import UnsupportedFileTypeError

UNSUPPORTED_MESSAGE = "Unsupported file type. Please upload XLSX, CSV, PDF, or image files."

# Compound document header of legacy BIFF (.xls) workbooks.
OLE_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"

EXTENSION_TYPES: dict[str, FileType] = {
    "xlsx": FileType.XLSX,
    "xls": FileType.XLSX,
    "csv": FileType.CSV,
    "pdf": FileType.PDF,
    "png": FileType.IMAGE,
    "jpg": FileType.IMAGE,
    "jpeg": FileType.IMAGE,
    "gif": FileType.IMAGE,
    "webp": FileType.IMAGE,
}

IMAGE_MEDIA_TYPES: dict[str, str] = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
}


def _extension(filename: str) -> str:
    return PurePath(filename or "").suffix.lower().lstrip(".")


def _sniff_image(data: bytes) -> str | None:
    if data.startswith(b"\x89PNG"):
        return "image/png"
    if data.startswith(b"\xff\xd8"):
        return "image/jpeg"
    if data.startswith(b"GIF8"):
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def detect_file_type(filename: str, data: bytes) -> FileType:
    file_type = EXTENSION_TYPES.get(_extension(filename))
    if file_type is not None:
        return file_type

    if data.startswith(b"%PDF"):
        return FileType.PDF
    if _sniff_image(data):
        return FileType.IMAGE
    if data.startswith(b"PK\x03\x04") or data.startswith(OLE_SIGNATURE):
        return FileType.XLSX

    raise UnsupportedFileTypeError(UNSUPPORTED_MESSAGE)


def image_media_type(filename: str, data: bytes) -> str:
    return IMAGE_MEDIA_TYPES.get(_extension(filename)) or _sniff_image(data) or "image/png"
