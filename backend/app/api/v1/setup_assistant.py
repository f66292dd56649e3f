"""Setup assistant endpoints: import contracts, receivables and expenses from files."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.dependencies import get_db, get_team_id
from app.schemas.setup_assistant import MultiFileResult, ProcessingResult

logger = logging.getLogger(__name__)

router = APIRouter()


def _ensure_setup_assistant_enabled() -> None:
    settings = get_settings()
    if not settings.enable_setup_assistant:
        raise HTTPException(404, "Not found")


async def _read_upload(file: UploadFile) -> tuple[str, bytes]:
    settings = get_settings()
    filename = file.filename or "upload"
    content = await file.read()
    if not content:
        raise HTTPException(400, f"Empty file: {filename}")
    if len(content) > settings.setup_assistant_max_file_bytes:
        raise HTTPException(413, f"File too large: {filename}")
    return filename, content


def _build_service(db: Session, team_id: str):
    from app.services.setup_assistant.service import SetupAssistantService

    return SetupAssistantService(db, team_id)


@router.post(
    "/setup-assistant/upload",
    response_model=ProcessingResult,
    summary="Import financial records from one spreadsheet, CSV, PDF or image",
)
async def upload_file(
    file: UploadFile = File(...),
    profession: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    team_id: str = Depends(get_team_id),
):
    _ensure_setup_assistant_enabled()

    from app.services.setup_assistant.errors import SetupAssistantError

    filename, content = await _read_upload(file)
    service = _build_service(db, team_id)
    try:
        return await service.process_file(content, filename, profession=profession)
    except SetupAssistantError as exc:
        logger.warning("Setup assistant import of %r rejected: %s (%s)", filename, exc.message, exc.code)
        raise HTTPException(exc.status_code, exc.message)


@router.post(
    "/setup-assistant/upload-multiple",
    response_model=MultiFileResult,
    summary="Import financial records from several files, one after another",
)
async def upload_files(
    files: list[UploadFile] = File(...),
    profession: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    team_id: str = Depends(get_team_id),
):
    _ensure_setup_assistant_enabled()

    settings = get_settings()
    if len(files) > settings.setup_assistant_max_files:
        raise HTTPException(400, f"Too many files (max {settings.setup_assistant_max_files})")

    uploads = [await _read_upload(file) for file in files]
    service = _build_service(db, team_id)
    return await service.process_files(uploads, profession=profession)
