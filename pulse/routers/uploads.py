"""Upload relay that stores files in the configured bucket."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import JSONResponse

from ..models import Profile
from ..schemas import UploadResponse
from ..services import (
    StorageConfigurationError,
    StorageUploadError,
    get_current_profile,
    load_storage_config,
    upload_to_storage,
)

router = APIRouter(prefix="/api", tags=["uploads"])
logger = logging.getLogger(__name__)


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=UploadResponse(success=False, error=message).model_dump())


@router.post("/upload", response_model=UploadResponse)
async def upload_endpoint(
    file: Optional[UploadFile] = File(None),
    filename: Optional[str] = Form(None),
    current_user: Profile = Depends(get_current_profile),
):
    """Store the multipart ``file`` at ``filename`` and return its public URL.

    Objects are written with public-read access. A missing bucket
    configuration answers 500 and provider failures answer 502.
    """

    if file is None:
        return _failure(status.HTTP_400_BAD_REQUEST, "No file provided")

    try:
        load_storage_config()
    except StorageConfigurationError as exc:
        logger.error("Upload rejected: %s", exc)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Upload service not configured")

    destination = (filename or file.filename or "").strip()
    if not destination:
        return _failure(status.HTTP_400_BAD_REQUEST, "No filename provided")

    try:
        stored = await upload_to_storage(file, path=destination)
    except StorageUploadError as exc:
        return _failure(status.HTTP_502_BAD_GATEWAY, str(exc))

    logger.info("User %s uploaded %s", current_user.id, stored.key)
    return UploadResponse(success=True, url=stored.url)


__all__ = ["router"]
