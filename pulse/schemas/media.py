"""Schemas for the upload relay."""
from __future__ import annotations

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    """Envelope returned by ``POST /api/upload``."""

    success: bool
    url: str | None = Field(default=None, description="Public URL of the stored object")
    error: str | None = Field(default=None, description="Reason the upload was rejected")


__all__ = ["UploadResponse"]
