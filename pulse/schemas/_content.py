"""Shared validation for rows that carry text and/or an attachment."""
from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class ContentPayload(BaseModel):
    content: str | None = Field(default=None, max_length=5000)
    image_url: str | None = None
    video_url: str | None = None

    @model_validator(mode="after")
    def require_body(self):
        text = (self.content or "").strip()
        self.content = text or None
        self.image_url = (self.image_url or "").strip() or None
        self.video_url = (self.video_url or "").strip() or None
        if not (self.content or self.image_url or self.video_url):
            raise ValueError("Provide text, an image or a video")
        return self


__all__ = ["ContentPayload"]
