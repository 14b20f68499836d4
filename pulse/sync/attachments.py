"""Attachment validation, destination naming and upload."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Literal, Optional

from ..constants import (
    ATTACHMENT_IMAGE_TYPES,
    ATTACHMENT_MAX_BYTES,
    ATTACHMENT_VIDEO_TYPES,
    AVATAR_MAX_BYTES,
    MB,
    REEL_MAX_BYTES,
)
from .client import BackendClient
from .errors import ValidationError

logger = logging.getLogger(__name__)

AttachmentKind = Literal["chat", "dm", "post", "reel", "avatar"]


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return PurePosixPath(self.filename).suffix.lstrip(".").lower()


@dataclass(frozen=True)
class UploadedAttachment:
    url: str
    path: str
    media: Literal["image", "video"]

    @property
    def field(self) -> str:
        """Row column that should carry the URL."""

        return "image_url" if self.media == "image" else "video_url"


def _media_of(content_type: str) -> Optional[Literal["image", "video"]]:
    if content_type.startswith("image/"):
        return "image"
    if content_type.startswith("video/"):
        return "video"
    return None


def validate_attachment(attachment: Attachment, kind: AttachmentKind) -> Literal["image", "video"]:
    """Check type and size for ``kind``; raises :class:`ValidationError`."""

    content_type = (attachment.content_type or "").lower()
    media = _media_of(content_type)

    if attachment.size == 0:
        raise ValidationError(f"{attachment.filename} is empty")

    if kind == "reel":
        if media != "video":
            raise ValidationError("Reels must be a video file")
        limit = REEL_MAX_BYTES
    elif kind == "avatar":
        if media != "image":
            raise ValidationError("Please upload an image file")
        limit = AVATAR_MAX_BYTES
    else:
        if content_type not in ATTACHMENT_IMAGE_TYPES and content_type not in ATTACHMENT_VIDEO_TYPES:
            raise ValidationError("Only images (JPEG, PNG, GIF, WebP) and videos (MP4, WebM) are allowed")
        limit = ATTACHMENT_MAX_BYTES

    if attachment.size > limit:
        raise ValidationError(f"File must be {limit // MB}MB or smaller")
    return "image" if media == "image" else "video"


def destination_path(
    kind: AttachmentKind,
    attachment: Attachment,
    *,
    user_id: Any = None,
    room_id: Any = None,
    now_ms: int | None = None,
) -> str:
    """Object path for an upload, unique per millisecond."""

    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    name = PurePosixPath(attachment.filename).name
    ext = attachment.extension
    if kind == "chat":
        return f"attachments/{room_id}/{user_id}-{stamp}.{ext}"
    if kind == "avatar":
        return f"avatars/{user_id}-{stamp}.{ext}"
    if kind == "reel":
        return f"reels/{user_id}/{stamp}-{name}"
    if kind == "dm":
        return f"messages/{stamp}-{name}"
    return f"posts/{stamp}-{name}"


class AttachmentPipeline:
    """Validate locally, then relay through ``POST /api/upload``."""

    def __init__(self, client: BackendClient) -> None:
        self.client = client

    async def upload(
        self,
        attachment: Attachment,
        kind: AttachmentKind,
        *,
        user_id: Any = None,
        room_id: Any = None,
    ) -> UploadedAttachment:
        media = validate_attachment(attachment, kind)
        path = destination_path(kind, attachment, user_id=user_id, room_id=room_id)
        url = await self.client.upload(
            path=path,
            content=attachment.content,
            content_type=attachment.content_type,
            filename=attachment.filename,
        )
        logger.debug("Uploaded %s (%d bytes) to %s", attachment.filename, attachment.size, path)
        return UploadedAttachment(url=url, path=path, media=media)


__all__ = [
    "Attachment",
    "AttachmentKind",
    "AttachmentPipeline",
    "UploadedAttachment",
    "destination_path",
    "validate_attachment",
]
