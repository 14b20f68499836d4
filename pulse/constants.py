"""Project-wide constant values."""
from __future__ import annotations

MB = 1024 * 1024

# Attachment ceilings enforced before any upload is attempted
ATTACHMENT_MAX_BYTES = 10 * MB
REEL_MAX_BYTES = 100 * MB
AVATAR_MAX_BYTES = 10 * MB

ATTACHMENT_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
ATTACHMENT_VIDEO_TYPES = frozenset({"video/mp4", "video/webm"})

TYPING_IDLE_SECONDS = 2.0

DM_POLICY_EVERYONE = "everyone"
DM_POLICY_FOLLOWERS = "followers"
DM_POLICY_NONE = "none"

__all__ = [
    "MB",
    "ATTACHMENT_MAX_BYTES",
    "REEL_MAX_BYTES",
    "AVATAR_MAX_BYTES",
    "ATTACHMENT_IMAGE_TYPES",
    "ATTACHMENT_VIDEO_TYPES",
    "TYPING_IDLE_SECONDS",
    "DM_POLICY_EVERYONE",
    "DM_POLICY_FOLLOWERS",
    "DM_POLICY_NONE",
]
