"""Pydantic schemas for posts, reels and comments."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ._content import ContentPayload


class PostCreate(ContentPayload):
    """Payload used by API clients when constructing a post."""


class ReelCreate(BaseModel):
    """A reel is a video post with a caption and optional hashtags."""

    caption: str = Field(..., min_length=1, max_length=2000)
    hashtags: str = ""
    video_url: str = Field(..., min_length=1)


class PostResponse(BaseModel):
    """Serialized representation of a persisted post."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    content: str | None = None
    image_url: str | None = None
    video_url: str | None = None
    created_at: datetime
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    author_is_admin: bool = False
    like_count: int = 0
    share_count: int = 0
    comment_count: int = 0
    viewer_has_liked: bool = False
    viewer_has_shared: bool = False


class PostFeedResponse(BaseModel):
    """Envelope used when returning a collection of posts."""

    items: list[PostResponse]


class PostEngagementResponse(BaseModel):
    """Like/share/comment counters used by toggle buttons."""

    post_id: UUID
    like_count: int
    share_count: int
    comment_count: int
    viewer_has_liked: bool
    viewer_has_shared: bool


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=500)


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    post_id: UUID
    user_id: UUID
    content: str
    created_at: datetime


class CommentListResponse(BaseModel):
    items: list[CommentResponse]


__all__ = [
    "PostCreate",
    "ReelCreate",
    "PostResponse",
    "PostFeedResponse",
    "PostEngagementResponse",
    "CommentCreate",
    "CommentResponse",
    "CommentListResponse",
]
