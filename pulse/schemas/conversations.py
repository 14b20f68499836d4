"""Schemas used by direct conversation endpoints."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ._content import ContentPayload
from .profiles import ProfileResponse


class ConversationOpenRequest(BaseModel):
    user_id: UUID


class DirectMessageCreate(ContentPayload):
    pass


class DirectMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    conversation_id: UUID
    user_id: UUID
    content: str | None = None
    image_url: str | None = None
    video_url: str | None = None
    created_at: datetime


class DirectMessageListResponse(BaseModel):
    conversation_id: UUID
    messages: list[DirectMessageResponse]


class ConversationResponse(BaseModel):
    id: UUID
    created_at: datetime
    other_user: ProfileResponse
    last_message: DirectMessageResponse | None = None


class ConversationListResponse(BaseModel):
    items: list[ConversationResponse]


class TypingUpdate(BaseModel):
    is_typing: bool


class TypingIndicatorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    conversation_id: UUID
    user_id: UUID
    is_typing: bool
    updated_at: datetime


class TypingListResponse(BaseModel):
    items: list[TypingIndicatorResponse]


class ReadReceiptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    conversation_id: UUID
    user_id: UUID
    last_read_at: datetime


class UnreadSummaryResponse(BaseModel):
    unread_count: int = 0


__all__ = [
    "ConversationOpenRequest",
    "DirectMessageCreate",
    "DirectMessageResponse",
    "DirectMessageListResponse",
    "ConversationResponse",
    "ConversationListResponse",
    "TypingUpdate",
    "TypingIndicatorResponse",
    "TypingListResponse",
    "ReadReceiptResponse",
    "UnreadSummaryResponse",
]
