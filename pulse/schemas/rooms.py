"""Schemas used by community chat room endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ._content import ContentPayload


class RoomCreate(BaseModel):
    name: str = Field(..., min_length=3, max_length=120)
    description: str | None = Field(default=None, max_length=1000)
    is_private: bool = False
    banner_url: str | None = None


class RoomResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None
    created_by: UUID | None = None
    is_private: bool = False
    member_count: int = 0
    banner_url: str | None = None
    created_at: datetime
    is_member: bool = False


class RoomListResponse(BaseModel):
    items: list[RoomResponse]


class MembershipResponse(BaseModel):
    room_id: UUID
    member_count: int
    is_member: bool
    status: Literal["joined", "left", "noop"]


class RoomMessageCreate(ContentPayload):
    pass


class RoomMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    room_id: UUID
    user_id: UUID
    content: str | None = None
    image_url: str | None = None
    video_url: str | None = None
    created_at: datetime


class RoomMessageListResponse(BaseModel):
    room_id: UUID
    messages: list[RoomMessageResponse]


__all__ = [
    "RoomCreate",
    "RoomResponse",
    "RoomListResponse",
    "MembershipResponse",
    "RoomMessageCreate",
    "RoomMessageResponse",
    "RoomMessageListResponse",
]
