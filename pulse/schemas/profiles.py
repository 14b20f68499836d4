"""Schemas for profile and session endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

DmPolicy = Literal["everyone", "followers", "none"]


class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    username: str
    display_name: str
    avatar_url: str | None = None
    bio: str | None = None
    likes_private: bool = False
    followers_private: bool = False
    allow_dm_from: DmPolicy = "everyone"
    is_admin: bool = False
    created_at: datetime


class ProfileListResponse(BaseModel):
    items: list[ProfileResponse]


class ProfileUpdateRequest(BaseModel):
    username: str | None = Field(default=None, min_length=3, max_length=150, pattern=r"^[A-Za-z0-9_.-]+$")
    display_name: str | None = Field(default=None, min_length=1, max_length=150)
    bio: str | None = Field(default=None, max_length=500)
    avatar_url: str | None = None
    likes_private: bool | None = None
    followers_private: bool | None = None
    allow_dm_from: DmPolicy | None = None

    @field_validator("avatar_url", mode="before")
    def clean_avatar(cls, v):
        if v in ("", "None"):
            return None
        return v


class SessionResponse(BaseModel):
    user_id: UUID
    email: str | None = None
    provisioned: bool = False
    profile: ProfileResponse


__all__ = ["DmPolicy", "ProfileResponse", "ProfileListResponse", "ProfileUpdateRequest", "SessionResponse"]
