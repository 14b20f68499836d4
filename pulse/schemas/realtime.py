"""Frames exchanged over the realtime change feed socket."""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

ChangeEventType = Literal["INSERT", "UPDATE", "DELETE"]


class SubscribeFrame(BaseModel):
    type: Literal["subscribe"]
    topic: str = Field(..., min_length=1, max_length=200)
    table: str = Field(..., min_length=1, max_length=64)
    event: Literal["INSERT", "UPDATE", "DELETE", "*"] = "*"
    filter: str | None = Field(default=None, description="Equality filter in the form column=eq.value")


class UnsubscribeFrame(BaseModel):
    type: Literal["unsubscribe"]
    topic: str


class ChangeFrame(BaseModel):
    type: Literal["change"] = "change"
    topic: str
    table: str
    event: ChangeEventType
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None


__all__ = ["ChangeEventType", "SubscribeFrame", "UnsubscribeFrame", "ChangeFrame"]
