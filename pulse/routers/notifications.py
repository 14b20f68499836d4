"""Notification API routes."""
from __future__ import annotations

from typing import cast
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import Profile
from ..schemas import NotificationListResponse, NotificationResponse, NotificationSummaryResponse
from ..services import (
    count_unread_notifications,
    get_current_profile,
    list_notifications,
    mark_all_read,
    mark_notification_read,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=NotificationListResponse)
async def list_my_notifications(
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> NotificationListResponse:
    records = list_notifications(db, cast(UUID, current_user.id))
    return NotificationListResponse(items=[NotificationResponse.model_validate(item) for item in records])


@router.post("/mark-read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_notifications_read(
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> None:
    mark_all_read(db, cast(UUID, current_user.id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read_endpoint(
    notification_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> NotificationResponse:
    record = mark_notification_read(db, notification_id=notification_id, user_id=cast(UUID, current_user.id))
    return NotificationResponse.model_validate(record)


@router.get("/summary", response_model=NotificationSummaryResponse)
async def notification_summary_endpoint(
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> NotificationSummaryResponse:
    unread = count_unread_notifications(db, cast(UUID, current_user.id))
    return NotificationSummaryResponse(unread_count=unread)


__all__ = ["router"]
