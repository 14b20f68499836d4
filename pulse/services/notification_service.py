"""Notification helper logic."""
from __future__ import annotations

import logging
from enum import StrEnum
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..models import Notification, Profile
from .changefeed import emit_change

logger = logging.getLogger(__name__)


class NotificationType(StrEnum):
    FOLLOW = "follow"
    LIKE = "like"
    COMMENT = "comment"
    MESSAGE = "message"


def list_notifications(db: Session, user_id: UUID, *, limit: int | None = None) -> list[Notification]:
    """Return notifications for the supplied recipient ordered newest first."""

    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit or get_settings().notification_limit)
    )
    return list(db.scalars(stmt))


def count_unread_notifications(db: Session, user_id: UUID) -> int:
    stmt = (
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
    )
    return int(db.scalar(stmt) or 0)


def add_notification(
    db: Session,
    *,
    recipient_id: UUID,
    sender: Profile,
    type_: NotificationType | str,
    content: str,
    related_post_id: UUID | None = None,
    related_conversation_id: UUID | None = None,
) -> Notification | None:
    """Persist a notification for ``recipient_id``; nobody is notified about their own actions."""

    if recipient_id == sender.id:
        return None

    notification = Notification(
        user_id=recipient_id,
        from_user_id=sender.id,
        type=str(type_),
        content=content,
        related_post_id=related_post_id,
        related_conversation_id=related_conversation_id,
    )
    db.add(notification)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        # The action that triggered it has already been committed.
        logger.exception("Failed to store %s notification for %s", type_, recipient_id)
        return None

    emit_change("notifications", "INSERT", new=notification, audience=[recipient_id])
    return notification


def mark_notification_read(db: Session, *, notification_id: UUID, user_id: UUID) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    if notification.is_read:
        return notification

    notification.is_read = True
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update notification"
        ) from exc
    emit_change("notifications", "UPDATE", new=notification, audience=[user_id])
    return notification


def mark_all_read(db: Session, user_id: UUID) -> int:
    """Mark all notifications for the given recipient as read."""

    unread_ids = list(
        db.scalars(select(Notification.id).where(Notification.user_id == user_id, Notification.is_read.is_(False)))
    )
    if not unread_ids:
        return 0
    stmt = update(Notification).where(Notification.id.in_(unread_ids)).values(is_read=True)
    try:
        db.execute(stmt)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update notifications"
        ) from exc
    for record in db.scalars(select(Notification).where(Notification.id.in_(unread_ids))):
        emit_change("notifications", "UPDATE", new=record, audience=[user_id])
    return len(unread_ids)


__all__ = [
    "NotificationType",
    "list_notifications",
    "count_unread_notifications",
    "add_notification",
    "mark_notification_read",
    "mark_all_read",
]
