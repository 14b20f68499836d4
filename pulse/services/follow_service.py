"""Business logic for follower relationships."""
from __future__ import annotations

from dataclasses import dataclass
from typing import cast
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Follow, Profile
from .changefeed import emit_change
from .notification_service import NotificationType, add_notification
from .profile_service import ensure_list_visible, get_profile_or_404


@dataclass(slots=True)
class FollowStats:
    user_id: UUID
    followers_count: int
    following_count: int
    is_following: bool


def is_following(db: Session, *, follower_id: UUID, following_id: UUID) -> bool:
    return (
        db.scalar(
            select(Follow.follower_id).where(
                Follow.follower_id == follower_id,
                Follow.following_id == following_id,
            )
        )
        is not None
    )


def follow_user(db: Session, *, follower: Profile, target_id: UUID) -> bool:
    follower_id = cast(UUID, follower.id)
    if follower_id == target_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot follow yourself")

    get_profile_or_404(db, target_id)

    if is_following(db, follower_id=follower_id, following_id=target_id):
        return False

    record = Follow(follower_id=follower_id, following_id=target_id)
    db.add(record)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to follow user") from exc

    emit_change("follows", "INSERT", new=record)
    add_notification(
        db,
        recipient_id=target_id,
        sender=follower,
        type_=NotificationType.FOLLOW,
        content=f"{follower.username} started following you",
    )
    return True


def unfollow_user(db: Session, *, follower: Profile, target_id: UUID) -> bool:
    follower_id = cast(UUID, follower.id)
    if follower_id == target_id:
        return False

    record = db.scalar(
        select(Follow).where(Follow.follower_id == follower_id, Follow.following_id == target_id)
    )
    if record is None:
        return False
    old = {"follower_id": str(follower_id), "following_id": str(target_id)}
    try:
        db.delete(record)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to unfollow user") from exc
    emit_change("follows", "DELETE", old=old)
    return True


def get_follow_stats(db: Session, *, user_id: UUID, viewer_id: UUID | None = None) -> FollowStats:
    get_profile_or_404(db, user_id)

    followers_count = db.scalar(
        select(func.count()).select_from(Follow).where(Follow.following_id == user_id)
    ) or 0
    following_count = db.scalar(
        select(func.count()).select_from(Follow).where(Follow.follower_id == user_id)
    ) or 0

    following = False
    if viewer_id is not None:
        following = is_following(db, follower_id=viewer_id, following_id=user_id)

    return FollowStats(
        user_id=user_id,
        followers_count=int(followers_count),
        following_count=int(following_count),
        is_following=following,
    )


def list_followers(db: Session, *, user_id: UUID, viewer_id: UUID | None) -> list[Profile]:
    owner = get_profile_or_404(db, user_id)
    ensure_list_visible(owner, viewer_id, hidden=bool(owner.followers_private), label="followers")
    stmt = (
        select(Profile)
        .join(Follow, Follow.follower_id == Profile.id)
        .where(Follow.following_id == user_id)
        .order_by(Follow.created_at.desc())
    )
    return list(db.scalars(stmt))


def list_following(db: Session, *, user_id: UUID, viewer_id: UUID | None) -> list[Profile]:
    owner = get_profile_or_404(db, user_id)
    ensure_list_visible(owner, viewer_id, hidden=bool(owner.followers_private), label="followers")
    stmt = (
        select(Profile)
        .join(Follow, Follow.following_id == Profile.id)
        .where(Follow.follower_id == user_id)
        .order_by(Follow.created_at.desc())
    )
    return list(db.scalars(stmt))


__all__ = [
    "FollowStats",
    "is_following",
    "follow_user",
    "unfollow_user",
    "get_follow_stats",
    "list_followers",
    "list_following",
]
