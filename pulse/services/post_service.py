"""Business logic for posts, reels, engagement toggles and comments."""
from __future__ import annotations

import logging
import re
from typing import Any, Iterable
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..models import Comment, Like, Post, Profile, Share
from ..schemas import PostCreate, ReelCreate
from .changefeed import emit_change, row_payload
from .notification_service import NotificationType, add_notification
from .profile_service import ensure_list_visible, get_profile_or_404

logger = logging.getLogger(__name__)

_HASHTAG_SPLIT = re.compile(r"[\s,]+")


def normalize_hashtags(raw: str | Iterable[str]) -> list[str]:
    """Return ``#tag`` tokens, lower-cased and de-duplicated in input order."""

    tokens = _HASHTAG_SPLIT.split(raw) if isinstance(raw, str) else list(raw)
    tags: list[str] = []
    for token in tokens:
        cleaned = token.strip().lstrip("#").lower()
        if cleaned and f"#{cleaned}" not in tags:
            tags.append(f"#{cleaned}")
    return tags


def compose_reel_caption(caption: str, hashtags: str | Iterable[str] = "") -> str:
    text = caption.strip()
    tags = normalize_hashtags(hashtags)
    if not tags:
        return text
    return f"{text}\n\n{' '.join(tags)}"


def _get_post_or_404(db: Session, post_id: UUID) -> Post:
    post = db.get(Post, post_id)
    if post is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return post


def _count_map(db: Session, model: Any, post_ids: list[UUID]) -> dict[UUID, int]:
    if not post_ids:
        return {}
    stmt = select(model.post_id, func.count()).where(model.post_id.in_(post_ids)).group_by(model.post_id)
    return {row[0]: int(row[1]) for row in db.execute(stmt)}


def _viewer_set(db: Session, model: Any, post_ids: list[UUID], viewer_id: UUID | None) -> set[UUID]:
    if viewer_id is None or not post_ids:
        return set()
    stmt = select(model.post_id).where(model.post_id.in_(post_ids), model.user_id == viewer_id)
    return set(db.scalars(stmt))


def serialize_posts(db: Session, posts: list[Post], viewer_id: UUID | None) -> list[dict[str, Any]]:
    """Attach author fields and engagement counters to each post."""

    post_ids = [post.id for post in posts]
    likes = _count_map(db, Like, post_ids)
    shares = _count_map(db, Share, post_ids)
    comments = _count_map(db, Comment, post_ids)
    liked = _viewer_set(db, Like, post_ids, viewer_id)
    shared = _viewer_set(db, Share, post_ids, viewer_id)

    items: list[dict[str, Any]] = []
    for post in posts:
        author = post.author
        items.append(
            {
                "id": post.id,
                "user_id": post.user_id,
                "content": post.content,
                "image_url": post.image_url,
                "video_url": post.video_url,
                "created_at": post.created_at,
                "username": author.username if author else None,
                "display_name": author.display_name if author else None,
                "avatar_url": author.avatar_url if author else None,
                "author_is_admin": bool(author.is_admin) if author else False,
                "like_count": likes.get(post.id, 0),
                "share_count": shares.get(post.id, 0),
                "comment_count": comments.get(post.id, 0),
                "viewer_has_liked": post.id in liked,
                "viewer_has_shared": post.id in shared,
            }
        )
    return items


def post_engagement_snapshot(db: Session, post_id: UUID, viewer_id: UUID | None) -> dict[str, Any]:
    def _count(model: Any) -> int:
        return int(db.scalar(select(func.count()).select_from(model).where(model.post_id == post_id)) or 0)

    return {
        "post_id": post_id,
        "like_count": _count(Like),
        "share_count": _count(Share),
        "comment_count": _count(Comment),
        "viewer_has_liked": bool(_viewer_set(db, Like, [post_id], viewer_id)),
        "viewer_has_shared": bool(_viewer_set(db, Share, [post_id], viewer_id)),
    }


def create_post_record(db: Session, *, author: Profile, payload: PostCreate) -> Post:
    post = Post(
        user_id=author.id,
        content=payload.content,
        image_url=payload.image_url,
        video_url=payload.video_url,
    )
    db.add(post)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to create post for %s", author.id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to create post") from exc
    db.refresh(post)
    emit_change("posts", "INSERT", new=post)
    return post


def create_reel_record(db: Session, *, author: Profile, payload: ReelCreate) -> Post:
    caption = compose_reel_caption(payload.caption, payload.hashtags)
    return create_post_record(db, author=author, payload=PostCreate(content=caption, video_url=payload.video_url))


def list_feed_records(db: Session, *, limit: int | None = None) -> list[Post]:
    stmt = select(Post).order_by(Post.created_at.desc()).limit(limit or get_settings().feed_limit)
    return list(db.scalars(stmt))


def list_reel_records(db: Session, *, limit: int | None = None) -> list[Post]:
    stmt = (
        select(Post)
        .where(Post.video_url.is_not(None))
        .order_by(Post.created_at.desc())
        .limit(limit or get_settings().feed_limit)
    )
    return list(db.scalars(stmt))


def list_user_posts(db: Session, *, user_id: UUID) -> list[Post]:
    get_profile_or_404(db, user_id)
    stmt = select(Post).where(Post.user_id == user_id).order_by(Post.created_at.desc())
    return list(db.scalars(stmt))


def list_liked_posts(db: Session, *, user_id: UUID, viewer_id: UUID | None) -> list[Post]:
    owner = get_profile_or_404(db, user_id)
    ensure_list_visible(owner, viewer_id, hidden=bool(owner.likes_private), label="likes")
    stmt = (
        select(Post)
        .join(Like, Like.post_id == Post.id)
        .where(Like.user_id == user_id)
        .order_by(Like.created_at.desc())
    )
    return list(db.scalars(stmt))


def delete_post_record(db: Session, *, post_id: UUID, actor: Profile) -> None:
    post = _get_post_or_404(db, post_id)
    if post.user_id != actor.id and not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to delete this post")

    old = row_payload(post)
    try:
        db.delete(post)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to delete post") from exc
    emit_change("posts", "DELETE", old=old)


def _set_edge_state(db: Session, model: Any, table: str, *, post_id: UUID, user_id: UUID, active: bool) -> Any:
    """Insert or remove the ``(post_id, user_id)`` edge; returns the inserted row, if any."""

    existing = db.scalar(select(model).where(model.post_id == post_id, model.user_id == user_id))
    if active and existing is None:
        record = model(post_id=post_id, user_id=user_id)
        db.add(record)
        try:
            db.commit()
        except IntegrityError:
            # Another request inserted the same edge first.
            db.rollback()
            return None
        except SQLAlchemyError as exc:
            db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to update {table}"
            ) from exc
        emit_change(table, "INSERT", new=record)
        return record
    if not active and existing is not None:
        old = row_payload(existing)
        try:
            db.delete(existing)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to update {table}"
            ) from exc
        emit_change(table, "DELETE", old=old)
    return None


def set_post_like_state(db: Session, *, post_id: UUID, user: Profile, should_like: bool) -> dict[str, Any]:
    post = _get_post_or_404(db, post_id)
    inserted = _set_edge_state(db, Like, "likes", post_id=post_id, user_id=user.id, active=should_like)
    if inserted is not None:
        add_notification(
            db,
            recipient_id=post.user_id,
            sender=user,
            type_=NotificationType.LIKE,
            content=f"{user.username} liked your post",
            related_post_id=post_id,
        )
    return post_engagement_snapshot(db, post_id, user.id)


def set_post_share_state(db: Session, *, post_id: UUID, user: Profile, should_share: bool) -> dict[str, Any]:
    _get_post_or_404(db, post_id)
    _set_edge_state(db, Share, "shares", post_id=post_id, user_id=user.id, active=should_share)
    return post_engagement_snapshot(db, post_id, user.id)


def list_post_comments(db: Session, *, post_id: UUID) -> list[Comment]:
    _get_post_or_404(db, post_id)
    stmt = select(Comment).where(Comment.post_id == post_id).order_by(Comment.created_at.asc())
    return list(db.scalars(stmt))


def create_post_comment(db: Session, *, post_id: UUID, author: Profile, content: str) -> Comment:
    post = _get_post_or_404(db, post_id)
    text = content.strip()
    if not text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Comment cannot be empty")

    comment = Comment(post_id=post_id, user_id=author.id, content=text)
    db.add(comment)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to add comment") from exc
    db.refresh(comment)
    emit_change("comments", "INSERT", new=comment)
    add_notification(
        db,
        recipient_id=post.user_id,
        sender=author,
        type_=NotificationType.COMMENT,
        content=f"{author.username} commented on your post",
        related_post_id=post_id,
    )
    return comment


def delete_post_comment(db: Session, *, comment_id: UUID, actor: Profile) -> None:
    comment = db.get(Comment, comment_id)
    if comment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Comment not found")
    if comment.user_id != actor.id and not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to delete this comment")
    old = row_payload(comment)
    try:
        db.delete(comment)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to delete comment") from exc
    emit_change("comments", "DELETE", old=old)


__all__ = [
    "normalize_hashtags",
    "compose_reel_caption",
    "serialize_posts",
    "post_engagement_snapshot",
    "create_post_record",
    "create_reel_record",
    "list_feed_records",
    "list_reel_records",
    "list_user_posts",
    "list_liked_posts",
    "delete_post_record",
    "set_post_like_state",
    "set_post_share_state",
    "list_post_comments",
    "create_post_comment",
    "delete_post_comment",
]
