"""Post, reel and comment API routes."""
from __future__ import annotations

from typing import cast
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import Post, Profile
from ..schemas import (
    CommentCreate,
    CommentListResponse,
    CommentResponse,
    PostCreate,
    PostEngagementResponse,
    PostFeedResponse,
    PostResponse,
    ReelCreate,
)
from ..services import (
    create_post_comment,
    create_post_record,
    create_reel_record,
    delete_post_comment,
    delete_post_record,
    get_current_profile,
    list_feed_records,
    list_post_comments,
    list_reel_records,
    serialize_posts,
    set_post_like_state,
    set_post_share_state,
)

router = APIRouter(prefix="/posts", tags=["posts"])


def _feed(db: Session, records: list[Post], viewer_id: UUID) -> PostFeedResponse:
    return PostFeedResponse(items=[PostResponse(**item) for item in serialize_posts(db, records, viewer_id)])


@router.get("/feed", response_model=PostFeedResponse)
async def feed_endpoint(
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> PostFeedResponse:
    return _feed(db, list_feed_records(db), cast(UUID, current_user.id))


@router.get("/reels", response_model=PostFeedResponse)
async def reels_endpoint(
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> PostFeedResponse:
    return _feed(db, list_reel_records(db), cast(UUID, current_user.id))


@router.post("/", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post_endpoint(
    payload: PostCreate,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> PostResponse:
    post = create_post_record(db, author=current_user, payload=payload)
    return PostResponse(**serialize_posts(db, [post], cast(UUID, current_user.id))[0])


@router.post("/reels", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_reel_endpoint(
    payload: ReelCreate,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> PostResponse:
    post = create_reel_record(db, author=current_user, payload=payload)
    return PostResponse(**serialize_posts(db, [post], cast(UUID, current_user.id))[0])


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post_endpoint(
    post_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> None:
    delete_post_record(db, post_id=post_id, actor=current_user)


@router.put("/{post_id}/like", response_model=PostEngagementResponse)
async def like_post_endpoint(
    post_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> PostEngagementResponse:
    return PostEngagementResponse(**set_post_like_state(db, post_id=post_id, user=current_user, should_like=True))


@router.delete("/{post_id}/like", response_model=PostEngagementResponse)
async def unlike_post_endpoint(
    post_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> PostEngagementResponse:
    return PostEngagementResponse(**set_post_like_state(db, post_id=post_id, user=current_user, should_like=False))


@router.put("/{post_id}/share", response_model=PostEngagementResponse)
async def share_post_endpoint(
    post_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> PostEngagementResponse:
    return PostEngagementResponse(**set_post_share_state(db, post_id=post_id, user=current_user, should_share=True))


@router.delete("/{post_id}/share", response_model=PostEngagementResponse)
async def unshare_post_endpoint(
    post_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> PostEngagementResponse:
    snapshot = set_post_share_state(db, post_id=post_id, user=current_user, should_share=False)
    return PostEngagementResponse(**snapshot)


@router.get("/{post_id}/comments", response_model=CommentListResponse)
async def list_comments_endpoint(
    post_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> CommentListResponse:
    records = list_post_comments(db, post_id=post_id)
    return CommentListResponse(items=[CommentResponse.model_validate(item) for item in records])


@router.post("/{post_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def create_comment_endpoint(
    post_id: UUID,
    payload: CommentCreate,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> CommentResponse:
    comment = create_post_comment(db, post_id=post_id, author=current_user, content=payload.content)
    return CommentResponse.model_validate(comment)


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment_endpoint(
    comment_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> None:
    delete_post_comment(db, comment_id=comment_id, actor=current_user)


__all__ = ["router"]
