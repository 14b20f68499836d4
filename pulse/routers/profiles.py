"""Profile API routes."""
from __future__ import annotations

from dataclasses import asdict
from typing import cast
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import Profile
from ..schemas import (
    FollowStatsResponse,
    PostFeedResponse,
    PostResponse,
    ProfileListResponse,
    ProfileResponse,
    ProfileUpdateRequest,
)
from ..services import (
    get_current_profile,
    get_follow_stats,
    get_profile_or_404,
    list_followers,
    list_following,
    list_liked_posts,
    list_user_posts,
    search_profiles,
    serialize_posts,
    update_profile,
)

router = APIRouter(prefix="/profiles", tags=["profiles"])


def _profile_list(records: list[Profile]) -> ProfileListResponse:
    return ProfileListResponse(items=[ProfileResponse.model_validate(item) for item in records])


@router.get("/me", response_model=ProfileResponse)
async def my_profile(current_user: Profile = Depends(get_current_profile)) -> ProfileResponse:
    return ProfileResponse.model_validate(current_user)


@router.patch("/me", response_model=ProfileResponse)
async def update_my_profile(
    payload: ProfileUpdateRequest,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> ProfileResponse:
    updated = update_profile(db, profile=current_user, payload=payload)
    return ProfileResponse.model_validate(updated)


@router.get("/search", response_model=ProfileListResponse)
async def search_endpoint(
    q: str = Query("", max_length=150),
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> ProfileListResponse:
    return _profile_list(search_profiles(db, query=q, viewer_id=cast(UUID, current_user.id)))


@router.get("/{user_id}", response_model=ProfileResponse)
async def retrieve_profile(
    user_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> ProfileResponse:
    return ProfileResponse.model_validate(get_profile_or_404(db, user_id))


@router.get("/{user_id}/stats", response_model=FollowStatsResponse)
async def profile_stats(
    user_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> FollowStatsResponse:
    stats = get_follow_stats(db, user_id=user_id, viewer_id=cast(UUID, current_user.id))
    return FollowStatsResponse(**asdict(stats))


@router.get("/{user_id}/posts", response_model=PostFeedResponse)
async def profile_posts(
    user_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> PostFeedResponse:
    records = list_user_posts(db, user_id=user_id)
    items = serialize_posts(db, records, cast(UUID, current_user.id))
    return PostFeedResponse(items=[PostResponse(**item) for item in items])


@router.get("/{user_id}/likes", response_model=PostFeedResponse)
async def profile_likes(
    user_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> PostFeedResponse:
    viewer_id = cast(UUID, current_user.id)
    records = list_liked_posts(db, user_id=user_id, viewer_id=viewer_id)
    items = serialize_posts(db, records, viewer_id)
    return PostFeedResponse(items=[PostResponse(**item) for item in items])


@router.get("/{user_id}/followers", response_model=ProfileListResponse)
async def profile_followers(
    user_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> ProfileListResponse:
    return _profile_list(list_followers(db, user_id=user_id, viewer_id=cast(UUID, current_user.id)))


@router.get("/{user_id}/following", response_model=ProfileListResponse)
async def profile_following(
    user_id: UUID,
    current_user: Profile = Depends(get_current_profile),
    db: Session = Depends(get_session),
) -> ProfileListResponse:
    return _profile_list(list_following(db, user_id=user_id, viewer_id=cast(UUID, current_user.id)))


__all__ = ["router"]
