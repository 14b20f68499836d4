"""Profile provisioning, lookup and settings updates."""
from __future__ import annotations

import logging
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..models import Profile
from ..schemas import ProfileUpdateRequest
from .auth_service import AuthIdentity
from .changefeed import emit_change

logger = logging.getLogger(__name__)


def derive_username(identity: AuthIdentity) -> str:
    """Pick the preferred username for a fresh profile."""

    metadata_name = identity.user_metadata.get("username")
    if isinstance(metadata_name, str) and metadata_name.strip():
        return metadata_name.strip()[:150]
    if identity.email and "@" in identity.email:
        local_part = identity.email.split("@", 1)[0].strip()
        if local_part:
            return local_part[:150]
    return f"user_{str(identity.user_id)[:8]}"


def _available_username(db: Session, candidate: str, user_id: UUID) -> str:
    taken = db.scalar(select(Profile.id).where(Profile.username == candidate, Profile.id != user_id))
    if taken is None:
        return candidate
    return _suffixed(candidate, user_id)


def _suffixed(candidate: str, user_id: UUID) -> str:
    return f"{candidate[:140]}_{str(user_id)[:8]}"


def _insert_profile(db: Session, profile: Profile) -> bool:
    """Commit ``profile``; ``False`` when a unique constraint rejected it."""

    db.add(profile)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to provision profile for %s", profile.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to provision profile"
        ) from exc
    return True


def provision_profile(db: Session, identity: AuthIdentity) -> tuple[Profile, bool]:
    """Return the caller's profile, creating it when missing.

    The boolean is ``True`` only for the request that inserted the row.
    Concurrent first requests race on the primary key; the loser re-reads the
    winner's row instead of failing. A username taken by another user between
    the availability check and the insert is retried once with the id suffix.
    """

    existing = db.get(Profile, identity.user_id)
    if existing is not None:
        return existing, False

    preferred = derive_username(identity)
    explicit_name = identity.user_metadata.get("display_name")
    if not isinstance(explicit_name, str) or not explicit_name.strip():
        explicit_name = None

    candidates = [_available_username(db, preferred, identity.user_id), _suffixed(preferred, identity.user_id)]
    for username in dict.fromkeys(candidates):
        display_name = (explicit_name or username).strip()[:150]
        profile = Profile(id=identity.user_id, username=username, display_name=display_name)
        if _insert_profile(db, profile):
            logger.info("Provisioned profile %s (%s)", profile.id, profile.username)
            emit_change("profiles", "INSERT", new=profile)
            return profile, True
        existing = db.get(Profile, identity.user_id)
        if existing is not None:
            logger.warning("Profile for %s was provisioned concurrently; reusing it", identity.user_id)
            return existing, False
        logger.warning("Username %r was claimed concurrently while provisioning %s", username, identity.user_id)

    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Unable to provision profile")


def get_profile_or_404(db: Session, user_id: UUID) -> Profile:
    profile = db.get(Profile, user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return profile


def ensure_list_visible(owner: Profile, viewer_id: UUID | None, *, hidden: bool, label: str) -> None:
    """Raise 403 when ``owner`` keeps ``label`` private from ``viewer_id``."""

    if hidden and viewer_id != owner.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"This user's {label} are private")


def update_profile(db: Session, *, profile: Profile, payload: ProfileUpdateRequest) -> Profile:
    """Apply settings changes sent by the owner."""

    update_data = payload.model_dump(exclude_unset=True)

    # A null avatar in a partial update keeps the current one.
    if update_data.get("avatar_url", "") is None:
        update_data.pop("avatar_url")
    if "display_name" in update_data:
        name = (update_data["display_name"] or "").strip()
        if not name:
            update_data.pop("display_name")
        else:
            update_data["display_name"] = name
    if "username" in update_data:
        username = (update_data["username"] or "").strip()
        if not username or username == profile.username:
            update_data.pop("username")
        elif db.scalar(select(Profile.id).where(Profile.username == username, Profile.id != profile.id)):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already in use")
        else:
            update_data["username"] = username
    for key in ("likes_private", "followers_private", "allow_dm_from"):
        if key in update_data and update_data[key] is None:
            update_data.pop(key)

    for field_name, value in update_data.items():
        setattr(profile, field_name, value)

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update profile",
        ) from exc

    db.refresh(profile)
    emit_change("profiles", "UPDATE", new=profile)
    return profile


def search_profiles(db: Session, *, query: str, viewer_id: UUID, limit: int | None = None) -> list[Profile]:
    """Case-insensitive match on username or display name, excluding the viewer."""

    term = query.strip()
    if not term:
        return []
    pattern = f"%{term.lower()}%"
    stmt = (
        select(Profile)
        .where(
            Profile.id != viewer_id,
            or_(func.lower(Profile.username).like(pattern), func.lower(Profile.display_name).like(pattern)),
        )
        .order_by(Profile.username.asc())
        .limit(limit or get_settings().search_limit)
    )
    return list(db.scalars(stmt))


__all__ = [
    "derive_username",
    "provision_profile",
    "get_profile_or_404",
    "ensure_list_visible",
    "update_profile",
    "search_profiles",
]
