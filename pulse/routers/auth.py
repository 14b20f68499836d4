"""Session routes; credentials are issued by the external auth provider."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_session
from ..schemas import ProfileResponse, SessionResponse
from ..services import AuthIdentity, get_current_identity, provision_profile

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/session", response_model=SessionResponse)
async def session_endpoint(
    identity: AuthIdentity = Depends(get_current_identity),
    db: Session = Depends(get_session),
) -> SessionResponse:
    """Verify the bearer token and make sure the caller has a profile row."""

    profile, created = provision_profile(db, identity)
    return SessionResponse(
        user_id=identity.user_id,
        email=identity.email,
        provisioned=created,
        profile=ProfileResponse.model_validate(profile),
    )


__all__ = ["router"]
