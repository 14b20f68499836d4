"""Session verification for bearer tokens issued by the external auth provider."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from ..config import get_settings
from ..database import get_session
from ..models import Profile
from ..security.secrets import MissingSecretError, read_secret

logger = logging.getLogger(__name__)

_security = HTTPBearer(auto_error=False)


class LoginRequiredError(HTTPException):
    """401 that tells the caller where to send the visitor to sign in."""

    def __init__(self, detail: str = "Not authenticated") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )
        self.redirect_to = get_settings().login_path


@dataclass(frozen=True)
class AuthIdentity:
    """Claims extracted from a verified session token."""

    user_id: UUID
    email: str | None = None
    user_metadata: dict[str, Any] = field(default_factory=dict)


@lru_cache(maxsize=1)
def _get_jwt_secret() -> str:
    try:
        return read_secret("JWT_SECRET_KEY")
    except MissingSecretError as exc:
        raise RuntimeError(str(exc)) from exc


def create_access_token(
    subject: UUID,
    *,
    email: str | None = None,
    user_metadata: dict[str, Any] | None = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a signed JWT holding the provided ``subject``."""

    settings = get_settings()
    expire_delta = timedelta(minutes=expires_minutes or settings.jwt_expires_minutes)
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {"sub": str(subject), "exp": now + expire_delta, "iat": now}
    if email:
        payload["email"] = email
    if user_metadata:
        payload["user_metadata"] = user_metadata
    return jwt.encode(payload, _get_jwt_secret(), algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> AuthIdentity:
    """Decode and validate a JWT, returning the identity it carries."""

    try:
        payload = jwt.decode(token, _get_jwt_secret(), algorithms=[get_settings().jwt_algorithm])
    except JWTError as exc:
        raise LoginRequiredError("Invalid token") from exc

    subject = payload.get("sub")
    if not subject:
        raise LoginRequiredError("Invalid token payload")
    try:
        user_id = UUID(subject)
    except ValueError as exc:
        raise LoginRequiredError("Invalid token payload") from exc

    metadata = payload.get("user_metadata")
    return AuthIdentity(
        user_id=user_id,
        email=payload.get("email"),
        user_metadata=metadata if isinstance(metadata, dict) else {},
    )


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(_security),
) -> AuthIdentity:
    """Resolve the session identity from the bearer token."""

    if not credentials or credentials.scheme.lower() != "bearer":
        raise LoginRequiredError("Missing bearer token")
    return decode_access_token(credentials.credentials)


async def get_current_profile(
    identity: AuthIdentity = Depends(get_current_identity),
    db: Session = Depends(get_session),
) -> Profile:
    """Return the caller's profile, provisioning it on first sight."""

    from .profile_service import provision_profile

    profile, _ = provision_profile(db, identity)
    return profile


__all__ = [
    "AuthIdentity",
    "LoginRequiredError",
    "create_access_token",
    "decode_access_token",
    "get_current_identity",
    "get_current_profile",
]
