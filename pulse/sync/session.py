"""Session resolution: who is signed in, and their provisioned profile."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .client import BackendClient
from .errors import BackendReadError, LoginRequired
from .store import LocalStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionState:
    user_id: str
    profile: dict[str, Any]
    email: Optional[str] = None
    provisioned: bool = False


class SessionResolver:
    def __init__(self, client: BackendClient, store: LocalStore | None = None) -> None:
        self.client = client
        self.store = store

    async def resolve(self) -> SessionState:
        """Return the current session or raise :class:`LoginRequired`.

        The backend creates the profile row on first sight, so the caller
        always gets a profile back.
        """

        if not self.client.token:
            raise LoginRequired()
        try:
            body = await self.client.get("/auth/session")
        except BackendReadError as exc:
            logger.error("Session lookup failed: %s", exc)
            raise
        state = SessionState(
            user_id=str(body["user_id"]),
            profile=body["profile"],
            email=body.get("email"),
            provisioned=bool(body.get("provisioned")),
        )
        if state.provisioned:
            logger.info("Provisioned profile %s", state.profile.get("username"))
        if self.store is not None:
            self.store.profiles.put(state.profile)
        return state


__all__ = ["SessionState", "SessionResolver"]
