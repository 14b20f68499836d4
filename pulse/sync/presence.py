"""Typing indicator tracking for one conversation."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from .client import BackendClient
from .errors import SyncError
from .store import ChangeRecord, LocalStore

logger = logging.getLogger(__name__)


class TypingTracker:
    """Publishes the viewer's typing flag and follows everyone else's.

    ``keystroke`` marks the viewer as typing and re-arms an idle timer that
    clears the flag; ``sent`` and ``close`` clear it immediately. Write
    failures are only logged.
    """

    def __init__(
        self,
        client: BackendClient,
        conversation_id: Any,
        *,
        viewer_id: Any,
        idle_seconds: float | None = None,
    ) -> None:
        self.client = client
        self.conversation_id = str(conversation_id)
        self.viewer_id = str(viewer_id)
        self.idle_seconds = idle_seconds if idle_seconds is not None else client.settings.typing_idle_seconds
        self._typing = False
        self._timer: Optional[asyncio.Task[None]] = None
        self._others: set[str] = set()
        self._closed = False

    @property
    def is_typing(self) -> bool:
        return self._typing

    @property
    def others_typing(self) -> set[str]:
        return set(self._others)

    @property
    def topic(self) -> str:
        return f"typing:{self.conversation_id}"

    async def _publish(self, is_typing: bool) -> None:
        self._typing = is_typing
        try:
            await self.client.put(
                f"/conversations/{self.conversation_id}/typing",
                json={"is_typing": is_typing},
            )
        except SyncError as exc:
            logger.warning("Typing update for %s failed: %s", self.conversation_id, exc)

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _expire(self) -> None:
        await asyncio.sleep(self.idle_seconds)
        self._timer = None
        if self._typing:
            await self._publish(False)

    async def keystroke(self) -> None:
        if self._closed:
            return
        self._cancel_timer()
        if not self._typing:
            await self._publish(True)
        self._timer = asyncio.get_running_loop().create_task(self._expire())

    async def sent(self) -> None:
        self._cancel_timer()
        if self._typing:
            await self._publish(False)

    async def close(self) -> None:
        self._closed = True
        await self.sent()
        self._others.clear()

    def handle_change(self, store: LocalStore, change: ChangeRecord) -> None:
        row = change.row
        user_id = str(row.get("user_id"))
        if user_id == self.viewer_id or str(row.get("conversation_id")) != self.conversation_id:
            return
        if change.event != "DELETE" and row.get("is_typing"):
            self._others.add(user_id)
        else:
            self._others.discard(user_id)
        store.notify(self.topic)


__all__ = ["TypingTracker"]
