"""Change subscriber: pumps realtime frames into the local store."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Optional, Protocol

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .store import ChangeHandler, ChangeRecord, LocalStore

logger = logging.getLogger(__name__)


class ChangeSourceClosed(Exception):
    """The underlying change feed connection is gone."""


class ChangeSource(Protocol):
    async def connect(self) -> None: ...

    async def send(self, frame: dict[str, Any]) -> None: ...

    async def receive(self) -> dict[str, Any]: ...

    async def close(self) -> None: ...


class WebSocketChangeSource:
    """Change feed over the backend's ``/realtime`` socket."""

    def __init__(self, url: str | Callable[[], str]) -> None:
        self._url = url
        self._ws: Any = None

    def _resolve_url(self) -> str:
        return self._url() if callable(self._url) else self._url

    async def connect(self) -> None:
        try:
            self._ws = await websockets.connect(self._resolve_url())
        except (OSError, WebSocketException) as exc:
            raise ChangeSourceClosed(f"Unable to open change feed: {exc}") from exc

    async def send(self, frame: dict[str, Any]) -> None:
        if self._ws is None:
            raise ChangeSourceClosed("Change feed is not connected")
        try:
            await self._ws.send(json.dumps(frame))
        except ConnectionClosed as exc:
            raise ChangeSourceClosed("Change feed closed") from exc

    async def receive(self) -> dict[str, Any]:
        if self._ws is None:
            raise ChangeSourceClosed("Change feed is not connected")
        try:
            raw = await self._ws.recv()
        except ConnectionClosed as exc:
            raise ChangeSourceClosed("Change feed closed") from exc
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring non-JSON change feed frame")
            return {}
        return frame if isinstance(frame, dict) else {}

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None


class ChangeSubscriber:
    """Keeps topic subscriptions open and feeds every change into ``store``.

    There is no gap detection: after a dropped connection the subscriber
    reconnects and resubscribes, and events published in between are lost.
    """

    def __init__(
        self,
        source: ChangeSource,
        store: LocalStore,
        *,
        reconnect: bool = True,
        reconnect_delay: float = 1.0,
    ) -> None:
        self.source = source
        self.store = store
        self.reconnect = reconnect
        self.reconnect_delay = reconnect_delay
        self._frames: dict[str, dict[str, Any]] = {}
        self._task: Optional[asyncio.Task[None]] = None
        self._connected = False
        self._closed = False

    @property
    def topics(self) -> list[str]:
        return list(self._frames)

    async def start(self) -> None:
        await self.source.connect()
        self._connected = True
        await self._resubscribe()
        self._task = asyncio.get_running_loop().create_task(self._pump())

    async def _resubscribe(self) -> None:
        for frame in list(self._frames.values()):
            await self.source.send(frame)

    async def subscribe(
        self,
        topic: str,
        table: str,
        handler: ChangeHandler,
        *,
        event: str = "*",
        filter: str | None = None,
    ) -> None:
        frame: dict[str, Any] = {"type": "subscribe", "topic": topic, "table": table, "event": event}
        if filter:
            frame["filter"] = filter
        self._frames[topic] = frame
        self.store.bind(topic, handler)
        if self._connected:
            await self.source.send(frame)

    async def unsubscribe(self, topic: str) -> None:
        if self._frames.pop(topic, None) is None:
            return
        self.store.unbind(topic)
        if self._connected:
            try:
                await self.source.send({"type": "unsubscribe", "topic": topic})
            except ChangeSourceClosed:
                logger.debug("Change feed closed before unsubscribing %s", topic)

    def dispatch(self, frame: dict[str, Any]) -> None:
        kind = frame.get("type")
        if kind == "change":
            self.store.apply(ChangeRecord.from_frame(frame))
        elif kind == "error":
            logger.warning("Change feed error for %s: %s", frame.get("topic"), frame.get("error"))

    async def _pump(self) -> None:
        while not self._closed:
            try:
                frame = await self.source.receive()
            except ChangeSourceClosed:
                self._connected = False
                if self._closed or not self.reconnect:
                    break
                logger.warning("Change feed dropped; resubscribing without backfill")
                await asyncio.sleep(self.reconnect_delay)
                try:
                    await self.source.connect()
                    self._connected = True
                    await self._resubscribe()
                except ChangeSourceClosed as exc:
                    logger.warning("Reconnect failed: %s", exc)
                continue
            self.dispatch(frame)

    async def close(self) -> None:
        """Drop every subscription and stop pumping frames."""

        self._closed = True
        for topic in list(self._frames):
            self.store.unbind(topic)
        self._frames.clear()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._connected = False
        await self.source.close()


__all__ = ["ChangeSource", "ChangeSourceClosed", "WebSocketChangeSource", "ChangeSubscriber"]
