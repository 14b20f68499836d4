"""WebSocket change feed that fans committed row changes out to subscribers."""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder
from sqlalchemy import inspect

from ..schemas.realtime import ChangeFrame

logger = logging.getLogger(__name__)

CHANGE_EVENTS = frozenset({"INSERT", "UPDATE", "DELETE"})


def parse_filter(raw: str | None) -> tuple[str, str] | None:
    """Split ``column=eq.value`` into ``(column, value)``."""

    if raw is None or not raw.strip():
        return None
    column, sep, rest = raw.strip().partition("=")
    if not sep or not column:
        raise ValueError(f"Malformed filter: {raw!r}")
    op, dot, value = rest.partition(".")
    if op != "eq" or not dot:
        raise ValueError(f"Only equality filters are supported: {raw!r}")
    return column.strip(), value


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event: str
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None
    # User ids allowed to see the change; ``None`` means any subscriber.
    audience: frozenset[str] | None = None

    def row(self) -> dict[str, Any]:
        return self.new if self.new is not None else (self.old or {})


@dataclass(frozen=True)
class Subscription:
    topic: str
    table: str
    event: str = "*"
    filter: tuple[str, str] | None = None

    def matches(self, change: ChangeEvent) -> bool:
        if change.table != self.table:
            return False
        if self.event != "*" and self.event != change.event:
            return False
        if self.filter is None:
            return True
        column, value = self.filter
        return str(change.row().get(column)) == value


@dataclass
class _Connection:
    user_id: str
    subscriptions: dict[str, Subscription] = field(default_factory=dict)


class ChangeFeedManager:
    """Track realtime sockets and their table subscriptions."""

    def __init__(self) -> None:
        self._connections: dict[WebSocket, _Connection] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections[websocket] = _Connection(user_id=user_id)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._connections.pop(websocket, None)

    async def subscribe(self, websocket: WebSocket, subscription: Subscription) -> None:
        async with self._lock:
            connection = self._connections.get(websocket)
            if connection is None:
                return
            connection.subscriptions[subscription.topic] = subscription

    async def unsubscribe(self, websocket: WebSocket, topic: str) -> bool:
        async with self._lock:
            connection = self._connections.get(websocket)
            if connection is None:
                return False
            return connection.subscriptions.pop(topic, None) is not None

    def subscriber_count(self) -> int:
        return len(self._connections)

    async def broadcast(self, change: ChangeEvent) -> None:
        async with self._lock:
            targets: list[tuple[WebSocket, str]] = []
            for ws, connection in self._connections.items():
                if change.audience is not None and connection.user_id not in change.audience:
                    continue
                for subscription in connection.subscriptions.values():
                    if subscription.matches(change):
                        targets.append((ws, subscription.topic))
        for ws, topic in targets:
            frame = ChangeFrame(topic=topic, table=change.table, event=change.event, new=change.new, old=change.old)
            try:
                await ws.send_text(json.dumps(frame.model_dump(mode="json"), default=str))
            except Exception:
                logger.debug("Dropping realtime socket after failed send")
                await self.disconnect(ws)


change_feed_manager = ChangeFeedManager()


def row_payload(record: Any) -> dict[str, Any]:
    """Serialize the column attributes of an ORM row into JSON-ready values."""

    mapper = inspect(record).mapper
    values = {attr.key: getattr(record, attr.key) for attr in mapper.column_attrs}
    return jsonable_encoder(values)


def emit_change(
    table: str,
    event: str,
    *,
    new: Any = None,
    old: Any = None,
    audience: Iterable[Any] | None = None,
) -> None:
    """Schedule a change event on the running loop; no-op outside one."""

    if event not in CHANGE_EVENTS:
        raise ValueError(f"Unknown change event {event!r}")
    change = ChangeEvent(
        table=table,
        event=event,
        new=_as_payload(new),
        old=_as_payload(old),
        audience=frozenset(str(item) for item in audience) if audience is not None else None,
    )
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    loop.create_task(change_feed_manager.broadcast(change))


def _as_payload(value: Any) -> dict[str, Any] | None:
    if value is None or isinstance(value, dict):
        return value
    return row_payload(value)


__all__ = [
    "ChangeEvent",
    "ChangeFeedManager",
    "Subscription",
    "change_feed_manager",
    "emit_change",
    "parse_filter",
    "row_payload",
]
