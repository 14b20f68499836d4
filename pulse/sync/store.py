"""Event-sourced local state: every change event is applied in one place."""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

logger = logging.getLogger(__name__)

Row = dict[str, Any]


@dataclass(frozen=True)
class ChangeRecord:
    """One change event as delivered by the realtime feed."""

    topic: str
    table: str
    event: str
    new: Optional[Row] = None
    old: Optional[Row] = None

    @property
    def row(self) -> Row:
        return self.new if self.new is not None else (self.old or {})

    @classmethod
    def from_frame(cls, frame: dict[str, Any]) -> "ChangeRecord":
        return cls(
            topic=str(frame.get("topic") or ""),
            table=str(frame.get("table") or ""),
            event=str(frame.get("event") or ""),
            new=frame.get("new"),
            old=frame.get("old"),
        )


def _timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return datetime.min.replace(tzinfo=timezone.utc)
    else:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Collection:
    """Rows keyed by primary key, kept in ``order_by`` order."""

    def __init__(
        self,
        name: str,
        *,
        key: str = "id",
        order_by: str = "created_at",
        descending: bool = False,
        limit: int | None = None,
    ) -> None:
        self.name = name
        self.key = key
        self.order_by = order_by
        self.descending = descending
        self.limit = limit
        self._rows: dict[str, Row] = {}

    def _key_of(self, row: Row) -> str:
        return str(row.get(self.key))

    def replace(self, rows: Iterable[Row]) -> None:
        self._rows = {self._key_of(row): dict(row) for row in rows}

    def upsert(self, row: Row) -> bool:
        """Insert ``row`` unless a row with the same key is already present.

        Limited collections then drop whatever sorts past ``limit``. Returns
        ``True`` when the row was added and kept.
        """

        key = self._key_of(row)
        if key in self._rows:
            return False
        self._rows[key] = dict(row)
        self._trim()
        return key in self._rows

    def _ordered(self) -> list[Row]:
        return sorted(
            self._rows.values(),
            key=lambda row: _timestamp(row.get(self.order_by)),
            reverse=self.descending,
        )

    def _trim(self) -> None:
        if self.limit is None or len(self._rows) <= self.limit:
            return
        for row in self._ordered()[self.limit :]:
            self._rows.pop(self._key_of(row), None)

    def merge(self, key: Any, changes: Row) -> Optional[Row]:
        current = self._rows.get(str(key))
        if current is None:
            return None
        current.update(changes)
        return current

    def remove(self, key: Any) -> Optional[Row]:
        return self._rows.pop(str(key), None)

    def get(self, key: Any) -> Optional[Row]:
        return self._rows.get(str(key))

    def clear(self) -> None:
        self._rows.clear()

    def items(self) -> list[Row]:
        ordered = self._ordered()
        if self.limit is not None:
            return ordered[: self.limit]
        return ordered

    def keys(self) -> set[str]:
        return set(self._rows)

    def __contains__(self, key: object) -> bool:
        return str(key) in self._rows

    def __len__(self) -> int:
        return len(self._rows)


class ProfileCache:
    """Bounded LRU of profile rows keyed by user id."""

    def __init__(self, capacity: int = 256) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: OrderedDict[str, Row] = OrderedDict()

    def get(self, user_id: Any) -> Optional[Row]:
        key = str(user_id)
        entry = self._entries.get(key)
        if entry is not None:
            self._entries.move_to_end(key)
        return entry

    def put(self, profile: Row) -> None:
        key = str(profile.get("id"))
        self._entries[key] = dict(profile)
        self._entries.move_to_end(key)
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted profile %s from cache", evicted)

    def evict(self, user_id: Any) -> None:
        self._entries.pop(str(user_id), None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, user_id: object) -> bool:
        return str(user_id) in self._entries

    def __len__(self) -> int:
        return len(self._entries)


ChangeHandler = Callable[["LocalStore", ChangeRecord], None]
Listener = Callable[[str], None]


class LocalStore:
    """Single funnel for change events and optimistic edits.

    Handlers are bound per subscription topic. ``apply`` runs them
    synchronously so their effects never interleave, then tells listeners
    which collections changed.
    """

    def __init__(self, *, profile_cache_size: int = 256) -> None:
        self._collections: dict[str, Collection] = {}
        self._handlers: dict[str, list[ChangeHandler]] = {}
        self._listeners: list[Listener] = []
        self.profiles = ProfileCache(profile_cache_size)

    def collection(self, name: str, **options: Any) -> Collection:
        existing = self._collections.get(name)
        if existing is None:
            existing = self._collections[name] = Collection(name, **options)
        return existing

    def has_collection(self, name: str) -> bool:
        return name in self._collections

    def holding(self, key: Any) -> list[Collection]:
        """Collections that currently hold a row keyed ``key``."""

        return [collection for collection in self._collections.values() if key in collection]

    def bind(self, topic: str, handler: ChangeHandler) -> None:
        self._handlers.setdefault(topic, []).append(handler)

    def unbind(self, topic: str) -> None:
        self._handlers.pop(topic, None)

    def listen(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def notify(self, name: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(name)
            except Exception:
                logger.exception("Store listener failed for %s", name)

    def apply(self, change: ChangeRecord) -> None:
        handlers = self._handlers.get(change.topic)
        if not handlers:
            logger.debug("No handler bound for topic %s", change.topic)
            return
        for handler in list(handlers):
            try:
                handler(self, change)
            except Exception:
                logger.exception("Change handler for %s failed on %s %s", change.topic, change.table, change.event)


def mirror_rows(
    collection: str,
    *,
    on_insert: Optional[Callable[[Row], None]] = None,
    accept: Optional[Callable[[Row], bool]] = None,
) -> ChangeHandler:
    """Handler that keeps ``collection`` in line with insert/update/delete events.

    Inserts already present (optimistic appends) are ignored. ``on_insert``
    may fill in derived fields on the stored row.
    """

    def _handler(store: LocalStore, change: ChangeRecord) -> None:
        target = store.collection(collection)
        if accept is not None and change.event != "DELETE" and not accept(change.row):
            return
        if change.event == "INSERT" and change.new is not None:
            if not target.upsert(change.new):
                return
            stored = target.get(change.new.get(target.key))
            if on_insert is not None and stored is not None:
                on_insert(stored)
        elif change.event == "UPDATE" and change.new is not None:
            key = change.new.get(target.key)
            if target.merge(key, change.new) is None:
                target.upsert(change.new)
        elif change.event == "DELETE":
            key = change.row.get(target.key)
            if target.remove(key) is None:
                return
        else:
            return
        store.notify(collection)

    return _handler


def count_edges(
    collection: str,
    *,
    parent_field: str,
    count_field: str,
    ignore_user: Any = None,
) -> ChangeHandler:
    """Handler that adjusts ``count_field`` on a parent row as edge rows come and go.

    Events authored by ``ignore_user`` are skipped: that user's own toggles
    are reconciled from the write response instead.
    """

    ignored = str(ignore_user) if ignore_user is not None else None

    def _handler(store: LocalStore, change: ChangeRecord) -> None:
        row = change.row
        if ignored is not None and str(row.get("user_id")) == ignored:
            return
        delta = {"INSERT": 1, "DELETE": -1}.get(change.event)
        if delta is None:
            return
        parent = store.collection(collection).get(row.get(parent_field))
        if parent is None:
            return
        parent[count_field] = max(0, int(parent.get(count_field) or 0) + delta)
        store.notify(collection)

    return _handler


__all__ = [
    "Row",
    "ChangeRecord",
    "Collection",
    "ProfileCache",
    "LocalStore",
    "ChangeHandler",
    "mirror_rows",
    "count_edges",
]
