"""One-shot list loads that seed the local store."""
from __future__ import annotations

import logging
from typing import Any

from .client import BackendClient
from .errors import BackendReadError
from .store import LocalStore, Row

logger = logging.getLogger(__name__)


class ListLoader:
    def __init__(self, client: BackendClient, store: LocalStore) -> None:
        self.client = client
        self.store = store

    async def load(
        self,
        collection: str,
        path: str,
        *,
        items_key: str = "items",
        params: dict[str, Any] | None = None,
    ) -> list[Row]:
        """Replace ``collection`` with the rows at ``path``.

        A failed read is logged and leaves the collection empty.
        """

        target = self.store.collection(collection)
        try:
            payload = await self.client.get(path, params=params)
        except BackendReadError as exc:
            logger.error("Loading %s from %s failed: %s", collection, path, exc)
            target.clear()
            self.store.notify(collection)
            return []

        rows = payload.get(items_key, []) if isinstance(payload, dict) else payload or []
        target.replace(rows)
        self.store.notify(collection)
        return target.items()


__all__ = ["ListLoader"]
