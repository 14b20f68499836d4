"""Per-screen wiring of loader, subscriber and dispatcher."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from .attachments import Attachment
from .client import BackendClient
from .errors import ErrorHandler, SyncError
from .loader import ListLoader
from .mutations import MutationDispatcher
from .presence import TypingTracker
from .store import ChangeRecord, LocalStore, Row, count_edges, mirror_rows
from .session import SessionResolver
from .subscriber import ChangeSource, ChangeSubscriber, WebSocketChangeSource

logger = logging.getLogger(__name__)

FEED_LIMIT = 50


@dataclass
class SyncContext:
    """Everything one signed-in client shares across screens."""

    client: BackendClient
    store: LocalStore
    subscriber: ChangeSubscriber
    dispatcher: MutationDispatcher
    viewer_id: str
    loader: ListLoader = field(init=False)

    def __post_init__(self) -> None:
        self.loader = ListLoader(self.client, self.store)

    @classmethod
    async def start(
        cls,
        client: BackendClient,
        *,
        on_error: Optional[ErrorHandler] = None,
        source: ChangeSource | None = None,
    ) -> "SyncContext":
        """Resolve the session, then open the change feed for it.

        Raises :class:`LoginRequired` when the client holds no valid session.
        """

        store = LocalStore(profile_cache_size=client.settings.profile_cache_size)
        session = await SessionResolver(client, store).resolve()
        subscriber = ChangeSubscriber(source or WebSocketChangeSource(client.realtime_url), store)
        await subscriber.start()
        dispatcher = MutationDispatcher(client, store, viewer_id=session.user_id, on_error=on_error)
        return cls(client=client, store=store, subscriber=subscriber, dispatcher=dispatcher, viewer_id=session.user_id)

    async def close(self) -> None:
        await self.subscriber.close()
        await self.client.aclose()


class ScreenSync:
    """Base class: remembers its topics so ``close`` can drop them."""

    def __init__(self, context: SyncContext) -> None:
        self.context = context
        self._topics: list[str] = []

    @property
    def store(self) -> LocalStore:
        return self.context.store

    async def _subscribe(self, topic: str, table: str, handler, *, filter: str | None = None) -> None:
        await self.context.subscriber.subscribe(topic, table, handler, filter=filter)
        self._topics.append(topic)

    async def close(self) -> None:
        for topic in self._topics:
            await self.context.subscriber.unsubscribe(topic)
        self._topics.clear()


def _post_defaults(store: LocalStore) -> Callable[[Row], None]:
    def _fill(row: Row) -> None:
        for name in ("like_count", "share_count", "comment_count"):
            row.setdefault(name, 0)
        row.setdefault("viewer_has_liked", False)
        row.setdefault("viewer_has_shared", False)
        author = store.profiles.get(row.get("user_id"))
        if author is not None:
            row.setdefault("username", author.get("username"))
            row.setdefault("display_name", author.get("display_name"))
            row.setdefault("avatar_url", author.get("avatar_url"))

    return _fill


class FeedSync(ScreenSync):
    """Home feed, reels or a profile's posts, newest first."""

    def __init__(
        self,
        context: SyncContext,
        *,
        collection: str = "feed",
        path: str = "/posts/feed",
        accept: Optional[Callable[[Row], bool]] = None,
        limit: int | None = FEED_LIMIT,
    ) -> None:
        super().__init__(context)
        self.collection = collection
        self.path = path
        self.accept = accept
        self.store.collection(collection, descending=True, limit=limit)

    @classmethod
    def reels(cls, context: SyncContext) -> "FeedSync":
        return cls(context, collection="reels", path="/posts/reels", accept=lambda row: bool(row.get("video_url")))

    @classmethod
    def profile_posts(cls, context: SyncContext, user_id: Any) -> "FeedSync":
        return cls(
            context,
            collection=f"profile_posts:{user_id}",
            path=f"/profiles/{user_id}/posts",
            accept=lambda row: str(row.get("user_id")) == str(user_id),
            limit=None,
        )

    def items(self) -> list[Row]:
        return self.store.collection(self.collection).items()

    async def open(self) -> list[Row]:
        rows = await self.context.loader.load(self.collection, self.path)
        viewer = self.context.viewer_id
        name = self.collection
        await self._subscribe(
            f"{name}:posts",
            "posts",
            mirror_rows(name, on_insert=_post_defaults(self.store), accept=self.accept),
        )
        await self._subscribe(
            f"{name}:likes",
            "likes",
            count_edges(name, parent_field="post_id", count_field="like_count", ignore_user=viewer),
        )
        await self._subscribe(
            f"{name}:shares",
            "shares",
            count_edges(name, parent_field="post_id", count_field="share_count", ignore_user=viewer),
        )
        await self._subscribe(
            f"{name}:comments",
            "comments",
            count_edges(name, parent_field="post_id", count_field="comment_count"),
        )
        return rows

    async def toggle_like(self, post_id: Any) -> bool:
        return await self.context.dispatcher.toggle_like(self.collection, post_id)

    async def toggle_share(self, post_id: Any) -> bool:
        return await self.context.dispatcher.toggle_share(self.collection, post_id)


class CommentsSync(ScreenSync):
    def __init__(self, context: SyncContext, post_id: Any) -> None:
        super().__init__(context)
        self.post_id = str(post_id)
        self.collection = f"comments:{self.post_id}"
        self.store.collection(self.collection)

    def items(self) -> list[Row]:
        return self.store.collection(self.collection).items()

    async def open(self) -> list[Row]:
        rows = await self.context.loader.load(self.collection, f"/posts/{self.post_id}/comments")
        await self._subscribe(
            self.collection,
            "comments",
            mirror_rows(self.collection),
            filter=f"post_id=eq.{self.post_id}",
        )
        return rows

    async def add(self, text: str) -> Optional[Row]:
        return await self.context.dispatcher.add_comment(self.post_id, text)

    async def delete(self, comment_id: Any) -> bool:
        return await self.context.dispatcher.delete_comment(self.post_id, comment_id)


class RoomListSync(ScreenSync):
    collection = "rooms"

    def __init__(self, context: SyncContext) -> None:
        super().__init__(context)
        self.store.collection(self.collection)

    def items(self) -> list[Row]:
        return self.store.collection(self.collection).items()

    async def open(self) -> list[Row]:
        rows = await self.context.loader.load(self.collection, "/rooms/")
        await self._subscribe("rooms", "chat_rooms", mirror_rows(self.collection))
        return rows

    async def toggle_membership(self, room_id: Any) -> bool:
        return await self.context.dispatcher.toggle_membership(room_id, collection=self.collection)


class ChatRoomSync(ScreenSync):
    """Messages of one community room, oldest first.

    Sent messages are not appended locally; they arrive through the feed.
    """

    def __init__(self, context: SyncContext, room_id: Any) -> None:
        super().__init__(context)
        self.room_id = str(room_id)
        self.collection = f"room:{self.room_id}"
        self.store.collection(self.collection)

    def items(self) -> list[Row]:
        return self.store.collection(self.collection).items()

    async def open(self) -> list[Row]:
        rows = await self.context.loader.load(
            self.collection, f"/rooms/{self.room_id}/messages", items_key="messages"
        )
        await self._subscribe(
            self.collection,
            "messages",
            mirror_rows(self.collection),
            filter=f"room_id=eq.{self.room_id}",
        )
        return rows

    async def send(self, text: str | None, attachment: Attachment | None = None) -> Optional[Row]:
        return await self.context.dispatcher.send_room_message(self.room_id, text, attachment)


class ConversationSync(ScreenSync):
    """One direct conversation with typing indicators and read receipts."""

    def __init__(
        self,
        context: SyncContext,
        conversation_id: Any,
        *,
        recipient: Mapping[str, Any],
        sender_follows_recipient: bool = False,
    ) -> None:
        super().__init__(context)
        self.conversation_id = str(conversation_id)
        self.recipient = dict(recipient)
        self.sender_follows_recipient = sender_follows_recipient
        self.collection = f"dm:{self.conversation_id}"
        self.store.collection(self.collection)
        self.typing = TypingTracker(context.client, self.conversation_id, viewer_id=context.viewer_id)

    def items(self) -> list[Row]:
        return self.store.collection(self.collection).items()

    async def open(self) -> list[Row]:
        rows = await self.context.loader.load(
            self.collection, f"/conversations/{self.conversation_id}/messages", items_key="messages"
        )
        await self._subscribe(
            self.collection,
            "direct_messages",
            mirror_rows(self.collection),
            filter=f"conversation_id=eq.{self.conversation_id}",
        )
        await self._subscribe(
            self.typing.topic,
            "typing_indicators",
            self.typing.handle_change,
            filter=f"conversation_id=eq.{self.conversation_id}",
        )
        await self.mark_read()
        return rows

    async def mark_read(self) -> None:
        try:
            await self.context.client.post(f"/conversations/{self.conversation_id}/read")
        except SyncError as exc:
            logger.warning("Marking %s read failed: %s", self.conversation_id, exc)

    async def keystroke(self) -> None:
        await self.typing.keystroke()

    async def send(self, text: str | None, attachment: Attachment | None = None) -> Optional[Row]:
        row = await self.context.dispatcher.send_direct_message(
            self.conversation_id,
            text,
            attachment,
            recipient=self.recipient,
            sender_follows_recipient=self.sender_follows_recipient,
        )
        await self.typing.sent()
        return row

    async def close(self) -> None:
        await self.typing.close()
        await super().close()


class ConversationListSync(ScreenSync):
    """Conversation list with last-message previews, most recent activity first."""

    collection = "conversations"

    def __init__(self, context: SyncContext) -> None:
        super().__init__(context)
        self.store.collection(self.collection, order_by="activity_at", descending=True)
        self._refresh: Optional[asyncio.Task[Any]] = None

    def items(self) -> list[Row]:
        return self.store.collection(self.collection).items()

    async def refresh(self) -> list[Row]:
        rows = await self.context.loader.load(self.collection, "/conversations/")
        target = self.store.collection(self.collection)
        for row in target.items():
            last = row.get("last_message") or {}
            row["activity_at"] = last.get("created_at") or row.get("created_at")
        self.store.notify(self.collection)
        return target.items()

    def _on_message(self, store: LocalStore, change: ChangeRecord) -> None:
        if change.event != "INSERT" or change.new is None:
            return
        entry = store.collection(self.collection).get(change.new.get("conversation_id"))
        if entry is None:
            # A conversation this list has not seen yet.
            if self._refresh is None or self._refresh.done():
                self._refresh = asyncio.get_running_loop().create_task(self.refresh())
            return
        entry["last_message"] = change.new
        entry["activity_at"] = change.new.get("created_at")
        store.notify(self.collection)

    async def open(self) -> list[Row]:
        rows = await self.refresh()
        await self._subscribe("conversations:messages", "direct_messages", self._on_message)
        return rows

    async def close(self) -> None:
        if self._refresh is not None and not self._refresh.done():
            self._refresh.cancel()
        await super().close()


class NotificationsSync(ScreenSync):
    collection = "notifications"

    def __init__(self, context: SyncContext) -> None:
        super().__init__(context)
        self.store.collection(self.collection, descending=True, limit=FEED_LIMIT)

    def items(self) -> list[Row]:
        return self.store.collection(self.collection).items()

    @property
    def unread_count(self) -> int:
        return sum(1 for row in self.items() if not row.get("is_read"))

    async def open(self) -> list[Row]:
        rows = await self.context.loader.load(self.collection, "/notifications/")
        await self._subscribe(self.collection, "notifications", mirror_rows(self.collection))
        return rows

    async def mark_all_read(self) -> None:
        try:
            await self.context.client.post("/notifications/mark-read")
        except SyncError as exc:
            logger.warning("Marking notifications read failed: %s", exc)


class ProfileSync(ScreenSync):
    """A profile header: follower stats kept live, follow toggle."""

    collection = "follow_stats"

    def __init__(self, context: SyncContext, user_id: Any) -> None:
        super().__init__(context)
        self.user_id = str(user_id)
        self.store.collection(self.collection, key="user_id")

    @property
    def stats(self) -> Optional[Row]:
        return self.store.collection(self.collection).get(self.user_id)

    def _on_follow(self, store: LocalStore, change: ChangeRecord) -> None:
        row = change.row
        if str(row.get("follower_id")) == self.context.viewer_id:
            # The viewer's own toggles reconcile from the write response.
            return
        delta = {"INSERT": 1, "DELETE": -1}.get(change.event)
        stats = self.stats
        if delta is None or stats is None:
            return
        stats["followers_count"] = max(0, int(stats.get("followers_count") or 0) + delta)
        store.notify(self.collection)

    async def open(self) -> Optional[Row]:
        try:
            stats = await self.context.client.get(f"/profiles/{self.user_id}/stats")
        except SyncError as exc:
            logger.error("Loading stats for %s failed: %s", self.user_id, exc)
            return None
        target = self.store.collection(self.collection)
        target.remove(self.user_id)
        target.upsert(stats)
        self.store.notify(self.collection)
        await self._subscribe(
            f"follows:{self.user_id}",
            "follows",
            self._on_follow,
            filter=f"following_id=eq.{self.user_id}",
        )
        return self.stats

    async def toggle_follow(self) -> bool:
        return await self.context.dispatcher.toggle_follow(self.user_id, collection=self.collection)


__all__ = [
    "SyncContext",
    "ScreenSync",
    "FeedSync",
    "CommentsSync",
    "RoomListSync",
    "ChatRoomSync",
    "ConversationSync",
    "ConversationListSync",
    "NotificationsSync",
    "ProfileSync",
]
