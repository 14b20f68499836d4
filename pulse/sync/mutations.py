"""Writes issued by the client, with optimistic toggles and rollback."""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from .attachments import Attachment, AttachmentKind, AttachmentPipeline
from .client import BackendClient
from .errors import ErrorHandler, SyncError, ValidationError, report
from .policy import check_dm_policy
from .store import LocalStore, Row

logger = logging.getLogger(__name__)


class PendingMutation:
    """Apply a local change, perform the remote write, undo the change if it fails.

    Failures are reported once through the error channel and never retried.
    """

    def __init__(
        self,
        description: str,
        *,
        apply: Callable[[], None],
        revert: Callable[[], None],
        write: Callable[[], Awaitable[Any]],
        reconcile: Optional[Callable[[Any], None]] = None,
    ) -> None:
        self.description = description
        self._apply = apply
        self._revert = revert
        self._write = write
        self._reconcile = reconcile

    async def run(self, on_error: Optional[ErrorHandler] = None) -> bool:
        self._apply()
        try:
            result = await self._write()
        except SyncError as exc:
            self._revert()
            logger.warning("%s failed, local change reverted: %s", self.description, exc)
            report(on_error, exc)
            return False
        if self._reconcile is not None:
            self._reconcile(result)
        return True


def _flip_row(row: Row, *, flag: str, count: str, target: bool) -> None:
    if bool(row.get(flag)) == target:
        return
    row[flag] = target
    row[count] = max(0, int(row.get(count) or 0) + (1 if target else -1))


class MutationDispatcher:
    """Entry point for every write the client makes."""

    def __init__(
        self,
        client: BackendClient,
        store: LocalStore,
        *,
        viewer_id: Any,
        on_error: Optional[ErrorHandler] = None,
        attachments: AttachmentPipeline | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.viewer_id = str(viewer_id)
        self.on_error = on_error
        self.attachments = attachments or AttachmentPipeline(client)
        # Remote paths with a toggle write still in flight
        self._pending: set[str] = set()

    def _fail(self, error: SyncError) -> None:
        report(self.on_error, error)

    async def _toggle(
        self,
        collection: str,
        key: Any,
        *,
        flag: str,
        count: str,
        path: str,
        fields: tuple[str, ...],
    ) -> bool:
        row = self.store.collection(collection).get(key)
        if row is None:
            self._fail(ValidationError(f"{collection} row {key} is not loaded"))
            return False
        if path in self._pending:
            logger.debug("Ignoring %s toggle on %s/%s while the previous one is pending", flag, collection, key)
            return False

        target = not bool(row.get(flag))
        snapshot = {flag: row.get(flag), count: row.get(count)}

        def _apply() -> None:
            _flip_row(row, flag=flag, count=count, target=target)
            self.store.notify(collection)

        def _revert() -> None:
            row.update(snapshot)
            self.store.notify(collection)

        async def _write() -> Any:
            if target:
                return await self.client.put(path)
            return await self.client.delete(path)

        def _reconcile(result: Any) -> None:
            if not isinstance(result, Mapping):
                return
            confirmed = {name: result[name] for name in fields if name in result}
            for holder in self.store.holding(key):
                held = holder.get(key)
                if held is not None and flag in held:
                    held.update(confirmed)
                    self.store.notify(holder.name)

        mutation = PendingMutation(
            f"{flag} -> {target} on {collection}/{key}",
            apply=_apply,
            revert=_revert,
            write=_write,
            reconcile=_reconcile,
        )
        self._pending.add(path)
        try:
            return await mutation.run(self.on_error)
        finally:
            self._pending.discard(path)

    async def toggle_like(self, collection: str, post_id: Any) -> bool:
        return await self._toggle(
            collection,
            post_id,
            flag="viewer_has_liked",
            count="like_count",
            path=f"/posts/{post_id}/like",
            fields=("like_count", "share_count", "comment_count", "viewer_has_liked", "viewer_has_shared"),
        )

    async def toggle_share(self, collection: str, post_id: Any) -> bool:
        return await self._toggle(
            collection,
            post_id,
            flag="viewer_has_shared",
            count="share_count",
            path=f"/posts/{post_id}/share",
            fields=("like_count", "share_count", "comment_count", "viewer_has_liked", "viewer_has_shared"),
        )

    async def toggle_follow(self, user_id: Any, *, collection: str = "follow_stats") -> bool:
        return await self._toggle(
            collection,
            user_id,
            flag="is_following",
            count="followers_count",
            path=f"/follows/{user_id}",
            fields=("followers_count", "following_count", "is_following"),
        )

    async def toggle_membership(self, room_id: Any, *, collection: str = "rooms") -> bool:
        return await self._toggle(
            collection,
            room_id,
            flag="is_member",
            count="member_count",
            path=f"/rooms/{room_id}/membership",
            fields=("member_count", "is_member"),
        )

    async def _body(
        self,
        text: str | None,
        attachment: Attachment | None,
        kind: AttachmentKind,
        *,
        room_id: Any = None,
    ) -> dict[str, Any]:
        content = (text or "").strip()
        if not content and attachment is None:
            raise ValidationError("Write a message or attach a file")
        body: dict[str, Any] = {"content": content or None}
        if attachment is not None:
            uploaded = await self.attachments.upload(attachment, kind, user_id=self.viewer_id, room_id=room_id)
            body[uploaded.field] = uploaded.url
        return body

    async def send_room_message(
        self, room_id: Any, text: str | None, attachment: Attachment | None = None
    ) -> Optional[Row]:
        """Post to a room; the row shows up through the change feed echo."""

        try:
            body = await self._body(text, attachment, "chat", room_id=room_id)
            return await self.client.post(f"/rooms/{room_id}/messages", json=body)
        except SyncError as exc:
            self._fail(exc)
            return None

    async def open_conversation(
        self, recipient: Mapping[str, Any], *, sender_follows_recipient: bool
    ) -> Optional[Row]:
        try:
            check_dm_policy(recipient, sender_follows_recipient=sender_follows_recipient)
            return await self.client.post("/conversations/", json={"user_id": str(recipient["id"])})
        except SyncError as exc:
            self._fail(exc)
            return None

    async def send_direct_message(
        self,
        conversation_id: Any,
        text: str | None,
        attachment: Attachment | None = None,
        *,
        recipient: Mapping[str, Any],
        sender_follows_recipient: bool,
    ) -> Optional[Row]:
        """Send a DM and append it locally; the later echo is absorbed by key."""

        try:
            check_dm_policy(recipient, sender_follows_recipient=sender_follows_recipient)
            body = await self._body(text, attachment, "dm")
            row = await self.client.post(f"/conversations/{conversation_id}/messages", json=body)
        except SyncError as exc:
            self._fail(exc)
            return None
        name = f"dm:{conversation_id}"
        if self.store.collection(name).upsert(row):
            self.store.notify(name)
        return row

    async def add_comment(self, post_id: Any, text: str) -> Optional[Row]:
        content = (text or "").strip()
        if not content:
            self._fail(ValidationError("Comment cannot be empty"))
            return None
        try:
            row = await self.client.post(f"/posts/{post_id}/comments", json={"content": content})
        except SyncError as exc:
            self._fail(exc)
            return None
        name = f"comments:{post_id}"
        if self.store.collection(name).upsert(row):
            self.store.notify(name)
        return row

    async def delete_comment(self, post_id: Any, comment_id: Any) -> bool:
        try:
            await self.client.delete(f"/posts/comments/{comment_id}")
        except SyncError as exc:
            self._fail(exc)
            return False
        name = f"comments:{post_id}"
        if self.store.collection(name).remove(comment_id) is not None:
            self.store.notify(name)
        return True

    async def create_post(self, text: str | None, attachment: Attachment | None = None) -> Optional[Row]:
        """Publish a post; feeds pick it up from the change feed."""

        try:
            body = await self._body(text, attachment, "post")
            return await self.client.post("/posts/", json=body)
        except SyncError as exc:
            self._fail(exc)
            return None

    async def create_reel(self, caption: str, video: Attachment, *, hashtags: str = "") -> Optional[Row]:
        if not (caption or "").strip():
            self._fail(ValidationError("Add a caption for your reel"))
            return None
        try:
            uploaded = await self.attachments.upload(video, "reel", user_id=self.viewer_id)
            return await self.client.post(
                "/posts/reels",
                json={"caption": caption, "hashtags": hashtags, "video_url": uploaded.url},
            )
        except SyncError as exc:
            self._fail(exc)
            return None

    async def delete_post(self, post_id: Any) -> bool:
        try:
            await self.client.delete(f"/posts/{post_id}")
        except SyncError as exc:
            self._fail(exc)
            return False
        return True

    async def update_profile(self, changes: Mapping[str, Any], avatar: Attachment | None = None) -> Optional[Row]:
        payload = dict(changes)
        try:
            if avatar is not None:
                uploaded = await self.attachments.upload(avatar, "avatar", user_id=self.viewer_id)
                payload["avatar_url"] = uploaded.url
            profile = await self.client.patch("/profiles/me", json=payload)
        except SyncError as exc:
            self._fail(exc)
            return None
        self.store.profiles.put(profile)
        return profile


__all__ = ["PendingMutation", "MutationDispatcher"]
