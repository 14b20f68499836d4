"""End-to-end flows: two signed-in clients kept in sync through the change feed."""
from __future__ import annotations

import asyncio
from typing import Any

import pytest

from conftest import asgi_client, close_context, open_context, settle
from pulse.constants import MB
from pulse.sync import (
    Attachment,
    ChangeSourceClosed,
    ChangeSubscriber,
    ChatRoomSync,
    CommentsSync,
    ConversationListSync,
    ConversationSync,
    FeedSync,
    LocalStore,
    NotificationsSync,
    ProfileSync,
    RoomListSync,
    SessionResolver,
    mirror_rows,
)


@pytest.mark.asyncio
async def test_session_resolution_provisions_once(make_token):
    user_id, token = make_token("nova")
    client = asgi_client(token)
    store = LocalStore()
    try:
        first = await SessionResolver(client, store).resolve()
        second = await SessionResolver(client, store).resolve()
    finally:
        await client.aclose()

    assert first.provisioned is True
    assert second.provisioned is False
    assert first.user_id == second.user_id == str(user_id)
    assert store.profiles.get(str(user_id))["username"] == "nova"


@pytest.mark.asyncio
async def test_room_message_reaches_each_member_once(make_token):
    _, alice_token = make_token("alice")
    _, bob_token = make_token("bob")
    alice = await open_context(alice_token)
    bob = await open_context(bob_token)
    try:
        room = await alice.client.post("/rooms/", json={"name": "Night Owls"})

        rooms = RoomListSync(bob)
        await rooms.open()
        assert await rooms.toggle_membership(room["id"]) is True
        joined = rooms.store.collection("rooms").get(room["id"])
        assert joined["is_member"] is True
        assert joined["member_count"] == 2

        alice_room = ChatRoomSync(alice, room["id"])
        bob_room = ChatRoomSync(bob, room["id"])
        await alice_room.open()
        await bob_room.open()

        sent = await alice_room.send("hello")
        assert sent["content"] == "hello"
        await settle()

        assert [row["content"] for row in alice_room.items()] == ["hello"]
        assert [row["content"] for row in bob_room.items()] == ["hello"]
        await bob_room.close()
        await rooms.close()
    finally:
        await close_context(alice)
        await close_context(bob)


@pytest.mark.asyncio
async def test_membership_toggled_twice_returns_to_original_state(make_token):
    _, alice_token = make_token("alice")
    _, bob_token = make_token("bob")
    alice = await open_context(alice_token)
    bob = await open_context(bob_token)
    try:
        room = await alice.client.post("/rooms/", json={"name": "Night Owls"})
        alice_rooms = RoomListSync(alice)
        bob_rooms = RoomListSync(bob)
        await alice_rooms.open()
        await bob_rooms.open()
        before = bob_rooms.store.collection("rooms").get(room["id"])
        assert before["is_member"] is False
        assert before["member_count"] == 1

        assert await bob_rooms.toggle_membership(room["id"]) is True
        assert await bob_rooms.toggle_membership(room["id"]) is True
        await settle()

        after = bob_rooms.store.collection("rooms").get(room["id"])
        assert after["is_member"] is False
        assert after["member_count"] == 1
        seen_by_alice = alice_rooms.store.collection("rooms").get(room["id"])
        assert seen_by_alice["member_count"] == 1
        assert seen_by_alice["is_member"] is True

        await bob_rooms.toggle_membership(room["id"])
        await settle()
        assert seen_by_alice["member_count"] == 2
    finally:
        await close_context(alice)
        await close_context(bob)


@pytest.mark.asyncio
async def test_like_toggled_twice_returns_to_original_state(make_token):
    _, alice_token = make_token("alice")
    _, bob_token = make_token("bob")
    alice = await open_context(alice_token)
    bob = await open_context(bob_token)
    try:
        post = await alice.dispatcher.create_post("sunrise")
        alice_feed = FeedSync(alice)
        bob_feed = FeedSync(bob)
        await alice_feed.open()
        await bob_feed.open()

        assert await bob_feed.toggle_like(post["id"]) is True
        bob_row = bob_feed.store.collection("feed").get(post["id"])
        assert bob_row["like_count"] == 1
        assert bob_row["viewer_has_liked"] is True
        await settle()
        # Bob's own echo is not counted twice; Alice sees the like.
        assert bob_row["like_count"] == 1
        assert alice_feed.store.collection("feed").get(post["id"])["like_count"] == 1

        assert await bob_feed.toggle_like(post["id"]) is True
        await settle()
        assert bob_row["like_count"] == 0
        assert bob_row["viewer_has_liked"] is False
        assert alice_feed.store.collection("feed").get(post["id"])["like_count"] == 0

        await bob_feed.toggle_share(post["id"])
        await bob_feed.toggle_share(post["id"])
        await settle()
        assert bob_row["share_count"] == 0
        assert alice_feed.store.collection("feed").get(post["id"])["share_count"] == 0
    finally:
        await close_context(alice)
        await close_context(bob)


@pytest.mark.asyncio
async def test_new_posts_and_comments_stream_into_feeds(make_token):
    _, alice_token = make_token("alice")
    _, bob_token = make_token("bob")
    alice = await open_context(alice_token)
    bob = await open_context(bob_token)
    try:
        alice_feed = FeedSync(alice)
        bob_reels = FeedSync.reels(bob)
        await alice_feed.open()
        await bob_reels.open()

        post = await alice.dispatcher.create_post("fresh")
        reel = await alice.client.post(
            "/posts/reels",
            json={"caption": "Skate", "hashtags": "park", "video_url": "https://cdn.test/r.mp4"},
        )
        await settle()

        streamed = alice_feed.store.collection("feed").get(post["id"])
        assert streamed["like_count"] == 0
        assert streamed["username"] == "alice"
        assert [row["id"] for row in alice_feed.items()] == [reel["id"], post["id"]]
        assert [row["id"] for row in bob_reels.items()] == [reel["id"]]

        comments = CommentsSync(bob, post["id"])
        await comments.open()
        added = await comments.add("great shot")
        await settle()
        assert [row["content"] for row in comments.items()] == ["great shot"]
        assert streamed["comment_count"] == 1

        assert await comments.delete(added["id"]) is True
        await settle()
        assert comments.items() == []
        assert streamed["comment_count"] == 0

        await alice.dispatcher.delete_post(post["id"])
        await settle()
        assert post["id"] not in alice_feed.store.collection("feed")
    finally:
        await close_context(alice)
        await close_context(bob)


@pytest.mark.asyncio
async def test_direct_messages_dedupe_and_update_conversation_list(make_token, fake_storage):
    alice_id, alice_token = make_token("alice")
    bob_id, bob_token = make_token("bob")
    alice = await open_context(alice_token)
    bob = await open_context(bob_token)
    try:
        bob_list = ConversationListSync(bob)
        assert await bob_list.open() == []

        bob_profile = {"id": str(bob_id), "allow_dm_from": "everyone"}
        alice_profile = {"id": str(alice_id), "allow_dm_from": "everyone"}
        conversation = await alice.dispatcher.open_conversation(bob_profile, sender_follows_recipient=False)
        alice_view = ConversationSync(alice, conversation["id"], recipient=bob_profile)
        bob_view = ConversationSync(bob, conversation["id"], recipient=alice_profile)
        await alice_view.open()
        await bob_view.open()

        sent = await alice_view.send("hi")
        assert [row["id"] for row in alice_view.items()] == [sent["id"]]
        await settle(0.2)

        assert [row["content"] for row in alice_view.items()] == ["hi"]
        assert [row["content"] for row in bob_view.items()] == ["hi"]
        listed = bob_list.items()
        assert [row["id"] for row in listed] == [conversation["id"]]
        assert listed[0]["last_message"]["content"] == "hi"
        assert (await bob.client.get("/conversations/unread"))["unread_count"] == 1

        photo = Attachment(filename="photo.png", content=b"x" * (2 * MB), content_type="image/png")
        image_message = await alice_view.send(None, photo)
        assert image_message["content"] is None
        assert image_message["image_url"].startswith("https://bucket.nyc3.digitaloceanspaces.com/messages/")
        assert fake_storage.uploads[0]["key"].startswith("messages/")
        await settle()

        last = bob_list.items()[0]["last_message"]
        assert last["content"] is None
        assert last["image_url"] == image_message["image_url"]
        assert len(bob_view.items()) == 2

        await bob_view.mark_read()
        assert (await bob.client.get("/conversations/unread"))["unread_count"] == 0
        await bob_list.close()
    finally:
        await close_context(alice)
        await close_context(bob)


@pytest.mark.asyncio
async def test_typing_indicator_crosses_sessions(make_token):
    alice_id, alice_token = make_token("alice")
    bob_id, bob_token = make_token("bob")
    alice = await open_context(alice_token)
    bob = await open_context(bob_token)
    try:
        bob_profile = {"id": str(bob_id), "allow_dm_from": "everyone"}
        conversation = await alice.dispatcher.open_conversation(bob_profile, sender_follows_recipient=False)
        alice_view = ConversationSync(alice, conversation["id"], recipient=bob_profile)
        bob_view = ConversationSync(bob, conversation["id"], recipient={"id": str(alice_id)})
        await alice_view.open()
        await bob_view.open()

        await alice_view.keystroke()
        await settle()
        assert bob_view.typing.others_typing == {str(alice_id)}

        await alice_view.send("done typing")
        await settle()
        assert bob_view.typing.others_typing == set()
        await alice_view.close()
    finally:
        await close_context(alice)
        await close_context(bob)


@pytest.mark.asyncio
async def test_follow_toggle_and_notifications(make_token):
    alice_id, alice_token = make_token("alice")
    _, bob_token = make_token("bob")
    alice = await open_context(alice_token)
    bob = await open_context(bob_token)
    try:
        own_profile = ProfileSync(alice, alice_id)
        inbox = NotificationsSync(alice)
        await own_profile.open()
        await inbox.open()

        bob_view = ProfileSync(bob, alice_id)
        stats = await bob_view.open()
        assert stats["followers_count"] == 0

        assert await bob_view.toggle_follow() is True
        assert bob_view.stats["is_following"] is True
        assert bob_view.stats["followers_count"] == 1
        await settle()

        assert bob_view.stats["followers_count"] == 1
        assert own_profile.stats["followers_count"] == 1
        assert [row["type"] for row in inbox.items()] == ["follow"]
        assert inbox.unread_count == 1

        await inbox.mark_all_read()
        await settle()
        assert inbox.unread_count == 0

        await bob_view.toggle_follow()
        await settle()
        assert bob_view.stats["followers_count"] == 0
        assert own_profile.stats["followers_count"] == 0
    finally:
        await close_context(alice)
        await close_context(bob)


class ScriptedSource:
    """Change source that drops its connection once, then serves queued frames."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.connects = 0
        self.frames: asyncio.Queue[Any] = asyncio.Queue()

    async def connect(self) -> None:
        self.connects += 1

    async def send(self, frame: dict[str, Any]) -> None:
        self.sent.append(frame)

    async def receive(self) -> dict[str, Any]:
        item = await self.frames.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        return None


@pytest.mark.asyncio
async def test_subscriber_resubscribes_after_drop():
    source = ScriptedSource()
    store = LocalStore()
    subscriber = ChangeSubscriber(source, store, reconnect_delay=0)
    await subscriber.subscribe("room:1", "messages", mirror_rows("room:1"), filter="room_id=eq.1")
    await subscriber.start()

    await source.frames.put(ChangeSourceClosed("dropped"))
    await source.frames.put(
        {"type": "change", "topic": "room:1", "table": "messages", "event": "INSERT", "new": {"id": "m1"}}
    )
    await asyncio.sleep(0.05)

    assert source.connects == 2
    assert [frame["topic"] for frame in source.sent] == ["room:1", "room:1"]
    assert source.sent[0]["filter"] == "room_id=eq.1"
    assert store.collection("room:1").keys() == {"m1"}

    await subscriber.unsubscribe("room:1")
    assert source.sent[-1] == {"type": "unsubscribe", "topic": "room:1"}
    await subscriber.close()
    assert subscriber.topics == []


@pytest.mark.asyncio
async def test_malformed_change_does_not_stop_the_feed():
    source = ScriptedSource()
    store = LocalStore()
    subscriber = ChangeSubscriber(source, store, reconnect_delay=0)
    await subscriber.subscribe("feed:posts", "posts", mirror_rows("feed"))
    await subscriber.start()

    await source.frames.put(
        {"type": "change", "topic": "feed:posts", "table": "posts", "event": "INSERT", "new": ["not", "a", "row"]}
    )
    await source.frames.put(
        {"type": "change", "topic": "feed:posts", "table": "posts", "event": "INSERT", "new": {"id": "p2"}}
    )
    await asyncio.sleep(0.05)

    assert store.collection("feed").keys() == {"p2"}
    assert source.connects == 1
    await subscriber.close()
