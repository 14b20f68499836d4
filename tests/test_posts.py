"""Integration tests for posts, reels, engagement toggles and comments."""
from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from conftest import bearer
from pulse.main import app
from pulse.services import compose_reel_caption, normalize_hashtags


@pytest.fixture
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def alice(client, make_token) -> tuple[str, str]:
    user_id, token = make_token("alice")
    client.get("/auth/session", headers=bearer(token))
    return str(user_id), token


@pytest.fixture
def bob(client, make_token) -> tuple[str, str]:
    user_id, token = make_token("bob")
    client.get("/auth/session", headers=bearer(token))
    return str(user_id), token


def test_normalize_hashtags():
    assert normalize_hashtags("#Sun  beach,#sun #") == ["#sun", "#beach"]
    assert normalize_hashtags(["Travel", "#travel", "food"]) == ["#travel", "#food"]


def test_compose_reel_caption():
    assert compose_reel_caption("  Sunset  ", "sun beach") == "Sunset\n\n#sun #beach"
    assert compose_reel_caption("Just text") == "Just text"


def test_post_requires_text_or_media(client, alice):
    _, token = alice

    empty = client.post("/posts/", json={"content": "   "}, headers=bearer(token))
    assert empty.status_code == 422

    image_only = client.post("/posts/", json={"image_url": "https://cdn.test/a.png"}, headers=bearer(token))
    assert image_only.status_code == 201
    body = image_only.json()
    assert body["content"] is None
    assert body["image_url"] == "https://cdn.test/a.png"
    assert body["username"] == "alice"
    assert body["like_count"] == 0


def test_feed_is_newest_first_and_reels_only_hold_videos(client, alice):
    _, token = alice
    client.post("/posts/", json={"content": "first"}, headers=bearer(token))
    client.post("/posts/", json={"content": "second"}, headers=bearer(token))
    reel = client.post(
        "/posts/reels",
        json={"caption": "Skate", "hashtags": "#park ride", "video_url": "https://cdn.test/r.mp4"},
        headers=bearer(token),
    )
    assert reel.status_code == 201
    assert reel.json()["content"] == "Skate\n\n#park #ride"

    feed = client.get("/posts/feed", headers=bearer(token)).json()["items"]
    assert [item["content"] for item in feed] == ["Skate\n\n#park #ride", "second", "first"]

    reels = client.get("/posts/reels", headers=bearer(token)).json()["items"]
    assert [item["video_url"] for item in reels] == ["https://cdn.test/r.mp4"]


def test_like_and_share_are_idempotent_toggles(client, alice, bob):
    alice_id, alice_token = alice
    _, bob_token = bob
    post_id = client.post("/posts/", json={"content": "hello"}, headers=bearer(alice_token)).json()["id"]

    liked = client.put(f"/posts/{post_id}/like", headers=bearer(bob_token)).json()
    assert liked["like_count"] == 1
    assert liked["viewer_has_liked"] is True
    assert client.put(f"/posts/{post_id}/like", headers=bearer(bob_token)).json()["like_count"] == 1

    shared = client.put(f"/posts/{post_id}/share", headers=bearer(bob_token)).json()
    assert shared["share_count"] == 1
    assert shared["viewer_has_shared"] is True

    unliked = client.delete(f"/posts/{post_id}/like", headers=bearer(bob_token)).json()
    assert unliked["like_count"] == 0
    assert unliked["viewer_has_liked"] is False
    assert client.delete(f"/posts/{post_id}/like", headers=bearer(bob_token)).json()["like_count"] == 0

    feed = client.get("/posts/feed", headers=bearer(alice_token)).json()["items"]
    assert feed[0]["share_count"] == 1
    assert feed[0]["viewer_has_shared"] is False

    notifications = client.get("/notifications/", headers=bearer(alice_token)).json()["items"]
    assert [item["type"] for item in notifications] == ["like"]
    assert client.get("/notifications/summary", headers=bearer(alice_token)).json()["unread_count"] == 1
    client.post("/notifications/mark-read", headers=bearer(alice_token))
    assert client.get("/notifications/summary", headers=bearer(alice_token)).json()["unread_count"] == 0


def test_liked_posts_list(client, alice, bob):
    _, alice_token = alice
    bob_id, bob_token = bob
    post_id = client.post("/posts/", json={"content": "hello"}, headers=bearer(alice_token)).json()["id"]
    client.put(f"/posts/{post_id}/like", headers=bearer(bob_token))

    likes = client.get(f"/profiles/{bob_id}/likes", headers=bearer(alice_token)).json()["items"]

    assert [item["id"] for item in likes] == [post_id]


def test_comments_flow(client, alice, bob):
    _, alice_token = alice
    _, bob_token = bob
    post_id = client.post("/posts/", json={"content": "hello"}, headers=bearer(alice_token)).json()["id"]

    created = client.post(f"/posts/{post_id}/comments", json={"content": "nice"}, headers=bearer(bob_token))
    assert created.status_code == 201
    comment_id = created.json()["id"]

    listed = client.get(f"/posts/{post_id}/comments", headers=bearer(alice_token)).json()["items"]
    assert [item["content"] for item in listed] == ["nice"]
    assert client.get("/posts/feed", headers=bearer(alice_token)).json()["items"][0]["comment_count"] == 1

    forbidden = client.delete(f"/posts/comments/{comment_id}", headers=bearer(alice_token))
    assert forbidden.status_code == 403
    removed = client.delete(f"/posts/comments/{comment_id}", headers=bearer(bob_token))
    assert removed.status_code == 204
    assert client.get(f"/posts/{post_id}/comments", headers=bearer(alice_token)).json()["items"] == []


def test_only_owner_deletes_post(client, alice, bob):
    _, alice_token = alice
    _, bob_token = bob
    post_id = client.post("/posts/", json={"content": "mine"}, headers=bearer(alice_token)).json()["id"]

    assert client.delete(f"/posts/{post_id}", headers=bearer(bob_token)).status_code == 403
    assert client.delete(f"/posts/{post_id}", headers=bearer(alice_token)).status_code == 204
    assert client.get("/posts/feed", headers=bearer(alice_token)).json()["items"] == []
    assert client.put(f"/posts/{post_id}/like", headers=bearer(bob_token)).status_code == 404
