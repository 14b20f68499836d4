"""Integration tests for direct conversations, message policy, read receipts and typing."""
from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from conftest import bearer
from pulse.database import SessionLocal
from pulse.main import app
from pulse.models import Conversation
from pulse.services import pair_key


@pytest.fixture
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def users(client, make_token) -> dict[str, tuple[str, str]]:
    issued = {}
    for name in ("alice", "bob"):
        user_id, token = make_token(name)
        client.get("/auth/session", headers=bearer(token))
        issued[name] = (str(user_id), token)
    return issued


def _open(client: TestClient, token: str, other_id: str):
    return client.post("/conversations/", json={"user_id": other_id}, headers=bearer(token))


def test_pair_key_is_order_independent(make_token):
    first, _ = make_token("a")
    second, _ = make_token("b")

    assert pair_key(first, second) == pair_key(second, first)


def test_opening_twice_returns_the_same_conversation(client, users):
    alice_id, alice_token = users["alice"]
    bob_id, bob_token = users["bob"]

    created = _open(client, alice_token, bob_id)
    reopened = _open(client, bob_token, alice_id)

    assert created.status_code == 201
    assert reopened.status_code == 200
    assert created.json()["id"] == reopened.json()["id"]
    assert created.json()["other_user"]["id"] == bob_id

    with SessionLocal() as session:
        assert session.scalar(select(func.count()).select_from(Conversation)) == 1


def test_cannot_message_yourself(client, users):
    alice_id, alice_token = users["alice"]

    assert _open(client, alice_token, alice_id).status_code == 400


def test_dm_policy_none_blocks_new_conversations(client, users):
    _, alice_token = users["alice"]
    bob_id, bob_token = users["bob"]
    client.patch("/profiles/me", json={"allow_dm_from": "none"}, headers=bearer(bob_token))

    response = _open(client, alice_token, bob_id)

    assert response.status_code == 403
    assert response.json()["detail"] == "This user is not accepting messages"


def test_dm_policy_followers_requires_follow(client, users):
    alice_id, alice_token = users["alice"]
    bob_id, bob_token = users["bob"]
    conversation_id = _open(client, alice_token, bob_id).json()["id"]
    client.patch("/profiles/me", json={"allow_dm_from": "followers"}, headers=bearer(bob_token))

    blocked = client.post(
        f"/conversations/{conversation_id}/messages", json={"content": "hey"}, headers=bearer(alice_token)
    )
    assert blocked.status_code == 403
    assert blocked.json()["detail"] == "This user only accepts messages from followers"

    client.put(f"/follows/{bob_id}", headers=bearer(alice_token))
    allowed = client.post(
        f"/conversations/{conversation_id}/messages", json={"content": "hey"}, headers=bearer(alice_token)
    )
    assert allowed.status_code == 201
    assert allowed.json()["user_id"] == alice_id


def test_conversation_list_and_unread_badge(client, users):
    alice_id, alice_token = users["alice"]
    bob_id, bob_token = users["bob"]
    conversation_id = _open(client, alice_token, bob_id).json()["id"]

    # Empty conversations only show up for a viewer who follows the other user.
    assert client.get("/conversations/", headers=bearer(alice_token)).json()["items"] == []
    client.put(f"/follows/{bob_id}", headers=bearer(alice_token))
    assert len(client.get("/conversations/", headers=bearer(alice_token)).json()["items"]) == 1

    client.post(
        f"/conversations/{conversation_id}/messages",
        json={"image_url": "https://cdn.test/photo.png"},
        headers=bearer(alice_token),
    )
    assert client.get("/conversations/unread", headers=bearer(bob_token)).json()["unread_count"] == 1
    assert client.get("/conversations/unread", headers=bearer(alice_token)).json()["unread_count"] == 0

    listed = client.get("/conversations/", headers=bearer(bob_token)).json()["items"]
    assert listed[0]["other_user"]["id"] == alice_id
    assert listed[0]["last_message"]["content"] is None
    assert listed[0]["last_message"]["image_url"] == "https://cdn.test/photo.png"

    receipt = client.post(f"/conversations/{conversation_id}/read", headers=bearer(bob_token))
    assert receipt.status_code == 200
    assert receipt.json()["user_id"] == bob_id
    assert client.get("/conversations/unread", headers=bearer(bob_token)).json()["unread_count"] == 0

    notes = client.get("/notifications/", headers=bearer(bob_token)).json()["items"]
    assert [note["type"] for note in notes] == ["message"]


def test_messages_are_private_to_participants(client, users, make_token):
    _, alice_token = users["alice"]
    bob_id, _ = users["bob"]
    _, eve_token = make_token("eve")
    client.get("/auth/session", headers=bearer(eve_token))
    conversation_id = _open(client, alice_token, bob_id).json()["id"]

    response = client.get(f"/conversations/{conversation_id}/messages", headers=bearer(eve_token))

    assert response.status_code == 404


def test_typing_state(client, users):
    alice_id, alice_token = users["alice"]
    bob_id, bob_token = users["bob"]
    conversation_id = _open(client, alice_token, bob_id).json()["id"]

    started = client.put(
        f"/conversations/{conversation_id}/typing", json={"is_typing": True}, headers=bearer(alice_token)
    )
    assert started.status_code == 200
    assert started.json()["is_typing"] is True

    seen_by_bob = client.get(f"/conversations/{conversation_id}/typing", headers=bearer(bob_token)).json()["items"]
    assert [(item["user_id"], item["is_typing"]) for item in seen_by_bob] == [(alice_id, True)]

    client.put(f"/conversations/{conversation_id}/typing", json={"is_typing": False}, headers=bearer(alice_token))
    seen_by_bob = client.get(f"/conversations/{conversation_id}/typing", headers=bearer(bob_token)).json()["items"]
    assert all(not item["is_typing"] for item in seen_by_bob)
