"""Integration tests for community rooms, membership and room messages."""
from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from conftest import bearer
from pulse.main import app


@pytest.fixture
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def tokens(client, make_token) -> dict[str, str]:
    issued = {}
    for name in ("owner", "guest", "lurker"):
        _, token = make_token(name)
        client.get("/auth/session", headers=bearer(token))
        issued[name] = token
    return issued


def test_creator_is_first_member(client, tokens):
    created = client.post("/rooms/", json={"name": "Night Owls"}, headers=bearer(tokens["owner"]))

    assert created.status_code == 201
    assert created.json()["member_count"] == 1
    assert created.json()["is_member"] is True

    rooms = client.get("/rooms/", headers=bearer(tokens["guest"])).json()["items"]
    assert [(room["name"], room["is_member"]) for room in rooms] == [("Night Owls", False)]


def test_join_and_leave_keep_member_count_in_step(client, tokens):
    room_id = client.post("/rooms/", json={"name": "Night Owls"}, headers=bearer(tokens["owner"])).json()["id"]

    joined = client.put(f"/rooms/{room_id}/membership", headers=bearer(tokens["guest"])).json()
    assert joined == {"room_id": room_id, "member_count": 2, "is_member": True, "status": "joined"}

    repeat = client.put(f"/rooms/{room_id}/membership", headers=bearer(tokens["guest"])).json()
    assert repeat["status"] == "noop"
    assert repeat["member_count"] == 2

    left = client.delete(f"/rooms/{room_id}/membership", headers=bearer(tokens["guest"])).json()
    assert left["status"] == "left"
    assert left["member_count"] == 1
    assert left["is_member"] is False

    not_member = client.delete(f"/rooms/{room_id}/membership", headers=bearer(tokens["lurker"])).json()
    assert not_member["status"] == "noop"
    assert not_member["member_count"] == 1


def test_room_messages_are_ordered_oldest_first(client, tokens):
    room_id = client.post("/rooms/", json={"name": "Night Owls"}, headers=bearer(tokens["owner"])).json()["id"]

    client.post(f"/rooms/{room_id}/messages", json={"content": "one"}, headers=bearer(tokens["owner"]))
    client.post(f"/rooms/{room_id}/messages", json={"content": "two"}, headers=bearer(tokens["guest"]))
    attachment = client.post(
        f"/rooms/{room_id}/messages",
        json={"content": "", "image_url": "https://cdn.test/pic.png"},
        headers=bearer(tokens["owner"]),
    )
    assert attachment.status_code == 201
    assert attachment.json()["content"] is None

    body = client.get(f"/rooms/{room_id}/messages", headers=bearer(tokens["guest"])).json()
    assert body["room_id"] == room_id
    assert [item["content"] for item in body["messages"]] == ["one", "two", None]

    empty = client.post(f"/rooms/{room_id}/messages", json={"content": "  "}, headers=bearer(tokens["owner"]))
    assert empty.status_code == 422


def test_private_room_requires_membership(client, tokens):
    room_id = client.post(
        "/rooms/",
        json={"name": "Inner Circle", "is_private": True},
        headers=bearer(tokens["owner"]),
    ).json()["id"]

    assert client.get(f"/rooms/{room_id}/messages", headers=bearer(tokens["guest"])).status_code == 403
    blocked = client.post(f"/rooms/{room_id}/messages", json={"content": "hi"}, headers=bearer(tokens["guest"]))
    assert blocked.status_code == 403

    client.put(f"/rooms/{room_id}/membership", headers=bearer(tokens["guest"]))
    allowed = client.post(f"/rooms/{room_id}/messages", json={"content": "hi"}, headers=bearer(tokens["guest"]))
    assert allowed.status_code == 201


def test_unknown_room_returns_404(client, tokens, make_token):
    missing_id, _ = make_token("nowhere")

    response = client.put(f"/rooms/{missing_id}/membership", headers=bearer(tokens["guest"]))

    assert response.status_code == 404
