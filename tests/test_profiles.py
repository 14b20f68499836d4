"""Integration tests for sessions, profile provisioning, privacy and follows."""
from __future__ import annotations

from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from conftest import bearer
from pulse.database import SessionLocal
from pulse.main import app
from pulse.models import Notification, Profile


@pytest.fixture
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


def _provision(client: TestClient, token: str) -> dict:
    response = client.get("/auth/session", headers=bearer(token))
    assert response.status_code == 200
    return response.json()


def test_session_without_token_points_to_login(client):
    response = client.get("/auth/session")

    assert response.status_code == 401
    body = response.json()
    assert body["redirect_to"] == "/auth/login"


def test_session_with_invalid_token_is_rejected(client):
    response = client.get("/profiles/me", headers=bearer("not-a-jwt"))

    assert response.status_code == 401
    assert response.json()["redirect_to"] == "/auth/login"


def test_first_session_provisions_exactly_one_profile(client, make_token):
    user_id, token = make_token("nova")

    first = _provision(client, token)
    second = _provision(client, token)
    me = client.get("/profiles/me", headers=bearer(token))

    assert first["provisioned"] is True
    assert second["provisioned"] is False
    assert first["profile"]["username"] == "nova"
    assert first["profile"]["display_name"] == "nova"
    assert me.json()["id"] == str(user_id)

    with SessionLocal() as session:
        count = session.scalar(select(func.count()).select_from(Profile).where(Profile.id == user_id))
    assert count == 1


def test_username_collision_gets_suffix(client, make_token):
    _, first_token = make_token("echo")
    second_id, second_token = make_token("echo")

    _provision(client, first_token)
    body = _provision(client, second_token)

    assert body["profile"]["username"] == f"echo_{str(second_id)[:8]}"


def test_profile_update_and_username_conflict(client, make_token):
    _, alice_token = make_token("alice")
    _, bob_token = make_token("bob")
    _provision(client, alice_token)
    _provision(client, bob_token)

    updated = client.patch(
        "/profiles/me",
        json={"display_name": "Alice A.", "bio": "hello", "allow_dm_from": "followers"},
        headers=bearer(alice_token),
    )
    assert updated.status_code == 200
    assert updated.json()["display_name"] == "Alice A."
    assert updated.json()["allow_dm_from"] == "followers"

    conflict = client.patch("/profiles/me", json={"username": "bob"}, headers=bearer(alice_token))
    assert conflict.status_code == 409

    invalid = client.patch("/profiles/me", json={"allow_dm_from": "strangers"}, headers=bearer(alice_token))
    assert invalid.status_code == 422


def test_search_excludes_viewer(client, make_token):
    _, alice_token = make_token("stellar-alice")
    _, bob_token = make_token("stellar-bob")
    _provision(client, alice_token)
    _provision(client, bob_token)

    response = client.get("/profiles/search", params={"q": "STELLAR"}, headers=bearer(alice_token))

    assert response.status_code == 200
    assert [item["username"] for item in response.json()["items"]] == ["stellar-bob"]
    assert client.get("/profiles/search", params={"q": " "}, headers=bearer(alice_token)).json()["items"] == []


def test_follow_and_unfollow_update_counts_and_lists(client, make_token):
    alice_id, alice_token = make_token("alice")
    bob_id, bob_token = make_token("bob")
    _provision(client, alice_token)
    _provision(client, bob_token)

    followed = client.put(f"/follows/{bob_id}", headers=bearer(alice_token))
    assert followed.status_code == 200
    assert followed.json()["status"] == "followed"
    assert followed.json()["followers_count"] == 1
    assert followed.json()["is_following"] is True

    again = client.put(f"/follows/{bob_id}", headers=bearer(alice_token))
    assert again.json()["status"] == "noop"
    assert again.json()["followers_count"] == 1

    followers = client.get(f"/profiles/{bob_id}/followers", headers=bearer(alice_token))
    assert [item["id"] for item in followers.json()["items"]] == [str(alice_id)]
    following = client.get(f"/profiles/{alice_id}/following", headers=bearer(bob_token))
    assert [item["id"] for item in following.json()["items"]] == [str(bob_id)]

    with SessionLocal() as session:
        notes = session.scalars(select(Notification).where(Notification.user_id == bob_id)).all()
    assert [note.type for note in notes] == ["follow"]

    unfollowed = client.delete(f"/follows/{bob_id}", headers=bearer(alice_token))
    assert unfollowed.json()["status"] == "unfollowed"
    assert unfollowed.json()["followers_count"] == 0
    stats = client.get(f"/profiles/{bob_id}/stats", headers=bearer(bob_token)).json()
    assert stats["followers_count"] == 0
    assert stats["following_count"] == 0


def test_cannot_follow_yourself(client, make_token):
    alice_id, alice_token = make_token("alice")
    _provision(client, alice_token)

    response = client.put(f"/follows/{alice_id}", headers=bearer(alice_token))

    assert response.status_code == 400


def test_private_lists_are_hidden_from_others(client, make_token):
    alice_id, alice_token = make_token("alice")
    _, bob_token = make_token("bob")
    _provision(client, alice_token)
    _provision(client, bob_token)

    client.patch(
        "/profiles/me",
        json={"likes_private": True, "followers_private": True},
        headers=bearer(alice_token),
    )

    assert client.get(f"/profiles/{alice_id}/likes", headers=bearer(bob_token)).status_code == 403
    assert client.get(f"/profiles/{alice_id}/followers", headers=bearer(bob_token)).status_code == 403
    assert client.get(f"/profiles/{alice_id}/following", headers=bearer(bob_token)).status_code == 403

    # The owner still sees their own lists.
    assert client.get(f"/profiles/{alice_id}/likes", headers=bearer(alice_token)).status_code == 200
    assert client.get(f"/profiles/{alice_id}/followers", headers=bearer(alice_token)).status_code == 200


def test_unknown_profile_returns_404(client, make_token):
    _, token = make_token("alice")
    missing_id, _ = make_token("ghost")

    response = client.get(f"/profiles/{missing_id}", headers=bearer(token))

    assert response.status_code == 404


def test_username_claimed_during_provisioning_retries_with_suffix(make_token, monkeypatch):
    from pulse.services import profile_service
    from pulse.services.auth_service import AuthIdentity

    other_id, _ = make_token("orbit")
    user_id, _ = make_token("orbit")
    with SessionLocal() as session:
        session.add(Profile(id=other_id, username="orbit", display_name="orbit"))
        session.commit()

    # The availability check ran before the other user's insert committed.
    monkeypatch.setattr(profile_service, "_available_username", lambda db, candidate, uid: candidate)

    with SessionLocal() as session:
        profile, created = profile_service.provision_profile(
            session, AuthIdentity(user_id=user_id, user_metadata={"username": "orbit"})
        )
        username = profile.username

    assert created is True
    assert username == f"orbit_{str(user_id)[:8]}"
    with SessionLocal() as session:
        assert session.scalar(select(func.count()).select_from(Profile)) == 2
