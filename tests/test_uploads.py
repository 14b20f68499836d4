"""Integration tests for the upload relay and storage helpers."""
from __future__ import annotations

from io import BytesIO
from typing import Iterator

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

from conftest import STORAGE_ENV, FakeStorageClient, bearer
from pulse.main import app
from pulse.services import storage_service
from pulse.services.storage_service import StorageUploadError, object_key


@pytest.fixture
def authed_client(make_token) -> Iterator[tuple[TestClient, str]]:
    _, token = make_token("uploader")
    with TestClient(app) as client:
        client.get("/auth/session", headers=bearer(token))
        yield client, token


def _upload(client: TestClient, token: str | None, path: str = "posts/1-demo.png"):
    headers = bearer(token) if token else {}
    return client.post(
        "/api/upload",
        data={"filename": path},
        files={"file": ("demo.png", BytesIO(b"binary"), "image/png")},
        headers=headers,
    )


def test_object_key_is_sanitized():
    assert object_key("attachments/room 1/../user?.png") == "attachments/room-1/user-.png"
    with pytest.raises(StorageUploadError):
        object_key("../..")


def test_upload_requires_a_session(authed_client):
    client, _ = authed_client

    response = _upload(client, None)

    assert response.status_code == 401


def test_upload_without_file_is_rejected(authed_client, storage_env):
    client, token = authed_client

    response = client.post("/api/upload", data={"filename": "posts/x.png"}, headers=bearer(token))

    assert response.status_code == 400
    assert response.json() == {"success": False, "url": None, "error": "No file provided"}


def test_upload_fails_when_storage_config_missing(authed_client, monkeypatch):
    client, token = authed_client
    for name in STORAGE_ENV:
        monkeypatch.delenv(name, raising=False)
    storage_service.load_storage_config.cache_clear()

    response = _upload(client, token)

    assert response.status_code == 500
    assert response.json()["error"] == "Upload service not configured"
    assert response.json()["success"] is False


def test_upload_stores_public_object(authed_client, fake_storage):
    client, token = authed_client

    response = _upload(client, token, path="messages/1700000000000-demo.png")

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "url": "https://bucket.nyc3.digitaloceanspaces.com/messages/1700000000000-demo.png",
        "error": None,
    }
    assert len(fake_storage.uploads) == 1
    stored = fake_storage.uploads[0]
    assert stored["bucket"] == "bucket"
    assert stored["key"] == "messages/1700000000000-demo.png"
    assert stored["extra"] == {"ACL": "public-read", "ContentType": "image/png"}
    assert stored["body"] == b"binary"


def test_upload_provider_failure_returns_bad_gateway(authed_client, storage_env, monkeypatch):
    client, token = authed_client
    failing = FakeStorageClient(error=ClientError({"Error": {"Code": "500", "Message": "boom"}}, "PutObject"))
    monkeypatch.setattr(storage_service, "get_storage_client", lambda: failing)

    response = _upload(client, token)

    assert response.status_code == 502
    assert response.json()["success"] is False


def test_endpoint_without_scheme_gets_https(storage_env, monkeypatch):
    monkeypatch.setenv("DO_SPACES_ENDPOINT", "bucket.nyc3.digitaloceanspaces.com/")
    storage_service.load_storage_config.cache_clear()

    config = storage_service.load_storage_config()

    assert config.public_endpoint == "https://bucket.nyc3.digitaloceanspaces.com"
    assert config.api_endpoint == "https://nyc3.digitaloceanspaces.com"


def test_template_values_count_as_missing_secrets(monkeypatch):
    from pulse.security.secrets import MissingSecretError, missing_secrets, read_secret

    monkeypatch.setenv("DO_SPACES_KEY", "your-spaces-key")
    monkeypatch.setenv("DO_SPACES_SECRET", "  real-secret  ")
    monkeypatch.delenv("DO_SPACES_NAME", raising=False)

    assert missing_secrets(["DO_SPACES_KEY", "DO_SPACES_SECRET", "DO_SPACES_NAME"]) == [
        "DO_SPACES_KEY",
        "DO_SPACES_NAME",
    ]
    assert read_secret("DO_SPACES_SECRET") == "real-secret"
    assert read_secret("DO_SPACES_KEY", required=False) is None
    with pytest.raises(MissingSecretError) as excinfo:
        read_secret("DO_SPACES_NAME")
    assert excinfo.value.names == ["DO_SPACES_NAME"]
