"""Shared fixtures: SQLite schema, bearer tokens and an in-process change feed."""
from __future__ import annotations

import asyncio
import json
import os
from typing import Any, Callable, Iterator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import delete

# The database URL and JWT secret must be set before application modules are imported.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test_pulse.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import httpx  # noqa: E402

from pulse.database import Base, SessionLocal, engine  # noqa: E402
from pulse.main import app  # noqa: E402
from pulse.models import (  # noqa: E402
    ChatRoom,
    Comment,
    CommunityMember,
    Conversation,
    ConversationParticipant,
    DirectMessage,
    Follow,
    Like,
    MessageRead,
    Notification,
    Post,
    Profile,
    RoomMessage,
    Share,
    TypingIndicator,
)
from pulse.services import (  # noqa: E402
    Subscription,
    change_feed_manager,
    create_access_token,
    decode_access_token,
    parse_filter,
)
from pulse.services import storage_service  # noqa: E402
from pulse.sync import (  # noqa: E402
    BackendClient,
    ChangeSourceClosed,
    ClientSettings,
    SyncContext,
)

STORAGE_ENV = {
    "DO_SPACES_KEY": "key",
    "DO_SPACES_SECRET": "secret",
    "DO_SPACES_REGION": "nyc3",
    "DO_SPACES_NAME": "bucket",
    "DO_SPACES_ENDPOINT": "https://bucket.nyc3.digitaloceanspaces.com",
}


@pytest.fixture(scope="session", autouse=True)
def _create_schema() -> Iterator[None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_database() -> Iterator[None]:
    """Remove persisted rows and cached storage configuration between tests."""

    with SessionLocal() as session:
        for model in (
            Notification,
            TypingIndicator,
            MessageRead,
            DirectMessage,
            ConversationParticipant,
            Conversation,
            RoomMessage,
            CommunityMember,
            ChatRoom,
            Comment,
            Share,
            Like,
            Post,
            Follow,
            Profile,
        ):
            session.execute(delete(model))
        session.commit()

    storage_service.load_storage_config.cache_clear()
    storage_service.get_storage_client.cache_clear()
    yield
    storage_service.load_storage_config.cache_clear()
    storage_service.get_storage_client.cache_clear()


@pytest.fixture
def make_token() -> Callable[..., tuple[UUID, str]]:
    """Issue a signed session token for a fresh user id."""

    def _factory(username: str, *, email: str | None = None) -> tuple[UUID, str]:
        user_id = uuid4()
        token = create_access_token(
            user_id,
            email=email or f"{username}@example.test",
            user_metadata={"username": username},
        )
        return user_id, token

    return _factory


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def storage_env(monkeypatch) -> dict[str, str]:
    for name, value in STORAGE_ENV.items():
        monkeypatch.setenv(name, value)
    monkeypatch.delenv("DO_SPACES_API_ENDPOINT", raising=False)
    storage_service.load_storage_config.cache_clear()
    return dict(STORAGE_ENV)


class FakeStorageClient:
    """Stands in for the boto3 S3 client and records every upload."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.uploads: list[dict[str, Any]] = []

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):  # noqa: N803
        if self.error is not None:
            raise self.error
        self.uploads.append({"bucket": bucket, "key": key, "extra": ExtraArgs, "body": fileobj.read()})


@pytest.fixture
def fake_storage(storage_env, monkeypatch) -> FakeStorageClient:
    client = FakeStorageClient()
    monkeypatch.setattr(storage_service, "get_storage_client", lambda: client)
    return client


class LoopbackSocket:
    """Minimal socket the change feed manager can accept and write to."""

    def __init__(self) -> None:
        self.frames: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.closed = False

    async def accept(self) -> None:
        return None

    async def send_text(self, data: str) -> None:
        await self.frames.put(json.loads(data))


class LoopbackChangeSource:
    """Change source wired straight into the server's change feed manager."""

    def __init__(self, token: str) -> None:
        self.token = token
        self.socket: LoopbackSocket | None = None

    async def connect(self) -> None:
        identity = decode_access_token(self.token)
        self.socket = LoopbackSocket()
        await change_feed_manager.connect(str(identity.user_id), self.socket)

    async def send(self, frame: dict[str, Any]) -> None:
        if self.socket is None:
            raise ChangeSourceClosed("not connected")
        if frame["type"] == "subscribe":
            subscription = Subscription(
                topic=frame["topic"],
                table=frame["table"],
                event=frame.get("event", "*"),
                filter=parse_filter(frame.get("filter")),
            )
            await change_feed_manager.subscribe(self.socket, subscription)
        elif frame["type"] == "unsubscribe":
            await change_feed_manager.unsubscribe(self.socket, frame["topic"])

    async def receive(self) -> dict[str, Any]:
        if self.socket is None:
            raise ChangeSourceClosed("not connected")
        return await self.socket.frames.get()

    async def close(self) -> None:
        if self.socket is not None:
            await change_feed_manager.disconnect(self.socket)
            self.socket = None


def asgi_client(token: str | None, **settings: Any) -> BackendClient:
    return BackendClient(
        base_url="http://testserver",
        token=token,
        transport=httpx.ASGITransport(app=app),
        settings=ClientSettings(**settings),
    )


async def open_context(token: str, *, errors: list | None = None, **settings: Any) -> SyncContext:
    """Resolve the session and start a subscriber for one signed-in client."""

    return await SyncContext.start(
        asgi_client(token, **settings),
        on_error=errors.append if errors is not None else None,
        source=LoopbackChangeSource(token),
    )


async def close_context(context: SyncContext) -> None:
    await context.close()


async def settle(delay: float = 0.05) -> None:
    """Let scheduled change broadcasts reach every loopback socket."""

    await asyncio.sleep(delay)


def recording_client(
    responder: Callable[[httpx.Request], httpx.Response] | None = None,
) -> tuple[BackendClient, list[httpx.Request]]:
    """Client whose requests never leave the process; every request is recorded."""

    calls: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if responder is not None:
            return responder(request)
        return httpx.Response(200, json={})

    client = BackendClient(
        base_url="http://backend.test",
        token="token",
        transport=httpx.MockTransport(_handler),
        settings=ClientSettings(),
    )
    return client, calls
