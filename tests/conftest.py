from typing import Any, List, Tuple

import fakeredis
import pytest
from fastapi.testclient import TestClient

from backend import RedisBackend, get_redis_backend
from realtime.registry import ConnectionRegistry
from realtime.relay import RoomRelay


class RecordingTransport:
    def __init__(self):
        self.sent: List[Tuple[str, Any]] = []

    async def emit(self, event: str, data: Any = None) -> None:
        self.sent.append((event, data))

    def events(self) -> List[str]:
        return [event for event, _ in self.sent]


class BrokenTransport:
    """Transport whose peer has gone away."""

    async def emit(self, event: str, data: Any = None) -> None:
        raise ConnectionResetError("peer closed the connection")


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def relay(registry):
    return RoomRelay(registry=registry)


@pytest.fixture
def backend():
    return RedisBackend(fakeredis.FakeRedis(decode_responses=True))


@pytest.fixture
def client(backend):
    from app import app

    app.dependency_overrides[get_redis_backend] = lambda: backend
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def register(client, name: str, email: str = None, password: str = "secret") -> dict:
    email = email or f"{name.lower()}@example.com"
    resp = client.post("/api/user", json={"name": name, "email": email, "password": password})
    assert resp.status_code == 201, resp.text
    return resp.json()


def auth_headers(user: dict) -> dict:
    return {"Authorization": f"Bearer {user['token']}"}


def chat_message(sender_id: str, user_ids: List[str], content: str = "hello", chat_id: str = "chat1") -> dict:
    return {
        "_id": "m1",
        "content": content,
        "sender": {"_id": sender_id, "name": sender_id},
        "chat": {"_id": chat_id, "users": [{"_id": u} for u in user_ids]},
    }
