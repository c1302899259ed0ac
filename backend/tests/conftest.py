"""Shared test fixtures and configuration for backend tests."""
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from app.auth.service import TokenService
from app.config import AppConfig, DatabaseSettings, PresenceSettings, reset_config, set_config
from app.main import app
from app.messages.repository import MessageRepository
from app.rooms import RoomMembershipIndex, RoomService
from app.storage import Database
from app.users.repository import UserRepository

TEST_SECRET = "test-secret-key-for-jwt-signing-only"


@pytest.fixture
def test_config():
    """In-memory database and in-process presence; nothing touches disk or Redis."""
    config = AppConfig(
        database=DatabaseSettings(path=":memory:"),
        presence=PresenceSettings(backend="memory"),
    )
    config.secrets.jwt.secret_key = TEST_SECRET
    set_config(config)
    yield config
    reset_config()


@pytest.fixture
def api_client(test_config):
    """TestClient with the lifespan running, so ``app.state`` is wired.

    All WebSocket sessions opened from this client share one event loop.
    """
    with TestClient(app) as client:
        yield client


@pytest.fixture
def seeded(api_client):
    """Three users; ``general`` holds alice and bob, carol is outside it."""
    state = api_client.app.state
    for user_id in ("alice", "bob", "carol"):
        state.users.create_user(user_id, f"{user_id}@example.com", display_name=user_id.title())
    general = state.rooms.create_room("alice", "group", ["bob"], "General")
    return SimpleNamespace(state=state, room_id=general.id)


def token_for(api_client, user_id: str) -> str:
    return api_client.app.state.token_service.issue(user_id, f"{user_id}@example.com")


def auth_headers(api_client, user_id: str) -> dict:
    return {"Authorization": f"Bearer {token_for(api_client, user_id)}"}


def ws_url(api_client, user_id: str) -> str:
    return f"/ws?token={token_for(api_client, user_id)}"


# ---------------------------------------------------------------------------
# Service-level fixtures (no app)
# ---------------------------------------------------------------------------


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def repos(db):
    """Repositories over a fresh database with alice and bob in one room."""
    users = UserRepository(db)
    membership = RoomMembershipIndex(db)
    rooms = RoomService(db, membership)
    for user_id in ("alice", "bob", "carol"):
        users.create_user(user_id, f"{user_id}@example.com")
    room = rooms.create_room("alice", "group", ["bob"], "General")
    return SimpleNamespace(
        db=db,
        users=users,
        membership=membership,
        rooms=rooms,
        messages=MessageRepository(db),
        room_id=room.id,
    )


@pytest.fixture
def token_service():
    return TokenService(TEST_SECRET)


class FakeWebSocket:
    """Records frames sent to it; optionally fails every send."""

    def __init__(self, fail: bool = False, token: str = None) -> None:
        self.application_state = WebSocketState.CONNECTED
        self.sent = []
        self.fail = fail
        self.accepted = False
        self.close_code = None
        self.query_params = {"token": token} if token else {}
        self.headers = {}

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data) -> None:
        if self.fail:
            raise RuntimeError("connection lost")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = None) -> None:
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED

    def events(self):
        return [frame["event"] for frame in self.sent]
