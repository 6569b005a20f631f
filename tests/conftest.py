"""Shared fixtures: fake transports, a temporary SQLite store, and the app client."""

import os
import tempfile

# Keep module-level Settings() away from the working directory
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{tempfile.mkdtemp(prefix='motor-relay-')}/import.db",
)
os.environ.setdefault("LOG_FORMAT", "console")

from typing import List, Optional

import orjson
import pytest
from dependency_injector import providers
from starlette.websockets import WebSocketState

from core.config import Settings
from core.database import Database
from core.exceptions import StorageError
from services.broadcaster import Broadcaster
from services.connection import Connection
from services.message_router import MessageRouter
from services.registry import ConnectionRegistry
from services.state_store import StateStore


class FakeWebSocket:
    """Just enough of a Starlette WebSocket for Connection."""

    def __init__(self, fail: bool = False):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.fail = fail
        self.sent: List[dict] = []
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("socket broken")
        self.sent.append(orjson.loads(data))

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.close_code = code
        self.close_reason = reason
        self.drop()

    def drop(self) -> None:
        self.client_state = WebSocketState.DISCONNECTED
        self.application_state = WebSocketState.DISCONNECTED

    def of_type(self, msg_type: str) -> List[dict]:
        return [m for m in self.sent if m.get("type") == msg_type]


class RecordingStateStore(StateStore):
    """StateStore that remembers every upsert it was asked to make."""

    def __init__(self, database: Database):
        super().__init__(database)
        self.upserts: List[dict] = []

    async def upsert(self, updated_at=None, **fields):
        self.upserts.append(fields)
        return await super().upsert(updated_at=updated_at, **fields)


class BrokenStateStore(StateStore):
    """StateStore whose backend is unreachable."""

    def __init__(self):
        super().__init__(database=None)
        self.upserts: List[dict] = []

    async def read(self):
        raise StorageError("read", "database is locked")

    async def upsert(self, updated_at=None, **fields):
        self.upserts.append(fields)
        raise StorageError("upsert", "database is locked")


def make_connection(fail: bool = False) -> Connection:
    return Connection(FakeWebSocket(fail=fail))


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path}/relay.db",
        log_format="console",
    )


@pytest.fixture
async def database(settings):
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


@pytest.fixture
def state_store(database):
    return RecordingStateStore(database)


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def broadcaster(registry):
    return Broadcaster(registry)


@pytest.fixture
def message_router(registry, broadcaster, state_store, settings):
    return MessageRouter(registry, broadcaster, state_store, settings)


@pytest.fixture
def client(settings):
    """TestClient running the full app against a fresh database."""
    from fastapi.testclient import TestClient
    from core.container import container
    from main import app

    container.reset_singletons()
    container.settings.override(providers.Object(settings))
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        container.settings.reset_override()
        container.reset_singletons()


@pytest.fixture
def connection_factory():
    """Build Connections over fake transports."""
    return make_connection


@pytest.fixture
def broken_store():
    return BrokenStateStore()


@pytest.fixture
def broken_router(registry, broadcaster, broken_store, settings):
    return MessageRouter(registry, broadcaster, broken_store, settings)
