"""Test fixtures — a fresh SQLite database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own SQLite file (aiosqlite) with the schema created
   from the models. Nothing is shared between tests, so services can
   commit for real.
2. The app's session, session factory, broadcaster and notifier are
   overridden with test instances bound to that database.
3. Push delivery goes to FakePushProvider, which records payloads and
   can be told to fail specific endpoints.
4. Auth is real: tokens are minted with create_access_token, so role
   guards run exactly as in production.
"""

import json
from types import SimpleNamespace

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from maintrack.auth.jwt import create_access_token
from maintrack.db.engine import get_db, get_session_factory
from maintrack.db.models import Base, Machine, Role, User
from maintrack.main import app
from maintrack.notifications.notifier import PushNotifier, get_notifier
from maintrack.notifications.provider import PushDeliveryError
from maintrack.realtime.broadcaster import RoomBroadcaster, get_broadcaster
from maintrack.services.request_service import RequestService


# ═══════════════════════════════════════════════════════════
# Test doubles
# ═══════════════════════════════════════════════════════════


class FakePushProvider:
    """Records deliveries; endpoints in `failures` raise with that status code."""

    def __init__(self):
        self.sent: list[tuple[str, dict]] = []
        self.failures: dict[str, int] = {}

    async def send(self, endpoint: str, keys: dict[str, str], payload: str) -> None:
        if endpoint in self.failures:
            raise PushDeliveryError("push service error", status_code=self.failures[endpoint])
        self.sent.append((endpoint, json.loads(payload)))

    def payloads_for(self, endpoint: str) -> list[dict]:
        return [p for e, p in self.sent if e == endpoint]


class RecordingBroadcaster(RoomBroadcaster):
    """Real broadcaster that also keeps every emitted event for assertions."""

    def __init__(self):
        super().__init__()
        self.events: list[tuple[str | None, str, dict]] = []

    async def broadcast_all(self, event_type, data):
        self.events.append((None, event_type, data))
        await super().broadcast_all(event_type, data)

    async def broadcast_to_room(self, room, event_type, data):
        self.events.append((room, event_type, data))
        await super().broadcast_to_room(room, event_type, data)

    def of_type(self, event_type: str) -> list[tuple[str | None, dict]]:
        return [(room, data) for room, t, data in self.events if t == event_type]


class FakeConnection:
    """Stands in for a WebSocket: collects what the broadcaster sends."""

    def __init__(self, fail: bool = False):
        self.messages: list[dict] = []
        self.fail = fail

    async def send_json(self, data) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.messages.append(data)


# ═══════════════════════════════════════════════════════════
# Database
# ═══════════════════════════════════════════════════════════


@pytest_asyncio.fixture()
async def engine(tmp_path):
    """Per-test SQLite database with foreign keys enforced."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'maintrack.db'}",
        poolclass=NullPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_pragmas(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ═══════════════════════════════════════════════════════════
# Fan-out collaborators
# ═══════════════════════════════════════════════════════════


@pytest_asyncio.fixture()
async def push_provider():
    return FakePushProvider()


@pytest_asyncio.fixture()
async def broadcaster():
    return RecordingBroadcaster()


@pytest_asyncio.fixture()
async def notifier(session_factory, push_provider):
    notifier = PushNotifier(session_factory, push_provider)
    yield notifier
    await notifier.drain()


@pytest_asyncio.fixture()
async def service(db_session, broadcaster, notifier, session_factory):
    """RequestService wired to the test database and test doubles."""
    return RequestService(db_session, broadcaster, notifier, session_factory)


# ═══════════════════════════════════════════════════════════
# Seed data
# ═══════════════════════════════════════════════════════════


@pytest_asyncio.fixture()
async def users(db_session):
    """One user per role plus a second technician."""
    people = SimpleNamespace(
        admin=User(username="admin", email="admin@plant.test", full_name="Ada Admin",
                   role=Role.ADMIN.value),
        tech=User(username="tech", email="tech@plant.test", full_name="Tomas Tech",
                  role=Role.TECHNICIAN.value),
        tech2=User(username="tech2", email="tech2@plant.test", full_name="Tara Tech",
                   role=Role.TECHNICIAN.value),
        user=User(username="operator", email="op@plant.test", full_name="Uma User",
                  role=Role.USER.value),
    )
    db_session.add_all(vars(people).values())
    await db_session.commit()
    return people


@pytest_asyncio.fixture()
async def machine(db_session):
    m = Machine(code="CNC-01", name="CNC Lathe", location="Hall A")
    db_session.add(m)
    await db_session.commit()
    return m


def auth_headers(user: User) -> dict[str, str]:
    """Bearer header with a real token for the given user."""
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


# ═══════════════════════════════════════════════════════════
# HTTP client
# ═══════════════════════════════════════════════════════════


@pytest_asyncio.fixture()
async def client(session_factory, broadcaster, notifier):
    """HTTP client with the app's dependencies bound to the test database.

    Learn: Each API call gets its own session from the test factory, like
    production. Auth is NOT overridden — pass auth_headers(user).
    """

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
