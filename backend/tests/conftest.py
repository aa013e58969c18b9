# tests/conftest.py — Shared test fixtures
import os
import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Use SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///./test.db"
os.environ["DATABASE_URL"] = TEST_DB_URL
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-unit-tests-only-min-32-chars"
os.environ["ENVIRONMENT"] = "test"
os.environ.pop("REDIS_URL", None)

from models import Base, User
from auth import AuthService
from database import get_db_session
from main import app

TEST_PASSWORD = "TestPassword123!"
_password_hash = None


def _hashed_test_password() -> str:
    global _password_hash
    if _password_hash is None:
        _password_hash = AuthService.hash_password(TEST_PASSWORD)
    return _password_hash


def auth_headers_for(user: User) -> dict:
    """Bearer header for a user, minted the same way login does"""
    session = AuthService.issue_session(user)
    return {"Authorization": f"Bearer {session.access_token}"}


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_engine):
    """HTTP test client with overridden DB dependency"""
    session_factory = async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False,
    )

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await app.state.gateway.flush()
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def make_user(db_session):
    """Factory creating users directly in the database"""

    async def _make(name: str = "Test User", email: str = None) -> User:
        user = User(
            id=str(uuid.uuid4()),
            name=name,
            email=email or f"{uuid.uuid4().hex[:10]}@taskflow.dev",
            password_hash=_hashed_test_password(),
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest_asyncio.fixture
async def alice(make_user):
    return await make_user("Alice", "alice@taskflow.dev")


@pytest_asyncio.fixture
async def bob(make_user):
    return await make_user("Bob", "bob@taskflow.dev")


@pytest_asyncio.fixture
async def carol(make_user):
    return await make_user("Carol", "carol@taskflow.dev")


@pytest.fixture
def auth_headers():
    return auth_headers_for


@pytest_asyncio.fixture
async def board(client, alice, bob, auth_headers):
    """Board owned by Alice with Bob as a member"""
    resp = await client.post(
        "/api/boards",
        json={"title": "Alpha", "description": "Team board"},
        headers=auth_headers(alice),
    )
    assert resp.status_code == 201
    board = resp.json()
    resp = await client.post(
        f"/api/boards/{board['id']}/members",
        json={"userId": bob.id},
        headers=auth_headers(alice),
    )
    assert resp.status_code == 201
    return board


class FakeConnection:
    """Stands in for a WebSocket: records what the gateway sends it"""

    def __init__(self, fail: bool = False):
        self.id = str(uuid.uuid4())
        self.sent = []
        self.accepted = False
        self.closed_with = None
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def close(self, code: int = 1000, reason: str = ""):
        self.closed_with = code

    async def send_json(self, message: dict):
        if self.fail:
            raise ConnectionError("socket gone")
        self.sent.append(message)

    def events(self):
        return [m["event"] for m in self.sent]


@pytest.fixture
def live_gateway():
    """The app's gateway, with any fake sockets removed afterwards"""
    gateway = app.state.gateway
    yield gateway
    for connection_id in list(gateway.registry._connections):
        gateway.handle_disconnect(connection_id)


@pytest.fixture
def subscribe(live_gateway):
    """Register a fake socket for a user and join it to a board room"""

    def _subscribe(user: User, board_id: str) -> FakeConnection:
        connection = FakeConnection()
        live_gateway.registry.add(connection, user.id)
        live_gateway.join_board(connection.id, board_id)
        return connection

    return _subscribe


@pytest.fixture
def fake_connection():
    """Factory for fake sockets not attached to any gateway"""
    return FakeConnection
