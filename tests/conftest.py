"""Pytest configuration and fixtures."""

import asyncio
import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-enough-bytes-for-hs256")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import fakeredis.aioredis  # noqa: E402
import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from peer_chat.core.database import Base  # noqa: E402
from peer_chat.models.appointment_proposal import AppointmentProposal  # noqa: E402, F401
from peer_chat.models.chat_message import ChatMessage  # noqa: E402, F401
from peer_chat.models.chat_session import ChatSession  # noqa: E402, F401
from peer_chat.models.peer_specialist import PeerSpecialist  # noqa: E402
from peer_chat.models.user import User  # noqa: E402
from peer_chat.services.realtime_feed import RealtimeFeed  # noqa: E402
from peer_chat.services.token_service import TokenService  # noqa: E402

# --- Test DB (SQLite in-memory, one shared connection) ---

test_engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    echo=False,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the shared in-memory test database."""
    return test_session_factory


@pytest.fixture(autouse=True)
async def setup_db() -> AsyncGenerator[None, None]:
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a test database session."""
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@pytest.fixture
async def file_session_factory(
    tmp_path: Path,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """File-backed database with a real pool, for tests that race writers."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


# --- Test Redis (fakeredis) ---


@pytest.fixture
async def fake_redis() -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
    """Create a fresh fake Redis client."""
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    await client.flushall()
    yield client
    await client.aclose()


@pytest.fixture(autouse=True)
def patch_redis(
    fake_redis: fakeredis.aioredis.FakeRedis, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Patch the global redis_client used by middleware and get_redis()."""
    monkeypatch.setattr("peer_chat.core.redis.redis_client", fake_redis)


@pytest.fixture
def feed(fake_redis: fakeredis.aioredis.FakeRedis) -> RealtimeFeed:
    """Change feed on fake Redis with a short subscribe timeout."""
    return RealtimeFeed(fake_redis, channel_prefix="test", subscribe_timeout=1.0)


async def wait_until(
    predicate: Callable[[], bool], timeout: float = 3.0, interval: float = 0.01
) -> None:
    """Poll until ``predicate`` holds; pub/sub delivery is asynchronous."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(interval)


# --- Token helpers ---


@pytest.fixture
def token_service(fake_redis: fakeredis.aioredis.FakeRedis) -> TokenService:
    """Create a TokenService backed by fake Redis."""
    return TokenService(fake_redis)


def make_auth_headers(
    fake_redis: fakeredis.aioredis.FakeRedis,
    user_id: int = 1,
    email: str = "test@test.com",
    role: str = "user",
) -> dict[str, str]:
    """Generate Authorization headers with a valid access token."""
    ts = TokenService(fake_redis)
    token = ts.create_access_token(user_id=user_id, email=email, role=role)
    return {"Authorization": f"Bearer {token}"}


# --- Seed data ---


@pytest.fixture
def seed_user() -> Callable[..., Awaitable[int]]:
    """Factory inserting a committed user; returns its id."""

    async def _create(email: str = "seeker@test.com", role: str = "user") -> int:
        async with test_session_factory() as session:
            user = User(
                email=email,
                hashed_password="hashed",
                username=email.split("@")[0],
                role=role,
            )
            session.add(user)
            await session.commit()
            return user.id

    return _create


@pytest.fixture
def seed_specialist() -> Callable[..., Awaitable[tuple[int, int]]]:
    """Factory inserting a specialist user plus profile; returns (user_id, specialist_id)."""

    async def _create(
        email: str = "peer@test.com",
        slots: int = 3,
        status: str = "online",
        status_source: str = "schedule",
    ) -> tuple[int, int]:
        async with test_session_factory() as session:
            user = User(
                email=email,
                hashed_password="hashed",
                username=email.split("@")[0],
                role="specialist",
            )
            session.add(user)
            await session.flush()
            specialist = PeerSpecialist(
                user_id=user.id,
                display_name=user.username,
                status=status,
                status_source=status_source,
                max_concurrent_sessions=slots,
            )
            session.add(specialist)
            await session.commit()
            return user.id, specialist.id

    return _create


# --- App override & client fixtures ---


def _get_app():  # type: ignore[no-untyped-def]
    """Import app lazily and apply overrides."""
    from peer_chat.core.database import get_async_session as original_dep
    from peer_chat.main import app

    app.dependency_overrides[original_dep] = override_get_async_session
    return app


@pytest.fixture
async def async_client(
    fake_redis: fakeredis.aioredis.FakeRedis,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client for async tests."""
    application = _get_app()
    transport = ASGITransport(app=application)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def authed_client(
    fake_redis: fakeredis.aioredis.FakeRedis,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with auth headers."""
    application = _get_app()
    headers = make_auth_headers(fake_redis)
    transport = ASGITransport(app=application)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=headers
    ) as ac:
        yield ac


@pytest.fixture
async def admin_client(
    fake_redis: fakeredis.aioredis.FakeRedis,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with admin auth headers."""
    application = _get_app()
    headers = make_auth_headers(fake_redis, role="admin")
    transport = ASGITransport(app=application)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=headers
    ) as ac:
        yield ac


# --- DB session for tests ---


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a raw async session for repository tests."""
    async with test_session_factory() as session:
        yield session
