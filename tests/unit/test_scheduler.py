"""Tests for the background status scheduler."""

from collections.abc import Awaitable, Callable
from datetime import time, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from peer_chat.core.clock import utcnow
from peer_chat.models.chat_session import ChatSession
from peer_chat.models.peer_specialist import SpecialistAvailability
from peer_chat.services.scheduler import StatusScheduler
from tests.conftest import wait_until

SeedUser = Callable[..., Awaitable[int]]
SeedSpecialist = Callable[..., Awaitable[tuple[int, int]]]


@pytest.fixture
def scheduler(session_factory: async_sessionmaker[AsyncSession]) -> StatusScheduler:
    return StatusScheduler(session_factory=session_factory, feed_factory=lambda: None)


class TestJobs:
    """Each tick runs against a fresh database session."""

    async def test_status_tick(
        self,
        scheduler: StatusScheduler,
        session_factory: async_sessionmaker[AsyncSession],
        seed_specialist: SeedSpecialist,
    ) -> None:
        _, specialist_id = await seed_specialist(status="offline")
        async with session_factory() as session:
            session.add_all(
                SpecialistAvailability(
                    specialist_id=specialist_id,
                    weekday=weekday,
                    start_time=time.min,
                    end_time=time.max,
                )
                for weekday in range(7)
            )
            await session.commit()

        assert await scheduler.recompute_specialist_statuses() == 1
        assert await scheduler.recompute_specialist_statuses() == 0

    async def test_idle_sweep_tick(
        self,
        scheduler: StatusScheduler,
        session_factory: async_sessionmaker[AsyncSession],
        seed_user: SeedUser,
        seed_specialist: SeedSpecialist,
    ) -> None:
        user_id = await seed_user()
        _, specialist_id = await seed_specialist()
        stale = utcnow() - timedelta(days=1)
        async with session_factory() as session:
            session.add(
                ChatSession(
                    user_id=user_id,
                    specialist_id=specialist_id,
                    status="active",
                    session_number=1,
                    started_at=stale,
                    claimed_at=stale,
                    last_activity=stale,
                )
            )
            await session.commit()

        assert await scheduler.end_idle_sessions() == 1
        assert await scheduler.end_idle_sessions() == 0

    async def test_failed_tick_is_swallowed(self) -> None:
        def broken_factory() -> None:
            raise RuntimeError("database down")

        scheduler = StatusScheduler(
            session_factory=broken_factory,  # type: ignore[arg-type]
            feed_factory=lambda: None,
        )
        assert await scheduler.recompute_specialist_statuses() == 0
        assert await scheduler.end_idle_sessions() == 0


class TestLifecycle:
    """Start and stop around the application lifespan."""

    async def test_start_and_shutdown(self, scheduler: StatusScheduler) -> None:
        scheduler.start()
        assert scheduler.running is True
        scheduler.shutdown()
        # The stop is applied on the event loop, not inline.
        await wait_until(lambda: not scheduler.running)
        assert scheduler.running is False
