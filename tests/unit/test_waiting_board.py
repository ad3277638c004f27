"""Tests for the live waiting-session board."""

from collections.abc import Awaitable, Callable
from datetime import timedelta
from unittest.mock import AsyncMock

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from peer_chat.client.store import DatabaseSessionStore
from peer_chat.client.waiting import WaitingSessionBoard
from peer_chat.core.clock import utcnow
from peer_chat.core.exceptions import TransientNetworkError
from peer_chat.models.chat_session import ChatSession
from peer_chat.services.realtime_feed import RealtimeFeed
from tests.conftest import wait_until

SeedUser = Callable[..., Awaitable[int]]
SeedSpecialist = Callable[..., Awaitable[tuple[int, int]]]


class TestWaitingBoard:
    """The queue follows session inserts and claims."""

    async def test_follows_new_and_claimed_sessions(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: RealtimeFeed,
        seed_user: SeedUser,
        seed_specialist: SeedSpecialist,
    ) -> None:
        specialist_user_id, _ = await seed_specialist()
        specialist_store = DatabaseSessionStore(
            specialist_user_id, "specialist", session_factory, feed
        )
        board = WaitingSessionBoard(specialist_store, feed)
        assert await board.start() == []

        seeker = DatabaseSessionStore(await seed_user(), "user", session_factory, feed)
        started = await seeker.start_session()
        await wait_until(lambda: [s.id for s in board.sessions] == [started.session.id])

        await specialist_store.claim_session(started.session.id)
        await wait_until(lambda: board.sessions == [])
        await board.stop()

    async def test_refresh_failure_is_recorded(self) -> None:
        store = AsyncMock()
        store.list_waiting_sessions.side_effect = TransientNetworkError("down")
        board = WaitingSessionBoard(store)

        assert await board.refresh() == []
        assert isinstance(board.error, TransientNetworkError)

    async def test_stale_sessions(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        seed_user: SeedUser,
        seed_specialist: SeedSpecialist,
    ) -> None:
        specialist_user_id, _ = await seed_specialist()
        old = utcnow() - timedelta(hours=3)
        async with session_factory() as session:
            stale = ChatSession(
                user_id=await seed_user(),
                status="waiting",
                session_number=1,
                started_at=old,
                last_activity=old,
            )
            session.add(stale)
            await session.commit()
            stale_id = stale.id

        board = WaitingSessionBoard(
            DatabaseSessionStore(specialist_user_id, "specialist", session_factory)
        )
        await board.refresh()

        assert board.stale_session_ids == [stale_id]

    async def test_reconnect(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: RealtimeFeed,
        seed_specialist: SeedSpecialist,
    ) -> None:
        specialist_user_id, _ = await seed_specialist()
        board = WaitingSessionBoard(
            DatabaseSessionStore(specialist_user_id, "specialist", session_factory, feed),
            feed,
        )
        await board.start()
        await wait_until(lambda: board.monitor.is_connected)

        await board.monitor.reconnect()

        assert board.monitor.is_connected
        await board.stop()
