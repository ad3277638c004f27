"""Periodic background jobs: specialist status freshness and idle session sweep.

Both jobs are best-effort. A failed tick is logged and the next one tries
again; nothing here is needed for correctness.
"""

from collections.abc import Callable
from datetime import timedelta

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from peer_chat.core import redis as redis_state
from peer_chat.core.clock import utcnow
from peer_chat.core.config import settings
from peer_chat.core.database import async_session_factory
from peer_chat.repositories.chat_repo import ChatRepository
from peer_chat.repositories.specialist_repo import SpecialistRepository
from peer_chat.services.chat_session_service import ChatSessionService
from peer_chat.services.realtime_feed import RealtimeFeed
from peer_chat.services.specialist_service import SpecialistService

logger = structlog.get_logger()

STATUS_JOB_ID = "recompute_specialist_statuses"
IDLE_JOB_ID = "end_idle_sessions"


def _default_feed() -> RealtimeFeed | None:
    client = redis_state.redis_client
    return RealtimeFeed(client) if client is not None else None


class StatusScheduler:
    """Owns an ``AsyncIOScheduler`` bound to the running event loop."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        feed_factory: Callable[[], RealtimeFeed | None] = _default_feed,
    ) -> None:
        self._session_factory = session_factory
        self._feed_factory = feed_factory
        self._scheduler = AsyncIOScheduler(timezone="UTC")

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def start(self) -> None:
        """Register both jobs and start ticking; the status job also runs now."""
        config = settings.scheduler
        self._scheduler.add_job(
            self.recompute_specialist_statuses,
            "interval",
            seconds=config.status_interval_seconds,
            id=STATUS_JOB_ID,
            next_run_time=utcnow(),
            coalesce=True,
            max_instances=1,
            replace_existing=True,
        )
        self._scheduler.add_job(
            self.end_idle_sessions,
            "interval",
            seconds=config.idle_sweep_interval_seconds,
            id=IDLE_JOB_ID,
            coalesce=True,
            max_instances=1,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "Scheduler started",
            status_interval=config.status_interval_seconds,
            idle_sweep_interval=config.idle_sweep_interval_seconds,
        )

    def shutdown(self) -> None:
        """Stop the scheduler; pending ticks are dropped."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    async def recompute_specialist_statuses(self) -> int:
        """One status tick; returns how many specialists changed."""
        try:
            async with self._session_factory() as session:
                service = SpecialistService(
                    specialist_repo=SpecialistRepository(session),
                    session=session,
                    feed=self._feed_factory(),
                )
                result = await service.recompute_statuses()
            return result.updated
        except Exception:
            logger.exception("Specialist status recomputation failed")
            return 0

    async def end_idle_sessions(self) -> int:
        """One idle sweep; returns how many sessions were ended."""
        cutoff = utcnow() - timedelta(
            seconds=settings.chat.inactivity_timeout_seconds
        )
        try:
            async with self._session_factory() as session:
                service = ChatSessionService(
                    chat_repo=ChatRepository(session),
                    specialist_repo=SpecialistRepository(session),
                    session=session,
                    feed=self._feed_factory(),
                )
                ended = await service.end_idle_sessions(cutoff)
            return len(ended)
        except Exception:
            logger.exception("Idle session sweep failed")
            return 0
