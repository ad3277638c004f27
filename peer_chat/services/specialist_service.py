"""Peer specialist profile and status management."""

from collections import defaultdict
from datetime import datetime

import structlog
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from peer_chat.core.clock import as_utc, utcnow
from peer_chat.core.exceptions import AuthorizationError, SpecialistNotFoundError
from peer_chat.models.peer_specialist import PeerSpecialist, SpecialistAvailability
from peer_chat.repositories.specialist_repo import SpecialistRepository
from peer_chat.schemas.specialist_schema import (
    AvailabilityWindow,
    RecomputeResult,
    SpecialistRead,
    UpdateStatusRequest,
)
from peer_chat.services.realtime_feed import RealtimeFeed

logger = structlog.get_logger()

SPECIALISTS_TABLE = "peer_specialists"


def is_within_windows(windows: list[SpecialistAvailability], at: datetime) -> bool:
    """True when ``at`` (UTC) falls inside any weekly window."""
    at = as_utc(at)
    weekday = at.weekday()
    clock = at.time().replace(tzinfo=None)
    return any(
        window.weekday == weekday and window.start_time <= clock < window.end_time
        for window in windows
    )


class SpecialistService:
    """Reads and writes specialist profiles and their availability status."""

    def __init__(
        self,
        specialist_repo: SpecialistRepository,
        session: AsyncSession,
        feed: RealtimeFeed | None = None,
    ) -> None:
        self._specialist_repo = specialist_repo
        self._session = session
        self._feed = feed

    async def get_me(self, user_id: int) -> SpecialistRead:
        """The profile owned by the calling user."""
        specialist = await self._specialist_repo.find_by_user_id(user_id)
        if specialist is None:
            raise SpecialistNotFoundError()
        return SpecialistRead.model_validate(specialist)

    async def update_status(
        self,
        specialist_id: int,
        actor_id: int,
        request: UpdateStatusRequest,
    ) -> SpecialistRead:
        """Set a specialist's own status; nobody may change someone else's."""
        specialist = await self._specialist_repo.find_by_id(specialist_id)
        if specialist is None:
            raise SpecialistNotFoundError()
        if specialist.user_id != actor_id:
            raise AuthorizationError(
                message="You can only update your own availability status"
            )

        source = "schedule" if request.follow_schedule else "manual"
        await self._specialist_repo.update_status(
            specialist_id, request.status, source, utcnow()
        )
        await self._session.commit()
        await self._session.refresh(specialist)

        snapshot = SpecialistRead.model_validate(specialist)
        logger.info(
            "Specialist status updated",
            specialist_id=specialist_id,
            status=request.status,
            status_source=source,
        )
        await self._notify(snapshot)
        return snapshot

    async def get_availability(self, user_id: int) -> list[AvailabilityWindow]:
        """The calling specialist's weekly windows."""
        specialist = await self._own_profile(user_id)
        rows = await self._specialist_repo.find_availability([specialist.id])
        return [AvailabilityWindow.model_validate(row) for row in rows]

    async def set_availability(
        self, user_id: int, windows: list[AvailabilityWindow]
    ) -> list[AvailabilityWindow]:
        """Replace the calling specialist's weekly windows."""
        specialist = await self._own_profile(user_id)
        await self._specialist_repo.replace_availability(
            specialist.id,
            [
                SpecialistAvailability(
                    weekday=window.weekday,
                    start_time=window.start_time,
                    end_time=window.end_time,
                )
                for window in windows
            ],
        )
        await self._session.commit()
        logger.info(
            "Availability replaced", specialist_id=specialist.id, windows=len(windows)
        )
        return windows

    async def recompute_statuses(self, at: datetime | None = None) -> RecomputeResult:
        """Derive online/offline from each schedule-driven specialist's windows.

        Busy specialists are left alone, as are those who set their status
        by hand.
        """
        now = as_utc(at) if at is not None else utcnow()
        specialists = await self._specialist_repo.find_schedule_driven()
        windows = await self._specialist_repo.find_availability(
            [specialist.id for specialist in specialists]
        )
        by_specialist: dict[int, list[SpecialistAvailability]] = defaultdict(list)
        for window in windows:
            by_specialist[window.specialist_id].append(window)

        changed: list[PeerSpecialist] = []
        for specialist in specialists:
            if specialist.status == "busy":
                continue
            target = (
                "online"
                if is_within_windows(by_specialist[specialist.id], now)
                else "offline"
            )
            if target == specialist.status:
                continue
            await self._specialist_repo.update_status(
                specialist.id, target, "schedule", now
            )
            changed.append(specialist)

        await self._session.commit()
        for specialist in changed:
            await self._session.refresh(specialist)
            await self._notify(SpecialistRead.model_validate(specialist))

        logger.info(
            "Specialist statuses recomputed",
            checked=len(specialists),
            updated=len(changed),
        )
        return RecomputeResult(updated=len(changed))

    async def _own_profile(self, user_id: int) -> PeerSpecialist:
        specialist = await self._specialist_repo.find_by_user_id(user_id)
        if specialist is None:
            raise SpecialistNotFoundError()
        return specialist

    async def _notify(self, snapshot: SpecialistRead) -> None:
        if self._feed is None:
            return
        try:
            await self._feed.publish(
                SPECIALISTS_TABLE, "UPDATE", new=snapshot.model_dump(mode="json")
            )
        except RedisError as exc:
            logger.warning("Specialist change not published", error=str(exc))
