"""Peer specialist repository."""

from datetime import datetime

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from peer_chat.models.peer_specialist import PeerSpecialist, SpecialistAvailability


class SpecialistRepository:
    """Specialist profiles, availability windows, and status writes."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_id(self, specialist_id: int) -> PeerSpecialist | None:
        """Find a specialist by primary key."""
        return await self._session.get(PeerSpecialist, specialist_id)

    async def find_by_user_id(self, user_id: int) -> PeerSpecialist | None:
        """Find the specialist profile owned by a user account."""
        result = await self._session.execute(
            select(PeerSpecialist).where(PeerSpecialist.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        user_id: int,
        display_name: str,
        max_concurrent_sessions: int,
    ) -> PeerSpecialist:
        """Create a specialist profile for an existing user."""
        specialist = PeerSpecialist(
            user_id=user_id,
            display_name=display_name,
            status="offline",
            status_source="schedule",
            max_concurrent_sessions=max_concurrent_sessions,
            is_active=True,
        )
        self._session.add(specialist)
        await self._session.flush()
        await self._session.refresh(specialist)
        return specialist

    async def find_schedule_driven(self) -> list[PeerSpecialist]:
        """Active specialists whose status follows their calendar."""
        result = await self._session.execute(
            select(PeerSpecialist).where(
                and_(
                    PeerSpecialist.is_active.is_(True),
                    PeerSpecialist.status_source == "schedule",
                )
            )
        )
        return list(result.scalars().all())

    async def find_availability(
        self, specialist_ids: list[int]
    ) -> list[SpecialistAvailability]:
        """Availability windows for the given specialists."""
        if not specialist_ids:
            return []
        result = await self._session.execute(
            select(SpecialistAvailability).where(
                SpecialistAvailability.specialist_id.in_(specialist_ids)
            )
        )
        return list(result.scalars().all())

    async def replace_availability(
        self, specialist_id: int, windows: list[SpecialistAvailability]
    ) -> None:
        """Swap a specialist's weekly windows for ``windows``."""
        existing = await self.find_availability([specialist_id])
        for row in existing:
            await self._session.delete(row)
        for window in windows:
            window.specialist_id = specialist_id
            self._session.add(window)
        await self._session.flush()

    async def update_status(
        self,
        specialist_id: int,
        status: str,
        status_source: str,
        at: datetime,
    ) -> None:
        """Write a specialist's status and who controls it."""
        await self._session.execute(
            update(PeerSpecialist)
            .where(PeerSpecialist.id == specialist_id)
            .values(status=status, status_source=status_source, status_updated_at=at)
            .execution_options(synchronize_session=False)
        )

    async def lock_for_claim(self, user_id: int, at: datetime) -> bool:
        """Stamp ``last_claimed_at`` on an active specialist's row.

        Must be the first statement of the claim transaction: the row stays
        write-locked until commit or rollback, so a second claim by the same
        specialist waits here and then counts its slots against committed
        data. Returns False when the user has no active profile.
        """
        result = await self._session.execute(
            update(PeerSpecialist)
            .where(
                and_(
                    PeerSpecialist.user_id == user_id,
                    PeerSpecialist.is_active.is_(True),
                )
            )
            .values(last_claimed_at=at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
