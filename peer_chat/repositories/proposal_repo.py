"""Appointment proposal repository."""

from datetime import datetime

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from peer_chat.models.appointment_proposal import AppointmentProposal


class ProposalRepository:
    """Encapsulates appointment proposal queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        specialist_id: int,
        user_id: int,
        session_id: int | None,
        title: str,
        start_at: datetime,
        end_at: datetime,
        proposed_at: datetime,
        expires_at: datetime,
    ) -> AppointmentProposal:
        """Insert a pending proposal."""
        proposal = AppointmentProposal(
            specialist_id=specialist_id,
            user_id=user_id,
            session_id=session_id,
            title=title,
            start_at=start_at,
            end_at=end_at,
            status="pending",
            proposed_at=proposed_at,
            expires_at=expires_at,
        )
        self._session.add(proposal)
        await self._session.flush()
        await self._session.refresh(proposal)
        return proposal

    async def find_by_id(self, proposal_id: int) -> AppointmentProposal | None:
        """Find a proposal by primary key."""
        return await self._session.get(AppointmentProposal, proposal_id)

    async def find_pending_for_specialist(
        self, specialist_id: int, now: datetime
    ) -> list[AppointmentProposal]:
        """Pending, unexpired proposals, newest first."""
        result = await self._session.execute(
            select(AppointmentProposal)
            .where(
                and_(
                    AppointmentProposal.specialist_id == specialist_id,
                    AppointmentProposal.status == "pending",
                    AppointmentProposal.expires_at > now,
                )
            )
            .order_by(
                AppointmentProposal.proposed_at.desc(), AppointmentProposal.id.desc()
            )
        )
        return list(result.scalars().all())

    async def resolve(
        self, proposal_id: int, status: str, now: datetime
    ) -> bool:
        """Move a pending, unexpired proposal to ``status``; False if it lost."""
        result = await self._session.execute(
            update(AppointmentProposal)
            .where(
                and_(
                    AppointmentProposal.id == proposal_id,
                    AppointmentProposal.status == "pending",
                    AppointmentProposal.expires_at > now,
                )
            )
            .values(status=status, responded_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_expired(self, proposal_id: int, now: datetime) -> None:
        """Flag a pending proposal whose window has lapsed."""
        await self._session.execute(
            update(AppointmentProposal)
            .where(
                and_(
                    AppointmentProposal.id == proposal_id,
                    AppointmentProposal.status == "pending",
                    AppointmentProposal.expires_at <= now,
                )
            )
            .values(status="expired")
            .execution_options(synchronize_session=False)
        )

    async def reload(self, proposal: AppointmentProposal) -> AppointmentProposal:
        """Refresh an instance after a conditional update."""
        await self._session.refresh(proposal)
        return proposal
