"""Appointment proposals offered by specialists to help-seekers."""

from datetime import timedelta

import structlog
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from peer_chat.core.clock import utcnow
from peer_chat.core.exceptions import (
    AuthorizationError,
    ConflictError,
    ProposalNotFoundError,
    SessionNotFoundError,
)
from peer_chat.repositories.chat_repo import ChatRepository
from peer_chat.repositories.proposal_repo import ProposalRepository
from peer_chat.repositories.specialist_repo import SpecialistRepository
from peer_chat.schemas.proposal_schema import (
    CreateProposalRequest,
    ProposalRead,
    RespondProposalRequest,
)
from peer_chat.schemas.realtime_schema import EventType
from peer_chat.services.realtime_feed import RealtimeFeed

logger = structlog.get_logger()

PROPOSALS_TABLE = "appointment_proposals"


class ProposalService:
    """Create, list, and answer appointment proposals."""

    def __init__(
        self,
        proposal_repo: ProposalRepository,
        specialist_repo: SpecialistRepository,
        chat_repo: ChatRepository,
        session: AsyncSession,
        feed: RealtimeFeed | None = None,
    ) -> None:
        self._proposal_repo = proposal_repo
        self._specialist_repo = specialist_repo
        self._chat_repo = chat_repo
        self._session = session
        self._feed = feed

    async def create(
        self, specialist_user_id: int, request: CreateProposalRequest
    ) -> ProposalRead:
        """Offer a time window to a user, optionally tied to a session."""
        specialist = await self._specialist_repo.find_by_user_id(specialist_user_id)
        if specialist is None or not specialist.is_active:
            raise AuthorizationError(message="Only active specialists can propose")

        if request.session_id is not None:
            chat_session = await self._chat_repo.find_session_by_id(request.session_id)
            if chat_session is None:
                raise SessionNotFoundError()
            if (
                chat_session.specialist_id != specialist.id
                or chat_session.user_id != request.user_id
            ):
                raise AuthorizationError(message="Session does not belong to you")

        now = utcnow()
        proposal = await self._proposal_repo.create(
            specialist_id=specialist.id,
            user_id=request.user_id,
            session_id=request.session_id,
            title=request.title,
            start_at=request.start_at,
            end_at=request.end_at,
            proposed_at=now,
            expires_at=now + timedelta(minutes=request.expires_in_minutes),
        )
        await self._session.commit()

        snapshot = ProposalRead.model_validate(proposal)
        logger.info(
            "Proposal created",
            proposal_id=snapshot.id,
            specialist_id=specialist.id,
            user_id=request.user_id,
        )
        await self._notify("INSERT", snapshot)
        return snapshot

    async def list_pending(self, specialist_user_id: int) -> list[ProposalRead]:
        """The specialist's unanswered, unexpired proposals."""
        specialist = await self._specialist_repo.find_by_user_id(specialist_user_id)
        if specialist is None:
            raise AuthorizationError(message="Only specialists have proposals")
        rows = await self._proposal_repo.find_pending_for_specialist(
            specialist.id, utcnow()
        )
        return [ProposalRead.model_validate(row) for row in rows]

    async def respond(
        self, proposal_id: int, user_id: int, request: RespondProposalRequest
    ) -> ProposalRead:
        """Accept or decline a pending proposal addressed to the caller."""
        proposal = await self._proposal_repo.find_by_id(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError()
        if proposal.user_id != user_id:
            raise AuthorizationError(message="This proposal is not addressed to you")

        now = utcnow()
        status = "accepted" if request.accept else "declined"
        if not await self._proposal_repo.resolve(proposal_id, status, now):
            # Lapsed proposals are flagged rather than deleted.
            await self._proposal_repo.mark_expired(proposal_id, now)
            await self._session.commit()
            await self._proposal_repo.reload(proposal)
            raise ConflictError(
                message=f"Proposal is no longer pending (status: {proposal.status})"
            )

        await self._session.commit()
        snapshot = ProposalRead.model_validate(await self._proposal_repo.reload(proposal))
        logger.info("Proposal answered", proposal_id=proposal_id, status=status)
        await self._notify("UPDATE", snapshot)
        return snapshot

    async def _notify(self, event_type: EventType, snapshot: ProposalRead) -> None:
        if self._feed is None:
            return
        try:
            await self._feed.publish(
                PROPOSALS_TABLE,
                event_type,
                new=snapshot.model_dump(mode="json"),
            )
        except RedisError as exc:
            logger.warning("Proposal change not published", error=str(exc))
