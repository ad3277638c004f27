"""Chat session lifecycle: start, claim, message, end.

Every write commits before its change event is published, so a subscriber
that refetches on an event always sees the committed row.
"""

from datetime import datetime
from typing import Any

import structlog
from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from peer_chat.core.clock import utcnow
from peer_chat.core.config import settings
from peer_chat.core.exceptions import (
    AuthorizationError,
    ConflictError,
    SessionCreateError,
    SessionNotFoundError,
    ValidationError,
)
from peer_chat.models.chat_session import ChatSession
from peer_chat.models.peer_specialist import PeerSpecialist
from peer_chat.repositories.chat_repo import ChatRepository
from peer_chat.repositories.specialist_repo import SpecialistRepository
from peer_chat.schemas.chat_schema import (
    ChatMessageRead,
    ChatSessionRead,
    SenderType,
    SendMessageRequest,
    StartSessionResponse,
)
from peer_chat.schemas.realtime_schema import EventType
from peer_chat.services.realtime_feed import RealtimeFeed

logger = structlog.get_logger()

SESSIONS_TABLE = "chat_sessions"
MESSAGES_TABLE = "chat_messages"
REPLACED_REASON = "replaced"
# Retries cover session number collisions between different users.
CREATE_ATTEMPTS = 3


class ChatSessionService:
    """Orchestrates chat sessions for help-seekers and specialists."""

    def __init__(
        self,
        chat_repo: ChatRepository,
        specialist_repo: SpecialistRepository,
        session: AsyncSession,
        feed: RealtimeFeed | None = None,
    ) -> None:
        self._chat_repo = chat_repo
        self._specialist_repo = specialist_repo
        self._session = session
        self._feed = feed

    # --- Help-seeker side ---

    async def start_session(
        self, user_id: int, force_new: bool = False
    ) -> StartSessionResponse:
        """Reuse the caller's open session, or open a new waiting one.

        ``force_new`` first ends the caller's unclaimed waiting sessions with
        reason ``replaced``; an active session is still reused. At most one
        open session per user is enforced by the database, so concurrent
        starts converge on a single row.
        """
        if force_new:
            await self._replace_waiting_sessions(user_id)

        existing = await self._chat_repo.find_open_session_for_user(user_id)
        if existing is not None:
            return StartSessionResponse(
                session=ChatSessionRead.model_validate(existing), created=False
            )

        chat_session: ChatSession | None = None
        for _ in range(CREATE_ATTEMPTS):
            try:
                chat_session = await self._chat_repo.create_session(user_id)
                await self._session.commit()
                break
            except IntegrityError:
                await self._session.rollback()
                # Either our own concurrent start won, or another user took
                # the session number; only the latter is retried.
                existing = await self._chat_repo.find_open_session_for_user(user_id)
                if existing is not None:
                    logger.info(
                        "Concurrent start reused session",
                        session_id=existing.id,
                        user_id=user_id,
                    )
                    return StartSessionResponse(
                        session=ChatSessionRead.model_validate(existing),
                        created=False,
                    )
            except SQLAlchemyError as exc:
                await self._session.rollback()
                logger.error("Session create failed", user_id=user_id, error=str(exc))
                raise SessionCreateError from exc

        if chat_session is None:
            logger.error(
                "Session create failed", user_id=user_id, attempts=CREATE_ATTEMPTS
            )
            raise SessionCreateError()

        snapshot = ChatSessionRead.model_validate(chat_session)
        logger.info(
            "Chat session started",
            session_id=snapshot.id,
            user_id=user_id,
            session_number=snapshot.session_number,
        )
        await self._notify(SESSIONS_TABLE, "INSERT", snapshot.model_dump(mode="json"))
        return StartSessionResponse(session=snapshot, created=True)

    async def _replace_waiting_sessions(self, user_id: int) -> None:
        ended_ids = await self._chat_repo.end_waiting_sessions_for_user(
            user_id, REPLACED_REASON
        )
        await self._session.commit()
        for session_id in ended_ids:
            chat_session = await self._get_or_404(session_id)
            chat_session = await self._chat_repo.reload_session(chat_session)
            logger.info("Waiting session replaced", session_id=session_id)
            await self._notify(
                SESSIONS_TABLE,
                "UPDATE",
                ChatSessionRead.model_validate(chat_session).model_dump(mode="json"),
            )

    # --- Specialist side ---

    async def claim_session(
        self, session_id: int, specialist_user_id: int
    ) -> ChatSessionRead:
        """Assign a waiting session to the calling specialist.

        The specialist's row is locked first so that claims by one specialist
        are serialized and the slot count is current. The conditional update
        on the session then decides races between specialists; the loser gets
        a ConflictError and no row is touched.
        """
        if not await self._specialist_repo.lock_for_claim(specialist_user_id, utcnow()):
            await self._session.rollback()
            raise AuthorizationError(message="Only active specialists can do this")
        specialist = await self._require_specialist(specialist_user_id)
        chat_session = await self._chat_repo.find_session_by_id(session_id)
        if chat_session is None:
            await self._session.rollback()
            raise SessionNotFoundError()
        if chat_session.status != "waiting" or chat_session.specialist_id is not None:
            await self._session.rollback()
            raise ConflictError(message="Session is no longer waiting")

        active = await self._chat_repo.find_active_sessions_for_specialist(specialist.id)
        if len(active) >= specialist.max_concurrent_sessions:
            await self._session.rollback()
            raise ConflictError(message="No free session slots")

        old = ChatSessionRead.model_validate(chat_session).model_dump(mode="json")
        claimed = await self._chat_repo.claim_session(session_id, specialist.id)
        if not claimed:
            await self._session.rollback()
            logger.info(
                "Claim lost", session_id=session_id, specialist_id=specialist.id
            )
            raise ConflictError(message="Session was claimed by another specialist")

        await self._session.commit()
        snapshot = ChatSessionRead.model_validate(
            await self._chat_repo.reload_session(chat_session)
        )
        logger.info(
            "Chat session claimed", session_id=session_id, specialist_id=specialist.id
        )
        await self._notify(
            SESSIONS_TABLE, "UPDATE", snapshot.model_dump(mode="json"), old
        )
        return snapshot

    async def list_waiting_sessions(
        self, specialist_user_id: int
    ) -> list[ChatSessionRead]:
        """Unassigned waiting sessions, oldest first."""
        await self._require_specialist(specialist_user_id)
        rows = await self._chat_repo.find_waiting_sessions()
        return [ChatSessionRead.model_validate(row) for row in rows]

    async def list_my_sessions(self, specialist_user_id: int) -> list[ChatSessionRead]:
        """The calling specialist's active sessions."""
        specialist = await self._require_specialist(specialist_user_id)
        rows = await self._chat_repo.find_active_sessions_for_specialist(specialist.id)
        return [ChatSessionRead.model_validate(row) for row in rows]

    # --- Shared ---

    async def get_session(
        self, session_id: int, actor_id: int, role: str
    ) -> ChatSessionRead:
        """Fetch a session the caller may see."""
        chat_session = await self._get_or_404(session_id)
        await self._check_can_view(chat_session, actor_id, role)
        return ChatSessionRead.model_validate(chat_session)

    async def list_messages(
        self, session_id: int, actor_id: int, role: str
    ) -> list[ChatMessageRead]:
        """Full history of a session in store order."""
        chat_session = await self._get_or_404(session_id)
        await self._check_can_view(chat_session, actor_id, role)
        rows = await self._chat_repo.find_messages_by_session_id(session_id)
        return [ChatMessageRead.model_validate(row) for row in rows]

    async def send_message(
        self,
        session_id: int,
        sender_id: int,
        request: SendMessageRequest,
    ) -> ChatMessageRead:
        """Append a message; a repeated ``client_ref`` returns the first write."""
        content = request.content.strip()
        if not content:
            raise ValidationError(message="Message content must not be empty")
        if len(content) > settings.chat.max_message_length:
            raise ValidationError(message="Message content is too long")

        chat_session = await self._get_or_404(session_id)
        sender_type = await self._resolve_sender(chat_session, sender_id)

        # A retried write answers with the first copy, even once the session
        # has ended.
        if request.client_ref:
            existing = await self._chat_repo.find_message_by_client_ref(
                session_id, request.client_ref
            )
            if existing is not None:
                return ChatMessageRead.model_validate(existing)

        if chat_session.status == "ended":
            raise ConflictError(message="Session has ended")

        try:
            message = await self._chat_repo.create_message(
                session_id=session_id,
                sender_id=sender_id,
                sender_type=sender_type,
                content=content,
                message_type=request.message_type,
                metadata=request.metadata,
                client_ref=request.client_ref,
            )
        except IntegrityError:
            await self._session.rollback()
            if not request.client_ref:
                raise
            existing = await self._chat_repo.find_message_by_client_ref(
                session_id, request.client_ref
            )
            if existing is None:
                raise
            logger.info(
                "Concurrent retry deduplicated",
                session_id=session_id,
                message_id=existing.id,
            )
            return ChatMessageRead.model_validate(existing)

        await self._chat_repo.touch_session(session_id, message.created_at)
        await self._session.commit()

        snapshot = ChatMessageRead.model_validate(message)
        logger.info(
            "Message sent",
            session_id=session_id,
            message_id=snapshot.id,
            sender_type=sender_type,
        )
        await self._notify(MESSAGES_TABLE, "INSERT", snapshot.model_dump(mode="json"))
        return snapshot

    async def mark_read(self, session_id: int, reader_id: int, role: str) -> int:
        """Mark the other participants' messages as read."""
        chat_session = await self._get_or_404(session_id)
        await self._check_can_view(chat_session, reader_id, role)
        updated = await self._chat_repo.mark_messages_read(session_id, reader_id)
        await self._session.commit()
        return updated

    async def end_session(
        self,
        session_id: int,
        actor_id: int,
        role: str,
        reason: str = "manual",
    ) -> ChatSessionRead:
        """End an active session; ending an ended session is a no-op."""
        chat_session = await self._get_or_404(session_id)
        await self._check_is_participant(chat_session, actor_id, role)

        if chat_session.status == "ended":
            return ChatSessionRead.model_validate(chat_session)
        if chat_session.status == "waiting":
            raise ConflictError(message="A waiting session cannot be ended")

        old = ChatSessionRead.model_validate(chat_session).model_dump(mode="json")
        ended = await self._chat_repo.end_session(session_id, reason)
        await self._session.commit()
        chat_session = await self._chat_repo.reload_session(chat_session)
        snapshot = ChatSessionRead.model_validate(chat_session)
        if not ended:
            # Someone else ended it between our read and write.
            return snapshot

        logger.info("Chat session ended", session_id=session_id, reason=reason)
        await self._notify(
            SESSIONS_TABLE, "UPDATE", snapshot.model_dump(mode="json"), old
        )
        return snapshot

    async def end_idle_sessions(self, cutoff: datetime) -> list[int]:
        """End active sessions with no activity since ``cutoff``."""
        candidates = await self._chat_repo.find_idle_active_session_ids(cutoff)
        ended_ids = [
            session_id
            for session_id in candidates
            if await self._chat_repo.end_session(
                session_id, "inactivity_timeout", idle_before=cutoff
            )
        ]
        await self._session.commit()

        for session_id in ended_ids:
            chat_session = await self._chat_repo.find_session_by_id(session_id)
            if chat_session is None:
                continue
            chat_session = await self._chat_repo.reload_session(chat_session)
            await self._notify(
                SESSIONS_TABLE,
                "UPDATE",
                ChatSessionRead.model_validate(chat_session).model_dump(mode="json"),
            )
        if ended_ids:
            logger.info("Idle sessions ended", count=len(ended_ids))
        return ended_ids

    # --- Helpers ---

    async def _get_or_404(self, session_id: int) -> ChatSession:
        chat_session = await self._chat_repo.find_session_by_id(session_id)
        if chat_session is None:
            raise SessionNotFoundError()
        return chat_session

    async def _require_specialist(self, user_id: int) -> PeerSpecialist:
        specialist = await self._specialist_repo.find_by_user_id(user_id)
        if specialist is None or not specialist.is_active:
            raise AuthorizationError(message="Only active specialists can do this")
        return specialist

    async def _resolve_sender(self, chat_session: ChatSession, sender_id: int) -> SenderType:
        if chat_session.user_id == sender_id:
            return "user"
        specialist = await self._specialist_repo.find_by_user_id(sender_id)
        if specialist is None:
            raise AuthorizationError(message="Not a participant of this session")
        if chat_session.specialist_id is None:
            raise ConflictError(message="Session must be claimed before replying")
        if chat_session.specialist_id != specialist.id:
            raise AuthorizationError(message="Not a participant of this session")
        return "specialist"

    async def _check_is_participant(
        self, chat_session: ChatSession, actor_id: int, role: str
    ) -> None:
        if role == "admin" or chat_session.user_id == actor_id:
            return
        specialist = await self._specialist_repo.find_by_user_id(actor_id)
        if specialist is not None and chat_session.specialist_id == specialist.id:
            return
        raise AuthorizationError(message="Not a participant of this session")

    async def _check_can_view(
        self, chat_session: ChatSession, actor_id: int, role: str
    ) -> None:
        # Specialists may preview any unclaimed waiting session.
        if chat_session.status == "waiting" and chat_session.specialist_id is None:
            specialist = await self._specialist_repo.find_by_user_id(actor_id)
            if specialist is not None and specialist.is_active:
                return
        await self._check_is_participant(chat_session, actor_id, role)

    async def _notify(
        self,
        table: str,
        event_type: EventType,
        new: dict[str, Any] | None,
        old: dict[str, Any] | None = None,
    ) -> None:
        if self._feed is None:
            return
        try:
            await self._feed.publish(table, event_type, new=new, old=old)
        except RedisError as exc:
            # The row is committed; subscribers converge on their next refetch.
            logger.warning(
                "Change event not published",
                table=table,
                event_type=event_type,
                error=str(exc),
            )
