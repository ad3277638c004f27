"""Chat repository for session and message database operations."""

from datetime import datetime
from typing import Any

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from peer_chat.core.clock import utcnow
from peer_chat.models.chat_message import ChatMessage
from peer_chat.models.chat_session import ChatSession


class ChatRepository:
    """Encapsulates chat session and message database queries.

    Status transitions are written as conditional updates so that the row
    itself arbitrates concurrent callers: the caller learns whether it won
    from the affected row count, never from a prior read.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # --- Sessions ---

    async def find_session_by_id(self, session_id: int) -> ChatSession | None:
        """Find a chat session by primary key."""
        result = await self._session.execute(
            select(ChatSession).where(ChatSession.id == session_id)
        )
        return result.scalar_one_or_none()

    async def find_open_session_for_user(self, user_id: int) -> ChatSession | None:
        """Most recent non-ended session for a user, active ones first."""
        active_first = case((ChatSession.status == "active", 0), else_=1)
        result = await self._session.execute(
            select(ChatSession)
            .where(
                and_(
                    ChatSession.user_id == user_id,
                    ChatSession.status != "ended",
                )
            )
            .order_by(active_first, ChatSession.started_at.desc(), ChatSession.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def next_session_number(self) -> int:
        """Next display ordinal for a new session."""
        result = await self._session.execute(
            select(func.coalesce(func.max(ChatSession.session_number), 0))
        )
        return int(result.scalar_one()) + 1

    async def create_session(self, user_id: int) -> ChatSession:
        """Create a new session in ``waiting`` status.

        Raises ``IntegrityError`` at flush when the user already has an open
        session or a concurrent insert took the same session number.
        """
        now = utcnow()
        session = ChatSession(
            user_id=user_id,
            open_user_id=user_id,
            status="waiting",
            session_number=await self.next_session_number(),
            started_at=now,
            last_activity=now,
        )
        self._session.add(session)
        await self._session.flush()
        await self._session.refresh(session)
        return session

    async def claim_session(self, session_id: int, specialist_id: int) -> bool:
        """Atomically move a waiting, unassigned session to active.

        Returns False when another specialist got there first or the session
        is no longer waiting.
        """
        now = utcnow()
        result = await self._session.execute(
            update(ChatSession)
            .where(
                and_(
                    ChatSession.id == session_id,
                    ChatSession.status == "waiting",
                    ChatSession.specialist_id.is_(None),
                )
            )
            .values(
                status="active",
                specialist_id=specialist_id,
                claimed_at=now,
                last_activity=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def end_session(
        self,
        session_id: int,
        reason: str,
        idle_before: datetime | None = None,
    ) -> bool:
        """Atomically move an active session to ended.

        ``idle_before`` restricts the update to sessions whose last activity
        is older than the cutoff, so a message racing the idle sweep wins.
        """
        conditions = [ChatSession.id == session_id, ChatSession.status == "active"]
        if idle_before is not None:
            conditions.append(ChatSession.last_activity < idle_before)
        result = await self._session.execute(
            update(ChatSession)
            .where(and_(*conditions))
            .values(
                status="ended",
                ended_at=utcnow(),
                end_reason=reason,
                open_user_id=None,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def end_waiting_sessions_for_user(self, user_id: int, reason: str) -> list[int]:
        """End a user's unclaimed waiting sessions; returns the ids ended here."""
        result = await self._session.execute(
            select(ChatSession.id).where(
                and_(
                    ChatSession.user_id == user_id,
                    ChatSession.status == "waiting",
                )
            )
        )
        ended: list[int] = []
        for session_id in result.scalars().all():
            # A claim landing in between wins; that session is left alone.
            changed = await self._session.execute(
                update(ChatSession)
                .where(
                    and_(
                        ChatSession.id == session_id,
                        ChatSession.status == "waiting",
                        ChatSession.specialist_id.is_(None),
                    )
                )
                .values(
                    status="ended",
                    ended_at=utcnow(),
                    end_reason=reason,
                    open_user_id=None,
                )
                .execution_options(synchronize_session=False)
            )
            if changed.rowcount == 1:
                ended.append(session_id)
        return ended

    async def touch_session(self, session_id: int, at: datetime) -> None:
        """Advance ``last_activity``; never moves it backwards."""
        await self._session.execute(
            update(ChatSession)
            .where(
                and_(
                    ChatSession.id == session_id,
                    ChatSession.last_activity < at,
                )
            )
            .values(last_activity=at)
            .execution_options(synchronize_session=False)
        )

    async def find_waiting_sessions(self) -> list[ChatSession]:
        """Unassigned waiting sessions, oldest first."""
        result = await self._session.execute(
            select(ChatSession)
            .where(
                and_(
                    ChatSession.status == "waiting",
                    ChatSession.specialist_id.is_(None),
                )
            )
            .order_by(ChatSession.started_at.asc(), ChatSession.id.asc())
        )
        return list(result.scalars().all())

    async def find_active_sessions_for_specialist(
        self, specialist_id: int
    ) -> list[ChatSession]:
        """A specialist's active sessions ordered by session number."""
        result = await self._session.execute(
            select(ChatSession)
            .where(
                and_(
                    ChatSession.specialist_id == specialist_id,
                    ChatSession.status == "active",
                )
            )
            .order_by(ChatSession.session_number.asc())
        )
        return list(result.scalars().all())

    async def find_idle_active_session_ids(self, cutoff: datetime) -> list[int]:
        """Ids of active sessions with no activity since ``cutoff``."""
        result = await self._session.execute(
            select(ChatSession.id).where(
                and_(
                    ChatSession.status == "active",
                    ChatSession.last_activity < cutoff,
                )
            )
        )
        return list(result.scalars().all())

    async def reload_session(self, session: ChatSession) -> ChatSession:
        """Refresh an instance after a bulk conditional update."""
        await self._session.refresh(session)
        return session

    # --- Messages ---

    async def create_message(
        self,
        session_id: int,
        sender_id: int,
        sender_type: str,
        content: str,
        message_type: str = "text",
        metadata: dict[str, Any] | None = None,
        client_ref: str | None = None,
    ) -> ChatMessage:
        """Insert a single chat message."""
        message = ChatMessage(
            session_id=session_id,
            sender_id=sender_id,
            sender_type=sender_type,
            message_type=message_type,
            content=content,
            metadata_json=metadata,
            client_ref=client_ref,
            created_at=utcnow(),
        )
        self._session.add(message)
        await self._session.flush()
        await self._session.refresh(message)
        return message

    async def find_messages_by_session_id(self, session_id: int) -> list[ChatMessage]:
        """All messages for a session ordered by creation time, then id."""
        result = await self._session.execute(
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        )
        return list(result.scalars().all())

    async def find_message_by_client_ref(
        self, session_id: int, client_ref: str
    ) -> ChatMessage | None:
        """Find a message previously written with the given client reference."""
        result = await self._session.execute(
            select(ChatMessage).where(
                and_(
                    ChatMessage.session_id == session_id,
                    ChatMessage.client_ref == client_ref,
                )
            )
        )
        return result.scalars().first()

    async def mark_messages_read(self, session_id: int, reader_id: int) -> int:
        """Mark messages from other participants as read; returns rows changed."""
        result = await self._session.execute(
            update(ChatMessage)
            .where(
                and_(
                    ChatMessage.session_id == session_id,
                    ChatMessage.sender_id != reader_id,
                    ChatMessage.is_read.is_(False),
                )
            )
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)
