"""Session store adapters used by the client controllers.

A store is bound to one caller. Infrastructure failures surface as
``TransientNetworkError``; domain failures keep their own exception types.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from peer_chat.core.database import async_session_factory
from peer_chat.core.exceptions import TransientNetworkError
from peer_chat.repositories.chat_repo import ChatRepository
from peer_chat.repositories.specialist_repo import SpecialistRepository
from peer_chat.schemas.chat_schema import (
    ChatMessageRead,
    ChatSessionRead,
    SendMessageRequest,
    StartSessionResponse,
)
from peer_chat.services.chat_session_service import ChatSessionService
from peer_chat.services.realtime_feed import RealtimeFeed


class SessionStore(Protocol):
    """Operations a chat view needs from the backend."""

    async def start_session(self, force_new: bool = False) -> StartSessionResponse: ...

    async def get_session(self, session_id: int) -> ChatSessionRead: ...

    async def list_messages(self, session_id: int) -> list[ChatMessageRead]: ...

    async def claim_session(self, session_id: int) -> ChatSessionRead: ...

    async def end_session(
        self, session_id: int, reason: str = "manual"
    ) -> ChatSessionRead: ...

    async def send_message(
        self, session_id: int, request: SendMessageRequest
    ) -> ChatMessageRead: ...

    async def list_waiting_sessions(self) -> list[ChatSessionRead]: ...


class DatabaseSessionStore:
    """In-process store: one database unit of work per call."""

    def __init__(
        self,
        actor_id: int,
        role: str,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        feed: RealtimeFeed | None = None,
    ) -> None:
        self._actor_id = actor_id
        self._role = role
        self._session_factory = session_factory
        self._feed = feed

    @asynccontextmanager
    async def _service(self) -> AsyncIterator[ChatSessionService]:
        try:
            async with self._session_factory() as session:
                yield ChatSessionService(
                    chat_repo=ChatRepository(session),
                    specialist_repo=SpecialistRepository(session),
                    session=session,
                    feed=self._feed,
                )
        except (SQLAlchemyError, RedisError, OSError) as exc:
            raise TransientNetworkError(f"Session store unavailable: {exc}") from exc

    async def start_session(self, force_new: bool = False) -> StartSessionResponse:
        async with self._service() as service:
            return await service.start_session(self._actor_id, force_new=force_new)

    async def get_session(self, session_id: int) -> ChatSessionRead:
        async with self._service() as service:
            return await service.get_session(session_id, self._actor_id, self._role)

    async def list_messages(self, session_id: int) -> list[ChatMessageRead]:
        async with self._service() as service:
            return await service.list_messages(session_id, self._actor_id, self._role)

    async def claim_session(self, session_id: int) -> ChatSessionRead:
        async with self._service() as service:
            return await service.claim_session(session_id, self._actor_id)

    async def end_session(
        self, session_id: int, reason: str = "manual"
    ) -> ChatSessionRead:
        async with self._service() as service:
            return await service.end_session(
                session_id, self._actor_id, self._role, reason=reason
            )

    async def send_message(
        self, session_id: int, request: SendMessageRequest
    ) -> ChatMessageRead:
        async with self._service() as service:
            return await service.send_message(session_id, self._actor_id, request)

    async def list_waiting_sessions(self) -> list[ChatSessionRead]:
        async with self._service() as service:
            return await service.list_waiting_sessions(self._actor_id)
