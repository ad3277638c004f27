"""Chat session controllers driving one chat view.

A controller owns the view's session snapshot, its optimistic message
list, and the realtime subscriptions that keep both current. Every failure
is recorded on ``error`` and the controller stays usable afterwards.
"""

from collections.abc import Awaitable
from datetime import timedelta
from typing import TypeVar

import pydantic
import structlog

from peer_chat.client.connection_monitor import ConnectionMonitor, ConnectionStatus
from peer_chat.client.message_list import (
    ChatEntry,
    ConfirmedMessage,
    FailedMessage,
    MessageList,
    PendingMessage,
)
from peer_chat.client.store import SessionStore
from peer_chat.core.clock import as_utc, utcnow
from peer_chat.core.config import settings
from peer_chat.core.exceptions import (
    AppException,
    ConflictError,
    TransientNetworkError,
    ValidationError,
)
from peer_chat.schemas.chat_schema import (
    ChatMessageRead,
    ChatSessionRead,
    SendMessageRequest,
)
from peer_chat.schemas.realtime_schema import ChangeEvent, SubscriptionStatus
from peer_chat.services.realtime_feed import RealtimeFeed, Subscription

logger = structlog.get_logger()

T = TypeVar("T")

STATUS_RANK = {"waiting": 0, "active": 1, "ended": 2}


class ChatSessionController:
    """State and operations shared by help-seeker and specialist views."""

    def __init__(self, store: SessionStore, feed: RealtimeFeed | None = None) -> None:
        self._store = store
        self._feed = feed
        self.session: ChatSessionRead | None = None
        self.messages = MessageList()
        self.error: AppException | None = None
        self.loading = False
        self.monitor = ConnectionMonitor(reconnect=self._resubscribe)
        self._subscriptions: list[Subscription] = []
        self._generation = 0
        self._closed = False

    @property
    def connection_status(self) -> ConnectionStatus:
        return self.monitor.status

    @property
    def is_session_stale(self) -> bool:
        """Waiting longer than the configured threshold without a specialist."""
        if self.session is None or self.session.status != "waiting":
            return False
        age = utcnow() - as_utc(self.session.started_at)
        return age > timedelta(seconds=settings.chat.stale_waiting_seconds)

    async def open(self, session_id: int) -> ChatSessionRead:
        """Load an existing session with its history and start listening."""
        session = await self._call(self._store.get_session(session_id))
        await self._adopt(session)
        return session

    async def refresh_session(self) -> ChatSessionRead | None:
        """Refetch the session and its full history from the store."""
        if self.session is None:
            return None
        session_id = self.session.id
        session = await self._call(self._store.get_session(session_id))
        messages = await self._call(self._store.list_messages(session_id))
        if self._closed:
            return session
        self.session = session
        self.messages.replace_all(messages)
        return session

    async def send_message(self, request: SendMessageRequest | str) -> ChatEntry:
        """Show the message immediately, then persist it.

        A transient failure leaves a ``FailedMessage`` that ``retry_message``
        can resend; any other failure is also raised.
        """
        self.error = None
        if isinstance(request, str):
            try:
                request = SendMessageRequest(content=request)
            except pydantic.ValidationError as exc:
                raise self._record(
                    ValidationError(message=exc.errors()[0]["msg"])
                ) from None
        if not request.content.strip():
            raise self._record(ValidationError(message="Message content must not be empty"))
        if self.session is None:
            raise self._record(ValidationError(message="No session to send to"))
        if self.session.status == "ended":
            raise self._record(ConflictError(message="Session has ended"))

        await self._before_send()
        pending = self.messages.add_pending(self.session.id, request)
        return await self._persist(pending)

    async def retry_message(self, temp_id: str) -> ChatEntry:
        """Resend a failed entry; the server drops duplicates by temp id."""
        self.error = None
        try:
            pending = self.messages.retry(temp_id)
        except KeyError:
            raise self._record(
                ValidationError(message="No failed message with that id")
            ) from None
        return await self._persist(pending)

    async def end_session(self, reason: str = "manual") -> ChatSessionRead | None:
        """End the session. Ending an ended session does nothing."""
        if self.session is None:
            return None
        if self.session.status == "ended":
            return self.session
        session = await self._call(self._store.end_session(self.session.id, reason))
        self._apply_session(session)
        return self.session

    async def force_reconnect(self) -> None:
        """Tear down and re-establish the realtime subscriptions."""
        await self.monitor.reconnect()

    async def close(self) -> None:
        """Unsubscribe; in-flight writes still finish but are not applied."""
        self._closed = True
        await self._drop_subscriptions()

    # --- Internals ---

    async def _before_send(self) -> None:
        return None

    async def _persist(self, pending: PendingMessage) -> ChatEntry:
        try:
            message = await self._store.send_message(
                pending.session_id, pending.to_request()
            )
        except TransientNetworkError as exc:
            self.error = exc
            failed = self.messages.mark_failed(pending.temp_id, exc.message)
            logger.warning(
                "Message send failed", session_id=pending.session_id, error=exc.message
            )
            return failed or FailedMessage(
                temp_id=pending.temp_id,
                session_id=pending.session_id,
                content=pending.content,
                error=exc.message,
            )
        except AppException as exc:
            self.messages.mark_failed(pending.temp_id, exc.message)
            self.error = exc
            raise

        if self._closed:
            return ConfirmedMessage(message=message)
        return self.messages.confirm(message)

    async def _adopt(self, session: ChatSessionRead) -> None:
        """Make ``session`` the current one and listen to its rows."""
        changed = self.session is None or self.session.id != session.id
        self.session = session
        if changed:
            self.messages.clear()
            await self._drop_subscriptions()
        messages = await self._call(self._store.list_messages(session.id))
        self.messages.replace_all(messages)
        if changed:
            await self._subscribe()

    async def _call(self, operation: Awaitable[T]) -> T:
        self.error = None
        self.loading = True
        try:
            return await operation
        except AppException as exc:
            self.error = exc
            raise
        finally:
            self.loading = False

    def _record(self, exc: AppException) -> AppException:
        self.error = exc
        return exc

    def _apply_session(self, session: ChatSessionRead) -> None:
        """Take a newer snapshot; a status never moves backwards."""
        if self.session is not None and self.session.id != session.id:
            return
        if (
            self.session is not None
            and STATUS_RANK[session.status] < STATUS_RANK[self.session.status]
        ):
            return
        self.session = session

    async def _subscribe(self) -> None:
        if self._feed is None or self.session is None or self._closed:
            return
        generation = self._generation
        session_id = self.session.id

        async def on_status(status: SubscriptionStatus, error: str | None) -> None:
            if generation != self._generation or self._closed:
                return
            if self.monitor.handle_subscription_status(status, error):
                try:
                    await self.refresh_session()
                except AppException as exc:
                    logger.warning("Resync after reconnect failed", error=exc.message)

        async def on_message(event: ChangeEvent) -> None:
            if generation != self._generation or self._closed or event.new is None:
                return
            self.messages.confirm(ChatMessageRead.model_validate(event.new))

        async def on_session(event: ChangeEvent) -> None:
            if generation != self._generation or self._closed or event.new is None:
                return
            self._apply_session(ChatSessionRead.model_validate(event.new))

        self._subscriptions = [
            await self._feed.subscribe(
                "chat_messages",
                on_message,
                row_filter=f"session_id=eq.{session_id}",
                event_types=("INSERT",),
                on_status=on_status,
            ),
            await self._feed.subscribe(
                "chat_sessions",
                on_session,
                row_filter=f"id=eq.{session_id}",
                event_types=("UPDATE",),
                on_status=on_status,
            ),
        ]

    async def _drop_subscriptions(self) -> None:
        self._generation += 1
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            await subscription.unsubscribe()

    async def _resubscribe(self) -> None:
        await self._drop_subscriptions()
        await self._subscribe()


class UserChatController(ChatSessionController):
    """Help-seeker view: starts or resumes their own session."""

    async def start_session(self, force_new: bool = False) -> ChatSessionRead:
        """Resume the open session, or queue a new waiting one."""
        result = await self._call(self._store.start_session(force_new=force_new))
        await self._adopt(result.session)
        logger.info(
            "Session ready", session_id=result.session.id, created=result.created
        )
        return result.session


class SpecialistChatController(ChatSessionController):
    """Specialist view: claims waiting sessions and replies."""

    async def claim_session(self) -> ChatSessionRead:
        """Claim the current session; a lost race refreshes and re-raises."""
        if self.session is None:
            raise self._record(ValidationError(message="No session to claim"))
        try:
            session = await self._call(self._store.claim_session(self.session.id))
        except ConflictError as exc:
            try:
                await self.refresh_session()
            except AppException as refresh_exc:
                logger.warning("Refresh after lost claim failed", error=refresh_exc.message)
            self.error = exc
            raise
        self._apply_session(session)
        return session

    async def _before_send(self) -> None:
        # Replying to a waiting session claims it first.
        if (
            self.session is not None
            and self.session.status == "waiting"
            and self.session.specialist_id is None
        ):
            await self.claim_session()
