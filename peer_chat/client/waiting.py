"""Live list of sessions waiting for a specialist."""

from datetime import timedelta

import structlog

from peer_chat.client.connection_monitor import ConnectionMonitor
from peer_chat.client.store import SessionStore
from peer_chat.core.clock import as_utc, utcnow
from peer_chat.core.config import settings
from peer_chat.core.exceptions import AppException
from peer_chat.schemas.chat_schema import ChatSessionRead
from peer_chat.schemas.realtime_schema import ChangeEvent, SubscriptionStatus
from peer_chat.services.realtime_feed import RealtimeFeed, Subscription

logger = structlog.get_logger()


class WaitingSessionBoard:
    """Refetches the waiting queue whenever a session row is inserted or updated."""

    def __init__(self, store: SessionStore, feed: RealtimeFeed | None = None) -> None:
        self._store = store
        self._feed = feed
        self.sessions: list[ChatSessionRead] = []
        self.error: AppException | None = None
        self.monitor = ConnectionMonitor(reconnect=self._resubscribe)
        self._subscription: Subscription | None = None
        self._generation = 0

    @property
    def stale_session_ids(self) -> list[int]:
        """Waiting sessions older than the stale threshold."""
        cutoff = utcnow() - timedelta(seconds=settings.chat.stale_waiting_seconds)
        return [s.id for s in self.sessions if as_utc(s.started_at) < cutoff]

    async def start(self) -> list[ChatSessionRead]:
        await self.refresh()
        await self._subscribe()
        return self.sessions

    async def refresh(self) -> list[ChatSessionRead]:
        try:
            self.sessions = await self._store.list_waiting_sessions()
            self.error = None
        except AppException as exc:
            self.error = exc
            logger.warning("Waiting list refresh failed", error=exc.message)
        return self.sessions

    async def stop(self) -> None:
        self._generation += 1
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.unsubscribe()

    async def _subscribe(self) -> None:
        if self._feed is None:
            return
        generation = self._generation

        async def on_status(status: SubscriptionStatus, error: str | None) -> None:
            # Ignore the CLOSED from a subscription we dropped ourselves.
            if generation != self._generation:
                return
            if self.monitor.handle_subscription_status(status, error):
                await self.refresh()

        self._subscription = await self._feed.subscribe(
            "chat_sessions",
            self._on_change,
            event_types=("INSERT", "UPDATE"),
            on_status=on_status,
        )

    async def _resubscribe(self) -> None:
        await self.stop()
        await self._subscribe()

    async def _on_change(self, event: ChangeEvent) -> None:
        await self.refresh()
