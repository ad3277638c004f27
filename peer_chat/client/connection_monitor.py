"""Connection state machine for a chat view's realtime subscription."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

import structlog

from peer_chat.core.exceptions import AppException
from peer_chat.schemas.realtime_schema import SubscriptionStatus

logger = structlog.get_logger()


class ConnectionState(StrEnum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass(frozen=True)
class ConnectionStatus:
    state: ConnectionState
    error: str | None = None

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED


ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.CONNECTING: frozenset(
        {
            ConnectionState.CONNECTED,
            ConnectionState.ERROR,
            ConnectionState.DISCONNECTED,
        }
    ),
    ConnectionState.CONNECTED: frozenset(
        {ConnectionState.DISCONNECTED, ConnectionState.ERROR}
    ),
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.ERROR: frozenset({ConnectionState.CONNECTING}),
}

Listener = Callable[[ConnectionStatus], None]


class ConnectionMonitor:
    """Tracks subscription health; never retries on its own.

    Starts in ``connecting``. Feed statuses move it forward; ``reconnect()``
    is the only way out of ``disconnected`` or ``error`` besides the feed
    reporting that it recovered by itself.
    """

    def __init__(self, reconnect: Callable[[], Awaitable[None]] | None = None) -> None:
        self._reconnect = reconnect
        self._status = ConnectionStatus(ConnectionState.CONNECTING)
        self._listeners: list[Listener] = []
        self._dropped = False

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status.is_connected

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def handle_subscription_status(
        self, status: SubscriptionStatus, error: str | None = None
    ) -> bool:
        """Apply a feed status; True when the link came back after a drop."""
        match status:
            case SubscriptionStatus.SUBSCRIBED:
                if self._status.state in (
                    ConnectionState.DISCONNECTED,
                    ConnectionState.ERROR,
                ):
                    self._transition(ConnectionState.CONNECTING)
                if not self._transition(ConnectionState.CONNECTED):
                    return False
                recovered, self._dropped = self._dropped, False
                return recovered
            case SubscriptionStatus.CHANNEL_ERROR:
                self._transition(ConnectionState.ERROR, error or "Channel error")
            case SubscriptionStatus.TIMED_OUT:
                self._transition(ConnectionState.ERROR, error or "Subscription timed out")
            case SubscriptionStatus.CLOSED:
                self._transition(ConnectionState.DISCONNECTED, error)
        return False

    def mark_offline(self, reason: str = "offline") -> None:
        self._transition(ConnectionState.DISCONNECTED, reason)

    async def reconnect(self) -> None:
        """Move to ``connecting`` and run the injected reconnect action."""
        if self._status.state == ConnectionState.CONNECTED:
            self._transition(ConnectionState.DISCONNECTED)
        self._transition(ConnectionState.CONNECTING)
        if self._reconnect is None:
            return
        try:
            await self._reconnect()
        except AppException as exc:
            logger.warning("Reconnect failed", error=exc.message)
            self._transition(ConnectionState.ERROR, exc.message)

    def _transition(self, state: ConnectionState, error: str | None = None) -> bool:
        current = self._status.state
        if state not in ALLOWED_TRANSITIONS[current]:
            if state != current:
                logger.debug(
                    "Ignoring connection transition", current=str(current), target=str(state)
                )
            return False
        if state in (ConnectionState.DISCONNECTED, ConnectionState.ERROR):
            self._dropped = True
        self._status = ConnectionStatus(state=state, error=error)
        for listener in list(self._listeners):
            listener(self._status)
        return True
