"""Tests for the realtime connection state machine."""

from unittest.mock import AsyncMock

from peer_chat.client.connection_monitor import (
    ConnectionMonitor,
    ConnectionState,
    ConnectionStatus,
)
from peer_chat.core.exceptions import TransientNetworkError
from peer_chat.schemas.realtime_schema import SubscriptionStatus


class TestTransitions:
    """Feed statuses drive the monitor."""

    def test_starts_connecting(self) -> None:
        monitor = ConnectionMonitor()
        assert monitor.status == ConnectionStatus(ConnectionState.CONNECTING)
        assert monitor.is_connected is False

    def test_first_subscribe_is_not_a_recovery(self) -> None:
        monitor = ConnectionMonitor()
        assert monitor.handle_subscription_status(SubscriptionStatus.SUBSCRIBED) is False
        assert monitor.is_connected is True

    def test_errors_carry_a_message(self) -> None:
        monitor = ConnectionMonitor()
        monitor.handle_subscription_status(SubscriptionStatus.TIMED_OUT)
        assert monitor.status.state == ConnectionState.ERROR
        assert monitor.status.error == "Subscription timed out"

    def test_recovery_after_drop(self) -> None:
        monitor = ConnectionMonitor()
        monitor.handle_subscription_status(SubscriptionStatus.SUBSCRIBED)
        monitor.handle_subscription_status(SubscriptionStatus.CHANNEL_ERROR, "reset")

        assert monitor.status == ConnectionStatus(ConnectionState.ERROR, "reset")
        assert monitor.handle_subscription_status(SubscriptionStatus.SUBSCRIBED) is True
        assert monitor.is_connected is True

    def test_closed_while_connected(self) -> None:
        monitor = ConnectionMonitor()
        monitor.handle_subscription_status(SubscriptionStatus.SUBSCRIBED)
        monitor.handle_subscription_status(SubscriptionStatus.CLOSED)
        assert monitor.status.state == ConnectionState.DISCONNECTED

    def test_invalid_transition_ignored(self) -> None:
        monitor = ConnectionMonitor()
        monitor.mark_offline()
        # disconnected only leaves through connecting
        monitor.handle_subscription_status(SubscriptionStatus.CHANNEL_ERROR)
        assert monitor.status.state == ConnectionState.DISCONNECTED

    def test_listeners(self) -> None:
        monitor = ConnectionMonitor()
        seen: list[ConnectionState] = []
        remove = monitor.add_listener(lambda status: seen.append(status.state))

        monitor.handle_subscription_status(SubscriptionStatus.SUBSCRIBED)
        remove()
        monitor.mark_offline()

        assert seen == [ConnectionState.CONNECTED]


class TestReconnect:
    """Reconnect is manual and reports its own failure."""

    async def test_reconnect_runs_action(self) -> None:
        action = AsyncMock()
        monitor = ConnectionMonitor(reconnect=action)
        monitor.handle_subscription_status(SubscriptionStatus.SUBSCRIBED)

        await monitor.reconnect()

        action.assert_awaited_once()
        assert monitor.status.state == ConnectionState.CONNECTING
        assert monitor.handle_subscription_status(SubscriptionStatus.SUBSCRIBED) is True

    async def test_reconnect_failure(self) -> None:
        action = AsyncMock(side_effect=TransientNetworkError("down"))
        monitor = ConnectionMonitor(reconnect=action)
        monitor.mark_offline()

        await monitor.reconnect()

        assert monitor.status == ConnectionStatus(ConnectionState.ERROR, "down")
