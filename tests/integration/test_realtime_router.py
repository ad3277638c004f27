"""Tests for the realtime WebSocket bridge."""

import json
from typing import Any

import fakeredis.aioredis
import pytest
from fastapi import WebSocketDisconnect

from peer_chat.api.v1 import realtime_router
from peer_chat.api.v1.realtime_router import SocketBridge, authenticate_socket, can_subscribe
from peer_chat.dependencies import CurrentUser
from peer_chat.models.chat_session import ChatSession
from peer_chat.services.realtime_feed import RealtimeFeed, RowFilter
from peer_chat.services.token_service import TokenService
from tests.conftest import wait_until


class FakeWebSocket:
    """Collects frames sent through the bridge."""

    def __init__(self, closed: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = closed

    async def send_json(self, payload: dict[str, Any]) -> None:
        if self.closed:
            raise WebSocketDisconnect()
        self.sent.append(payload)

    def of_type(self, frame_type: str) -> list[dict[str, Any]]:
        return [frame for frame in self.sent if frame["type"] == frame_type]


@pytest.fixture(autouse=True)
def patch_socket_db(session_factory, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(realtime_router, "async_session_factory", session_factory)


async def _owned_session(session_factory, user_id: int) -> int:
    async with session_factory() as session:
        chat_session = ChatSession(user_id=user_id, status="waiting", session_number=1)
        session.add(chat_session)
        await session.commit()
        return chat_session.id


class TestAuthenticateSocket:
    async def test_valid_token(self, fake_redis: fakeredis.aioredis.FakeRedis) -> None:
        token = TokenService(fake_redis).create_access_token(
            user_id=5, email="ws@test.com", role="user"
        )
        user = await authenticate_socket(token)
        assert user == CurrentUser(id=5, email="ws@test.com", role="user")

    async def test_missing_or_garbage(self) -> None:
        assert await authenticate_socket(None) is None
        assert await authenticate_socket("not-a-token") is None

    async def test_blacklisted(self, fake_redis: fakeredis.aioredis.FakeRedis) -> None:
        ts = TokenService(fake_redis)
        token = ts.create_access_token(user_id=5, email="ws@test.com", role="user")
        payload = ts.decode_token(token)
        await ts.blacklist_token(payload.jti, payload.exp)
        assert await authenticate_socket(token) is None


class TestCanSubscribe:
    async def test_specialists_see_everything(self) -> None:
        peer = CurrentUser(id=2, email="p@test.com", role="specialist")
        assert await can_subscribe(peer, "chat_sessions", None)

    async def test_user_needs_a_filter(self) -> None:
        user = CurrentUser(id=1, email="u@test.com", role="user")
        assert not await can_subscribe(user, "chat_messages", None)
        assert await can_subscribe(user, "peer_specialists", None)

    async def test_user_id_filter_must_match(self) -> None:
        user = CurrentUser(id=1, email="u@test.com", role="user")
        assert await can_subscribe(
            user, "appointment_proposals", RowFilter.parse("user_id=eq.1")
        )
        assert not await can_subscribe(
            user, "chat_sessions", RowFilter.parse("user_id=eq.2")
        )

    async def test_owned_session_rows(self, seed_user, session_factory) -> None:
        owner_id = await seed_user()
        other_id = await seed_user(email="other@test.com")
        session_id = await _owned_session(session_factory, owner_id)

        owner = CurrentUser(id=owner_id, email="seeker@test.com", role="user")
        other = CurrentUser(id=other_id, email="other@test.com", role="user")
        messages_filter = RowFilter.parse(f"session_id=eq.{session_id}")

        assert await can_subscribe(owner, "chat_messages", messages_filter)
        assert not await can_subscribe(other, "chat_messages", messages_filter)
        assert not await can_subscribe(
            owner, "chat_messages", RowFilter.parse("session_id=eq.abc")
        )


class TestSocketBridge:
    async def test_forwards_changes(self, feed: RealtimeFeed) -> None:
        socket = FakeWebSocket()
        peer = CurrentUser(id=2, email="p@test.com", role="specialist")
        bridge = SocketBridge(socket, feed, peer)  # type: ignore[arg-type]

        await bridge.handle(
            json.dumps({"action": "subscribe", "table": "chat_sessions"})
        )
        await wait_until(lambda: bool(socket.of_type("status")))
        assert socket.of_type("status")[0]["status"] == "SUBSCRIBED"

        await feed.publish("chat_sessions", "INSERT", new={"id": 1, "status": "waiting"})
        await wait_until(lambda: bool(socket.of_type("change")))
        event = socket.of_type("change")[0]["event"]
        assert event["event_type"] == "INSERT"
        assert event["new"]["id"] == 1

        await bridge.close()

    async def test_rejects_bad_frames(self, feed: RealtimeFeed) -> None:
        socket = FakeWebSocket()
        user = CurrentUser(id=1, email="u@test.com", role="user")
        bridge = SocketBridge(socket, feed, user)  # type: ignore[arg-type]

        await bridge.handle("{not json")
        await bridge.handle(json.dumps({"action": "subscribe", "table": "users"}))
        await bridge.handle(
            json.dumps(
                {"action": "subscribe", "table": "chat_messages", "filter": "bogus"}
            )
        )
        await bridge.handle(json.dumps({"action": "subscribe", "table": "chat_messages"}))

        errors = socket.of_type("error")
        assert len(errors) == 4
        assert errors[1]["message"] == "Unknown table: users"
        assert errors[3]["message"] == "Subscription not permitted"

    async def test_unsubscribe_stops_forwarding(self, feed: RealtimeFeed) -> None:
        socket = FakeWebSocket()
        peer = CurrentUser(id=2, email="p@test.com", role="specialist")
        bridge = SocketBridge(socket, feed, peer)  # type: ignore[arg-type]
        frame = {"action": "subscribe", "table": "peer_specialists"}

        await bridge.handle(json.dumps(frame))
        await wait_until(lambda: bool(socket.of_type("status")))
        await bridge.handle(json.dumps({**frame, "action": "unsubscribe"}))

        await feed.publish("peer_specialists", "UPDATE", new={"id": 1})
        await wait_until(lambda: len(socket.of_type("status")) >= 2)
        assert socket.of_type("change") == []

    async def test_closed_socket_is_ignored(self, feed: RealtimeFeed) -> None:
        socket = FakeWebSocket(closed=True)
        user = CurrentUser(id=1, email="u@test.com", role="user")
        bridge = SocketBridge(socket, feed, user)  # type: ignore[arg-type]

        await bridge.handle("{not json")
        assert socket.sent == []
