"""WebSocket bridge from the Redis change feed to browser clients.

The socket authenticates with ``?token=<access token>``. Clients then send
``{"action": "subscribe", "table": ..., "filter": "column=eq.value"}``
frames and receive ``status`` and ``change`` frames back.
"""

import asyncio
from typing import Any

import jwt
import pydantic
import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from peer_chat.core import redis as redis_state
from peer_chat.core.database import async_session_factory
from peer_chat.core.middleware import BLACKLIST_PREFIX, decode_access_token
from peer_chat.dependencies import CurrentUser
from peer_chat.repositories.chat_repo import ChatRepository
from peer_chat.schemas.realtime_schema import (
    ChangeEvent,
    SubscribeFrame,
    SubscriptionStatus,
)
from peer_chat.services.realtime_feed import RealtimeFeed, RowFilter, Subscription

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/realtime", tags=["realtime"])

SUBSCRIBABLE_TABLES = frozenset(
    {"chat_sessions", "chat_messages", "peer_specialists", "appointment_proposals"}
)


async def authenticate_socket(token: str | None) -> CurrentUser | None:
    """Resolve the caller from an access token, or None when unusable."""
    if not token:
        return None
    try:
        payload = decode_access_token(token)
    except jwt.InvalidTokenError:
        return None
    client = redis_state.redis_client
    if client is not None and await client.get(
        f"{BLACKLIST_PREFIX}{payload.get('jti', '')}"
    ):
        return None
    return CurrentUser(id=int(payload["sub"]), email=payload["email"], role=payload["role"])


async def can_subscribe(
    user: CurrentUser, table: str, row_filter: RowFilter | None
) -> bool:
    """Help-seekers may only follow rows that belong to them."""
    if user.role in ("specialist", "admin"):
        return True
    if table == "peer_specialists":
        return True
    if row_filter is None:
        return False
    if row_filter.column == "user_id" and table in (
        "chat_sessions",
        "appointment_proposals",
    ):
        return row_filter.value == str(user.id)

    owned_session_column = {"chat_sessions": "id", "chat_messages": "session_id"}
    if owned_session_column.get(table) != row_filter.column:
        return False
    if not row_filter.value.isdigit():
        return False
    async with async_session_factory() as session:
        chat_session = await ChatRepository(session).find_session_by_id(
            int(row_filter.value)
        )
    return chat_session is not None and chat_session.user_id == user.id


class SocketBridge:
    """Per-connection set of feed subscriptions forwarding to one socket."""

    def __init__(self, websocket: WebSocket, feed: RealtimeFeed, user: CurrentUser) -> None:
        self._websocket = websocket
        self._feed = feed
        self._user = user
        self._subscriptions: dict[tuple[str, str | None], Subscription] = {}
        self._send_lock = asyncio.Lock()

    async def handle(self, raw: str) -> None:
        try:
            frame = SubscribeFrame.model_validate_json(raw)
        except pydantic.ValidationError as exc:
            await self._send({"type": "error", "message": exc.errors()[0]["msg"]})
            return

        key = (frame.table, frame.filter)
        if frame.action == "unsubscribe":
            subscription = self._subscriptions.pop(key, None)
            if subscription is not None:
                await subscription.unsubscribe()
            return

        if frame.table not in SUBSCRIBABLE_TABLES:
            await self._send({"type": "error", "message": f"Unknown table: {frame.table}"})
            return
        try:
            row_filter = RowFilter.parse(frame.filter) if frame.filter else None
        except ValueError as exc:
            await self._send({"type": "error", "message": str(exc)})
            return
        if not await can_subscribe(self._user, frame.table, row_filter):
            await self._send({"type": "error", "message": "Subscription not permitted"})
            return

        previous = self._subscriptions.pop(key, None)
        if previous is not None:
            await previous.unsubscribe()

        async def on_event(event: ChangeEvent) -> None:
            await self._send({"type": "change", "event": event.model_dump(mode="json")})

        async def on_status(status_: SubscriptionStatus, error: str | None) -> None:
            await self._send(
                {
                    "type": "status",
                    "table": frame.table,
                    "filter": frame.filter,
                    "status": str(status_),
                    "error": error,
                }
            )

        self._subscriptions[key] = await self._feed.subscribe(
            frame.table,
            on_event,
            row_filter=row_filter,
            event_types=frame.events,
            on_status=on_status,
        )

    async def close(self) -> None:
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for subscription in subscriptions:
            await subscription.unsubscribe()

    async def _send(self, payload: dict[str, Any]) -> None:
        async with self._send_lock:
            try:
                await self._websocket.send_json(payload)
            except (WebSocketDisconnect, RuntimeError):
                logger.debug("Dropping frame for closed socket", user_id=self._user.id)


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    token: str | None = Query(default=None),
) -> None:
    """Stream row changes for the tables the client subscribes to."""
    user = await authenticate_socket(token)
    if user is None:
        await websocket.close(
            code=status.WS_1008_POLICY_VIOLATION, reason="Invalid or missing token"
        )
        return

    client = redis_state.redis_client
    if client is None:
        await websocket.close(
            code=status.WS_1011_INTERNAL_ERROR, reason="Realtime feed unavailable"
        )
        return

    await websocket.accept()
    bridge = SocketBridge(websocket, RealtimeFeed(client), user)
    logger.info("Realtime socket connected", user_id=user.id)
    try:
        while True:
            await bridge.handle(await websocket.receive_text())
    except WebSocketDisconnect:
        logger.info("Realtime socket disconnected", user_id=user.id)
    finally:
        await bridge.close()
