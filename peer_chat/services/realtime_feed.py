"""Row-change feed over Redis pub/sub.

Writers publish one JSON ``ChangeEvent`` per committed row change on a
per-table channel. Subscribers filter by event type and a single
``column=eq.value`` predicate on their side. Delivery is at-least-once and
unordered across publishers, so consumers must reconcile by row id.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

import pydantic
import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from peer_chat.core.clock import utcnow
from peer_chat.core.config import settings
from peer_chat.schemas.realtime_schema import ChangeEvent, EventType, SubscriptionStatus

logger = structlog.get_logger()

EventHandler = Callable[[ChangeEvent], Awaitable[None]]
StatusHandler = Callable[[SubscriptionStatus, str | None], Awaitable[None]]

ALL_EVENTS = "*"


@dataclass(frozen=True)
class RowFilter:
    """Equality predicate on one column, written ``column=eq.value``."""

    column: str
    value: str

    @classmethod
    def parse(cls, expression: str) -> "RowFilter":
        column, sep, rest = expression.partition("=")
        operator, dot, value = rest.partition(".")
        if not sep or not dot or operator != "eq" or not column.strip():
            raise ValueError(f"Unsupported filter expression: {expression!r}")
        return cls(column=column.strip(), value=value)

    def matches(self, row: dict[str, Any] | None) -> bool:
        if not row or self.column not in row:
            return False
        return str(row[self.column]) == self.value


class Subscription:
    """Live subscription to one table channel."""

    def __init__(
        self,
        pubsub: Any,
        channel: str,
        table: str,
        on_event: EventHandler,
        row_filter: RowFilter | None,
        event_types: frozenset[str],
        on_status: StatusHandler | None,
    ) -> None:
        self.channel = channel
        self.table = table
        self._pubsub = pubsub
        self._on_event = on_event
        self._row_filter = row_filter
        self._event_types = event_types
        self._on_status = on_status
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self.status: SubscriptionStatus | None = None

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.SUBSCRIBED and not self._closed

    async def start(self, timeout: float) -> None:
        """Subscribe the channel and begin dispatching messages."""
        try:
            await asyncio.wait_for(self._pubsub.subscribe(self.channel), timeout)
        except TimeoutError:
            await self._fail(SubscriptionStatus.TIMED_OUT, "Subscribe timed out")
            return
        except (RedisError, OSError) as exc:
            await self._fail(SubscriptionStatus.CHANNEL_ERROR, str(exc))
            return

        self._task = asyncio.create_task(self._listen(), name=f"feed:{self.channel}")
        await self._emit(SubscriptionStatus.SUBSCRIBED, None)

    async def unsubscribe(self) -> None:
        """Stop listening and release the pub/sub connection."""
        if self._closed:
            return
        self._closed = True

        task = self._task
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._release()
        await self._emit(SubscriptionStatus.CLOSED, None)

    async def _listen(self) -> None:
        try:
            while not self._closed:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
                if message is None:
                    continue
                await self._dispatch(message["data"])
        except (RedisError, OSError) as exc:
            if self._closed:
                return
            logger.warning(
                "Realtime channel failed", channel=self.channel, error=str(exc)
            )
            await self._fail(SubscriptionStatus.CHANNEL_ERROR, str(exc))

    async def _dispatch(self, raw: str | bytes) -> None:
        try:
            event = ChangeEvent.model_validate_json(raw)
        except pydantic.ValidationError:
            logger.warning("Dropping malformed change event", channel=self.channel)
            return

        if ALL_EVENTS not in self._event_types and event.event_type not in self._event_types:
            return
        if self._row_filter is not None and not (
            self._row_filter.matches(event.new) or self._row_filter.matches(event.old)
        ):
            return

        try:
            await self._on_event(event)
        except Exception:
            logger.exception(
                "Change handler raised",
                channel=self.channel,
                event_type=event.event_type,
            )

    async def _fail(self, status: SubscriptionStatus, error: str) -> None:
        self._closed = True
        await self._release()
        await self._emit(status, error)

    async def _release(self) -> None:
        try:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.aclose()
        except (RedisError, OSError) as exc:
            logger.warning(
                "Failed to release pub/sub connection",
                channel=self.channel,
                error=str(exc),
            )

    async def _emit(self, status: SubscriptionStatus, error: str | None) -> None:
        self.status = status
        logger.debug("Subscription status", channel=self.channel, status=str(status))
        if self._on_status is None:
            return
        try:
            await self._on_status(status, error)
        except Exception:
            logger.exception("Status handler raised", channel=self.channel)


class RealtimeFeed:
    """Publish and subscribe row-change events for tables."""

    def __init__(
        self,
        redis_client: redis.Redis,  # type: ignore[type-arg]
        channel_prefix: str | None = None,
        subscribe_timeout: float | None = None,
    ) -> None:
        self._redis = redis_client
        self._prefix = channel_prefix or settings.realtime.channel_prefix
        self._subscribe_timeout = (
            subscribe_timeout or settings.realtime.subscribe_timeout_seconds
        )

    def channel_for(self, table: str) -> str:
        return f"{self._prefix}:{table}"

    async def publish(
        self,
        table: str,
        event_type: EventType,
        new: dict[str, Any] | None = None,
        old: dict[str, Any] | None = None,
    ) -> int:
        """Publish a change event; returns the number of receiving connections."""
        event = ChangeEvent(
            event_type=event_type,
            table=table,
            new=new,
            old=old,
            commit_timestamp=utcnow(),
        )
        receivers = await self._redis.publish(
            self.channel_for(table), event.model_dump_json()
        )
        logger.debug(
            "Change event published",
            table=table,
            event_type=event_type,
            receivers=receivers,
        )
        return int(receivers)

    async def subscribe(
        self,
        table: str,
        on_event: EventHandler,
        *,
        row_filter: RowFilter | str | None = None,
        event_types: Iterable[str] = (ALL_EVENTS,),
        on_status: StatusHandler | None = None,
    ) -> Subscription:
        """Open a subscription; its outcome is reported through ``on_status``."""
        if isinstance(row_filter, str):
            row_filter = RowFilter.parse(row_filter)
        subscription = Subscription(
            pubsub=self._redis.pubsub(),
            channel=self.channel_for(table),
            table=table,
            on_event=on_event,
            row_filter=row_filter,
            event_types=frozenset(event_types),
            on_status=on_status,
        )
        await subscription.start(self._subscribe_timeout)
        return subscription
