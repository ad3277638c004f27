"""Realtime change feed schemas."""

from datetime import datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

EventType = Literal["INSERT", "UPDATE", "DELETE"]


class SubscriptionStatus(StrEnum):
    """Lifecycle signals reported to a subscription's status callback."""

    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"


class ChangeEvent(BaseModel):
    """Row change pushed to subscribers of a table."""

    model_config = ConfigDict(frozen=True)

    event_type: EventType
    table: str
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None
    commit_timestamp: datetime


class SubscribeFrame(BaseModel):
    """Client -> server WebSocket frame requesting a table subscription."""

    action: Literal["subscribe", "unsubscribe"]
    table: str = Field(..., min_length=1, max_length=64)
    filter: str | None = Field(default=None, max_length=128)
    events: list[Literal["INSERT", "UPDATE", "DELETE", "*"]] = Field(
        default_factory=lambda: ["*"]
    )
