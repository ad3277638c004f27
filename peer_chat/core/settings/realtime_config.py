"""Realtime feed configuration."""

from pydantic import BaseModel


class RealtimeConfig(BaseModel, frozen=True):
    """Redis pub/sub change feed settings."""

    channel_prefix: str
    subscribe_timeout_seconds: float
