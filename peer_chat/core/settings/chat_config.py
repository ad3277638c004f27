"""Chat session configuration."""

from pydantic import BaseModel


class ChatConfig(BaseModel, frozen=True):
    """Chat session lifecycle settings."""

    stale_waiting_minutes: int
    inactivity_timeout_minutes: int
    specialist_slots: int
    max_message_length: int

    @property
    def stale_waiting_seconds(self) -> int:
        """Age in seconds after which a waiting session is considered stale."""
        return self.stale_waiting_minutes * 60

    @property
    def inactivity_timeout_seconds(self) -> int:
        """Idle time in seconds after which an active session is ended."""
        return self.inactivity_timeout_minutes * 60
