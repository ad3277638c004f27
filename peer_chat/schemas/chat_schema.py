"""Chat session and message schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from peer_chat.core.config import settings

SessionStatus = Literal["waiting", "active", "ended"]
SenderType = Literal["user", "specialist", "system"]
MessageType = Literal["text", "quick_action", "system", "phone_call_request"]
QuickActionType = Literal["need-support", "feeling-triggered", "good-day", "question"]

QUICK_ACTION_MESSAGES: dict[str, str] = {
    "need-support": "I need support right now. Could you please help me?",
    "feeling-triggered": (
        "I'm feeling triggered and could use some guidance on managing this."
    ),
    "good-day": "Having a good day today! Feeling positive about my recovery journey.",
    "question": "I have a question and would appreciate your guidance.",
}


class ChatSessionRead(BaseModel):
    """Snapshot of a chat session row."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    user_id: int
    specialist_id: int | None = None
    status: SessionStatus
    session_number: int
    started_at: datetime
    claimed_at: datetime | None = None
    ended_at: datetime | None = None
    end_reason: str | None = None
    last_activity: datetime


class ChatMessageRead(BaseModel):
    """Snapshot of a persisted chat message."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    session_id: int
    sender_id: int
    sender_type: SenderType
    message_type: MessageType
    content: str
    # ORM attribute first: declarative models expose ``.metadata`` as the table registry.
    metadata: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("metadata_json", "metadata")
    )
    is_read: bool = False
    client_ref: str | None = None
    created_at: datetime


class SendMessageRequest(BaseModel):
    """Message to append to a session."""

    content: str
    message_type: MessageType = "text"
    metadata: dict[str, Any] | None = None
    client_ref: str | None = Field(default=None, max_length=64)

    @field_validator("content")
    @classmethod
    def validate_length(cls, v: str) -> str:
        if len(v.strip()) > settings.chat.max_message_length:
            raise ValueError(
                f"Message content must be at most "
                f"{settings.chat.max_message_length} characters"
            )
        return v

    @classmethod
    def quick_action(cls, action: QuickActionType) -> "SendMessageRequest":
        """Build the canned message for a quick-action shortcut."""
        return cls(
            content=QUICK_ACTION_MESSAGES[action],
            message_type="quick_action",
            metadata={"action": action},
        )


class EndSessionRequest(BaseModel):
    """Optional reason recorded when ending a session."""

    reason: str = Field(default="manual", min_length=1, max_length=50)


class StartSessionResponse(BaseModel):
    """Result of starting a session; ``created`` is False when one was reused."""

    model_config = ConfigDict(frozen=True)

    session: ChatSessionRead
    created: bool


class SessionMessagesResponse(BaseModel):
    """Full message history for a session."""

    model_config = ConfigDict(frozen=True)

    session_id: int
    messages: list[ChatMessageRead]


class MarkReadResponse(BaseModel):
    """Number of messages flipped to read."""

    model_config = ConfigDict(frozen=True)

    updated: int
