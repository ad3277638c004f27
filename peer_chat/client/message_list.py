"""Optimistic message list for a chat view.

Local entries carry a client-generated ``temp_id`` that is sent to the
server as ``client_ref``; the persisted row echoes it back, which is how a
pending entry is matched to its confirmation. Confirmed entries are keyed by
server id so redelivered or reordered events never duplicate a message.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from peer_chat.core.clock import as_utc, utcnow
from peer_chat.schemas.chat_schema import ChatMessageRead, SendMessageRequest


def new_temp_id() -> str:
    return f"tmp-{uuid.uuid4().hex}"


@dataclass(frozen=True)
class PendingMessage:
    temp_id: str
    session_id: int
    content: str
    message_type: str = "text"
    metadata: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=utcnow)

    def to_request(self) -> SendMessageRequest:
        """The write that persists this entry."""
        return SendMessageRequest(
            content=self.content,
            message_type=self.message_type,  # type: ignore[arg-type]
            metadata=self.metadata,
            client_ref=self.temp_id,
        )


@dataclass(frozen=True)
class FailedMessage:
    temp_id: str
    session_id: int
    content: str
    error: str
    message_type: str = "text"
    metadata: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ConfirmedMessage:
    message: ChatMessageRead

    @property
    def id(self) -> int:
        return self.message.id

    @property
    def temp_id(self) -> str | None:
        return self.message.client_ref


ChatEntry = PendingMessage | ConfirmedMessage | FailedMessage
LocalEntry = PendingMessage | FailedMessage


class MessageList:
    """Confirmed history in store order, followed by local entries."""

    def __init__(self) -> None:
        self._confirmed: dict[int, ConfirmedMessage] = {}
        self._local: dict[str, LocalEntry] = {}

    def __len__(self) -> int:
        return len(self._confirmed) + len(self._local)

    @property
    def entries(self) -> list[ChatEntry]:
        confirmed = sorted(
            self._confirmed.values(),
            key=lambda entry: (as_utc(entry.message.created_at), entry.message.id),
        )
        return [*confirmed, *self._local.values()]

    @property
    def confirmed(self) -> list[ChatMessageRead]:
        return [
            entry.message
            for entry in self.entries
            if isinstance(entry, ConfirmedMessage)
        ]

    @property
    def pending(self) -> list[PendingMessage]:
        return [e for e in self._local.values() if isinstance(e, PendingMessage)]

    @property
    def failed(self) -> list[FailedMessage]:
        return [e for e in self._local.values() if isinstance(e, FailedMessage)]

    def get(self, temp_id: str) -> LocalEntry | None:
        return self._local.get(temp_id)

    def add_pending(self, session_id: int, request: SendMessageRequest) -> PendingMessage:
        entry = PendingMessage(
            temp_id=request.client_ref or new_temp_id(),
            session_id=session_id,
            content=request.content,
            message_type=request.message_type,
            metadata=request.metadata,
        )
        self._local[entry.temp_id] = entry
        return entry

    def confirm(self, message: ChatMessageRead) -> ConfirmedMessage:
        """Record a persisted message, retiring its local entry if any.

        Safe to call repeatedly for the same message.
        """
        if message.client_ref:
            self._local.pop(message.client_ref, None)
        entry = ConfirmedMessage(message=message)
        self._confirmed[message.id] = entry
        return entry

    def mark_failed(self, temp_id: str, error: str) -> FailedMessage | None:
        """Flag a pending entry as failed; None if it was already confirmed."""
        entry = self._local.get(temp_id)
        if entry is None:
            return None
        failed = FailedMessage(
            temp_id=entry.temp_id,
            session_id=entry.session_id,
            content=entry.content,
            error=error,
            message_type=entry.message_type,
            metadata=entry.metadata,
            created_at=entry.created_at,
        )
        self._local[temp_id] = failed
        return failed

    def retry(self, temp_id: str) -> PendingMessage:
        """Turn a failed entry back into a pending one under the same temp id."""
        entry = self._local.get(temp_id)
        if not isinstance(entry, FailedMessage):
            raise KeyError(temp_id)
        pending = PendingMessage(
            temp_id=entry.temp_id,
            session_id=entry.session_id,
            content=entry.content,
            message_type=entry.message_type,
            metadata=entry.metadata,
            created_at=entry.created_at,
        )
        self._local[temp_id] = pending
        return pending

    def discard(self, temp_id: str) -> None:
        self._local.pop(temp_id, None)

    def replace_all(self, messages: list[ChatMessageRead]) -> None:
        """Adopt the store's history; only unconfirmed local entries survive."""
        self._confirmed = {m.id: ConfirmedMessage(message=m) for m in messages}
        refs = {m.client_ref for m in messages if m.client_ref}
        self._local = {
            temp_id: entry
            for temp_id, entry in self._local.items()
            if temp_id not in refs
        }

    def clear(self) -> None:
        self._confirmed.clear()
        self._local.clear()

