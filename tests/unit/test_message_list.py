"""Tests for the optimistic message list."""

from datetime import UTC, datetime, timedelta

import pytest

from peer_chat.client.message_list import (
    ConfirmedMessage,
    FailedMessage,
    MessageList,
    PendingMessage,
    new_temp_id,
)
from peer_chat.schemas.chat_schema import ChatMessageRead, SendMessageRequest

BASE = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)


def _message(
    message_id: int, content: str = "hi", client_ref: str | None = None, offset: int = 0
) -> ChatMessageRead:
    return ChatMessageRead(
        id=message_id,
        session_id=1,
        sender_id=10,
        sender_type="user",
        message_type="text",
        content=content,
        client_ref=client_ref,
        created_at=BASE + timedelta(seconds=offset),
    )


class TestPending:
    """Local entries appear immediately and resolve by temp id."""

    def test_temp_ids_are_unique(self) -> None:
        assert new_temp_id() != new_temp_id()
        assert new_temp_id().startswith("tmp-")

    def test_add_pending(self) -> None:
        messages = MessageList()
        entry = messages.add_pending(1, SendMessageRequest(content="hello"))

        assert isinstance(entry, PendingMessage)
        assert messages.entries == [entry]
        assert entry.to_request().client_ref == entry.temp_id

    def test_confirm_replaces_pending(self) -> None:
        messages = MessageList()
        pending = messages.add_pending(1, SendMessageRequest(content="hello"))

        confirmed = messages.confirm(_message(5, "hello", client_ref=pending.temp_id))

        assert messages.pending == []
        assert len(messages) == 1
        assert confirmed.id == 5
        assert confirmed.temp_id == pending.temp_id

    def test_confirm_is_idempotent(self) -> None:
        messages = MessageList()
        pending = messages.add_pending(1, SendMessageRequest(content="hello"))
        message = _message(5, "hello", client_ref=pending.temp_id)

        messages.confirm(message)
        messages.confirm(message)

        assert len(messages) == 1


class TestFailures:
    """Failed entries stay visible and can be retried."""

    def test_mark_failed_and_retry(self) -> None:
        messages = MessageList()
        pending = messages.add_pending(1, SendMessageRequest(content="hello"))

        failed = messages.mark_failed(pending.temp_id, "offline")
        assert isinstance(failed, FailedMessage)
        assert messages.failed == [failed]

        retried = messages.retry(pending.temp_id)
        assert isinstance(retried, PendingMessage)
        assert retried.temp_id == pending.temp_id
        assert messages.failed == []

    def test_mark_failed_after_confirm(self) -> None:
        messages = MessageList()
        pending = messages.add_pending(1, SendMessageRequest(content="hello"))
        messages.confirm(_message(5, client_ref=pending.temp_id))

        assert messages.mark_failed(pending.temp_id, "late error") is None

    def test_retry_requires_failed_entry(self) -> None:
        messages = MessageList()
        pending = messages.add_pending(1, SendMessageRequest(content="hello"))
        with pytest.raises(KeyError):
            messages.retry(pending.temp_id)

    def test_discard(self) -> None:
        messages = MessageList()
        pending = messages.add_pending(1, SendMessageRequest(content="hello"))
        messages.discard(pending.temp_id)
        assert len(messages) == 0


class TestOrdering:
    """Confirmed history sorts by creation time, then id."""

    def test_out_of_order_delivery(self) -> None:
        messages = MessageList()
        messages.confirm(_message(3, "third", offset=2))
        messages.confirm(_message(1, "first", offset=0))
        messages.confirm(_message(2, "second", offset=0))

        assert [m.content for m in messages.confirmed] == ["first", "second", "third"]

    def test_local_entries_follow_confirmed(self) -> None:
        messages = MessageList()
        pending = messages.add_pending(1, SendMessageRequest(content="mine"))
        messages.confirm(_message(1, "theirs"))

        entries = messages.entries
        assert isinstance(entries[0], ConfirmedMessage)
        assert entries[1] == pending

    def test_replace_all_keeps_unconfirmed_locals(self) -> None:
        messages = MessageList()
        kept = messages.add_pending(1, SendMessageRequest(content="still sending"))
        landed = messages.add_pending(1, SendMessageRequest(content="landed"))
        messages.confirm(_message(9, "gone from history"))

        messages.replace_all([_message(1, "landed", client_ref=landed.temp_id)])

        assert [m.id for m in messages.confirmed] == [1]
        assert messages.pending == [kept]
