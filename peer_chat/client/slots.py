"""Slot assignment for specialists with a fixed number of concurrent sessions."""

from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from peer_chat.client.controller import SpecialistChatController
from peer_chat.core.config import settings
from peer_chat.core.exceptions import ConflictError, ValidationError
from peer_chat.schemas.chat_schema import ChatSessionRead

logger = structlog.get_logger()


@dataclass(frozen=True)
class ClaimAction:
    """One claim button; ``slot_index`` is None for the disabled placeholder."""

    slot_index: int | None
    enabled: bool
    label: str


def claim_actions(
    session: ChatSessionRead | None, availability: Sequence[bool]
) -> list[ClaimAction]:
    """One enabled action per free slot, or a single disabled one."""
    claimable = (
        session is not None
        and session.status == "waiting"
        and session.specialist_id is None
    )
    if not claimable:
        return [ClaimAction(slot_index=None, enabled=False, label="Not claimable")]

    free = [index for index, is_free in enumerate(availability) if is_free]
    if not free:
        return [ClaimAction(slot_index=None, enabled=False, label="No free slots")]
    return [
        ClaimAction(slot_index=index, enabled=True, label=f"Claim into slot {index + 1}")
        for index in free
    ]


class SlotBoard:
    """Which session sits in each of a specialist's slots.

    The board only tracks placement. Whether a claim wins is decided by the
    store, so a lost race leaves the slot free and re-raises ConflictError.
    """

    def __init__(self, capacity: int | None = None) -> None:
        self.capacity = capacity or settings.chat.specialist_slots
        self._slots: list[int | None] = [None] * self.capacity
        self._reserved: set[int] = set()

    @property
    def slots(self) -> list[int | None]:
        return list(self._slots)

    @property
    def availability(self) -> list[bool]:
        return [
            session_id is None and index not in self._reserved
            for index, session_id in enumerate(self._slots)
        ]

    def actions_for(self, session: ChatSessionRead | None) -> list[ClaimAction]:
        return claim_actions(session, self.availability)

    def load(self, sessions: Sequence[ChatSessionRead]) -> None:
        """Seat already-active sessions in order, ignoring any overflow."""
        self._slots = [None] * self.capacity
        for index, session in enumerate(sessions[: self.capacity]):
            self._slots[index] = session.id

    def slot_of(self, session_id: int) -> int | None:
        for index, occupant in enumerate(self._slots):
            if occupant == session_id:
                return index
        return None

    def release(self, session_id: int) -> int | None:
        """Free the slot holding ``session_id``; returns its index."""
        index = self.slot_of(session_id)
        if index is not None:
            self._slots[index] = None
        return index

    async def claim_to_slot(
        self, controller: SpecialistChatController, slot_index: int
    ) -> ChatSessionRead:
        """Claim the controller's session into ``slot_index``."""
        if not 0 <= slot_index < self.capacity:
            raise ValidationError(message=f"Slot {slot_index} does not exist")
        if not self.availability[slot_index]:
            raise ConflictError(message=f"Slot {slot_index + 1} is occupied")

        self._reserved.add(slot_index)
        try:
            session = await controller.claim_session()
        finally:
            self._reserved.discard(slot_index)

        self._slots[slot_index] = session.id
        logger.info("Session seated", session_id=session.id, slot=slot_index)
        return session
