"""ORM models; importing this package registers every table on ``Base.metadata``."""

from peer_chat.models.appointment_proposal import AppointmentProposal
from peer_chat.models.chat_message import ChatMessage
from peer_chat.models.chat_session import ChatSession
from peer_chat.models.peer_specialist import PeerSpecialist, SpecialistAvailability
from peer_chat.models.user import User

__all__ = [
    "AppointmentProposal",
    "ChatMessage",
    "ChatSession",
    "PeerSpecialist",
    "SpecialistAvailability",
    "User",
]
