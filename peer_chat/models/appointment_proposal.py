"""Appointment proposal database model."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from peer_chat.core.clock import utcnow
from peer_chat.core.database import Base


class AppointmentProposal(Base):
    """Time window a specialist offers a user; valid until ``expires_at``."""

    __tablename__ = "appointment_proposals"
    __table_args__ = (
        Index(
            "ix_appointment_proposals_specialist_status",
            "specialist_id",
            "status",
            "expires_at",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    specialist_id: Mapped[int] = mapped_column(
        ForeignKey("peer_specialists.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    session_id: Mapped[int | None] = mapped_column(
        ForeignKey("chat_sessions.id"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # pending | accepted | declined | expired
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    proposed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    responded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
