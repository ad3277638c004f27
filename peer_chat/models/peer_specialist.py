"""Peer specialist profile and weekly availability models."""

from datetime import datetime, time

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    Time,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from peer_chat.core.database import Base


class PeerSpecialist(Base):
    """Specialist profile linked one-to-one with a user account."""

    __tablename__ = "peer_specialists"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), unique=True, nullable=False, index=True
    )
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    # online | away | busy | offline
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="offline")
    # schedule | manual
    status_source: Mapped[str] = mapped_column(
        String(20), nullable=False, default="schedule"
    )
    max_concurrent_sessions: Mapped[int] = mapped_column(
        Integer, nullable=False, default=3
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # Written first by every claim; the row lock queues claims per specialist.
    last_claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class SpecialistAvailability(Base):
    """Recurring weekly window (UTC) during which a specialist is on call."""

    __tablename__ = "specialist_availability"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    specialist_id: Mapped[int] = mapped_column(
        ForeignKey("peer_specialists.id"), nullable=False, index=True
    )
    weekday: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
