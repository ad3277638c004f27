"""Chat session database model."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from peer_chat.core.clock import utcnow
from peer_chat.core.database import Base


class ChatSession(Base):
    """One help-seeker/specialist engagement: waiting -> active -> ended."""

    __tablename__ = "chat_sessions"
    __table_args__ = (
        Index("ix_chat_sessions_status_specialist_id", "status", "specialist_id"),
        Index("ix_chat_sessions_user_id_status", "user_id", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    specialist_id: Mapped[int | None] = mapped_column(
        ForeignKey("peer_specialists.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="waiting")
    session_number: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    # Mirrors user_id until the session ends; the unique index allows one open
    # session per user.
    open_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True, unique=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    ended_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    end_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    last_activity: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
