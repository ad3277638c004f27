"""Appointment proposal schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

ProposalStatus = Literal["pending", "accepted", "declined", "expired"]


class CreateProposalRequest(BaseModel):
    """Specialist offers a time window to a user."""

    user_id: int
    session_id: int | None = None
    title: str = Field(..., min_length=1, max_length=200)
    start_at: datetime
    end_at: datetime
    expires_in_minutes: int = Field(default=60 * 24, ge=1, le=60 * 24 * 14)

    @model_validator(mode="after")
    def check_window(self) -> "CreateProposalRequest":
        if self.end_at <= self.start_at:
            raise ValueError("end_at must be after start_at")
        return self


class RespondProposalRequest(BaseModel):
    """User decision on a pending proposal."""

    accept: bool


class ProposalRead(BaseModel):
    """Snapshot of an appointment proposal."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    specialist_id: int
    user_id: int
    session_id: int | None = None
    title: str
    start_at: datetime
    end_at: datetime
    status: ProposalStatus
    proposed_at: datetime
    expires_at: datetime
    responded_at: datetime | None = None
