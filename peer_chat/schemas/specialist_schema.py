"""Peer specialist schemas."""

from datetime import datetime, time
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SpecialistStatus = Literal["online", "away", "busy", "offline"]


class SpecialistRead(BaseModel):
    """Public specialist profile."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    user_id: int
    display_name: str
    status: SpecialistStatus
    status_source: Literal["schedule", "manual"]
    max_concurrent_sessions: int
    is_active: bool
    status_updated_at: datetime | None = None


class UpdateStatusRequest(BaseModel):
    """Manual status change; ``follow_schedule`` hands control back to the scheduler."""

    status: SpecialistStatus
    follow_schedule: bool = False


class AvailabilityWindow(BaseModel):
    """Weekly on-call window in UTC."""

    model_config = ConfigDict(from_attributes=True)

    weekday: int = Field(..., ge=0, le=6)
    start_time: time
    end_time: time


class RecomputeResult(BaseModel):
    """Outcome of a status recomputation pass."""

    model_config = ConfigDict(frozen=True)

    updated: int
