"""Peer specialist API router."""

from typing import Annotated

from fastapi import APIRouter, Depends

from peer_chat.dependencies import (
    CurrentUser,
    bearer_scheme,
    get_current_user,
    get_specialist_service,
    require_role,
)
from peer_chat.schemas.response_schema import ApiResponse, success_response
from peer_chat.schemas.specialist_schema import (
    AvailabilityWindow,
    RecomputeResult,
    SpecialistRead,
    UpdateStatusRequest,
)
from peer_chat.services.specialist_service import SpecialistService

router = APIRouter(
    prefix="/api/v1/specialists",
    tags=["specialists"],
    dependencies=[Depends(bearer_scheme)],
)

SpecialistServiceDep = Annotated[SpecialistService, Depends(get_specialist_service)]
SpecialistDep = Annotated[CurrentUser, Depends(require_role("specialist"))]


@router.get("/me", response_model=ApiResponse[SpecialistRead])
async def get_me(
    service: SpecialistServiceDep,
    current_user: SpecialistDep,
) -> dict:
    """The calling specialist's profile."""
    result = await service.get_me(current_user.id)
    return success_response(result)


@router.get("/me/availability", response_model=ApiResponse[list[AvailabilityWindow]])
async def get_availability(
    service: SpecialistServiceDep,
    current_user: SpecialistDep,
) -> dict:
    """Weekly on-call windows (UTC)."""
    result = await service.get_availability(current_user.id)
    return success_response(result)


@router.put("/me/availability", response_model=ApiResponse[list[AvailabilityWindow]])
async def set_availability(
    body: list[AvailabilityWindow],
    service: SpecialistServiceDep,
    current_user: SpecialistDep,
) -> dict:
    """Replace the weekly on-call windows."""
    result = await service.set_availability(current_user.id, body)
    return success_response(result, message="Availability updated")


@router.patch("/{specialist_id}/status", response_model=ApiResponse[SpecialistRead])
async def update_status(
    specialist_id: int,
    body: UpdateStatusRequest,
    service: SpecialistServiceDep,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> dict:
    """Set your own availability status."""
    result = await service.update_status(specialist_id, current_user.id, body)
    return success_response(result, message="Status updated")


@router.post("/recompute-status", response_model=ApiResponse[RecomputeResult])
async def recompute_status(
    service: SpecialistServiceDep,
    current_user: Annotated[CurrentUser, Depends(require_role("admin"))],
) -> dict:
    """Run the schedule-driven status pass now."""
    result = await service.recompute_statuses()
    return success_response(result)
