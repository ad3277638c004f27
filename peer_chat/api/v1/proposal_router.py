"""Appointment proposal API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, status

from peer_chat.dependencies import (
    CurrentUser,
    bearer_scheme,
    get_proposal_service,
    require_role,
)
from peer_chat.schemas.proposal_schema import (
    CreateProposalRequest,
    ProposalRead,
    RespondProposalRequest,
)
from peer_chat.schemas.response_schema import ApiResponse, success_response
from peer_chat.services.proposal_service import ProposalService

router = APIRouter(
    prefix="/api/v1/proposals",
    tags=["proposals"],
    dependencies=[Depends(bearer_scheme)],
)

ProposalServiceDep = Annotated[ProposalService, Depends(get_proposal_service)]
SpecialistDep = Annotated[CurrentUser, Depends(require_role("specialist"))]


@router.post(
    "",
    response_model=ApiResponse[ProposalRead],
    status_code=status.HTTP_201_CREATED,
)
async def create_proposal(
    body: CreateProposalRequest,
    service: ProposalServiceDep,
    current_user: SpecialistDep,
) -> dict:
    """Offer an appointment window to a user."""
    result = await service.create(current_user.id, body)
    return success_response(result, status=201)


@router.get("/pending", response_model=ApiResponse[list[ProposalRead]])
async def list_pending(
    service: ProposalServiceDep,
    current_user: SpecialistDep,
) -> dict:
    """Proposals still awaiting an answer; expired ones are left out."""
    result = await service.list_pending(current_user.id)
    return success_response(result)


@router.post("/{proposal_id}/respond", response_model=ApiResponse[ProposalRead])
async def respond(
    proposal_id: int,
    body: RespondProposalRequest,
    service: ProposalServiceDep,
    current_user: Annotated[CurrentUser, Depends(require_role("user"))],
) -> dict:
    """Accept or decline a proposal."""
    result = await service.respond(proposal_id, current_user.id, body)
    return success_response(result)
