"""Chat session API router."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status

from peer_chat.dependencies import (
    CurrentUser,
    bearer_scheme,
    get_chat_session_service,
    get_current_user,
    require_role,
)
from peer_chat.schemas.chat_schema import (
    ChatMessageRead,
    ChatSessionRead,
    EndSessionRequest,
    MarkReadResponse,
    SendMessageRequest,
    SessionMessagesResponse,
    StartSessionResponse,
)
from peer_chat.schemas.response_schema import ApiResponse, success_response
from peer_chat.services.chat_session_service import ChatSessionService

router = APIRouter(
    prefix="/api/v1/sessions",
    tags=["sessions"],
    dependencies=[Depends(bearer_scheme)],
)

ChatSessionServiceDep = Annotated[
    ChatSessionService, Depends(get_chat_session_service)
]
CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]
SpecialistDep = Annotated[CurrentUser, Depends(require_role("specialist", "admin"))]


@router.post("/start", response_model=ApiResponse[StartSessionResponse])
async def start_session(
    response: Response,
    service: ChatSessionServiceDep,
    current_user: Annotated[CurrentUser, Depends(require_role("user", "admin"))],
    force_new: bool = Query(default=False),
) -> dict:
    """Reuse the caller's open session or open a new waiting one."""
    result = await service.start_session(current_user.id, force_new=force_new)
    if result.created:
        response.status_code = status.HTTP_201_CREATED
        return success_response(
            result, status=status.HTTP_201_CREATED, message="Session created"
        )
    return success_response(result, message="Existing session reused")


@router.get("/waiting", response_model=ApiResponse[list[ChatSessionRead]])
async def list_waiting_sessions(
    service: ChatSessionServiceDep,
    current_user: SpecialistDep,
) -> dict:
    """Sessions waiting for a specialist, oldest first."""
    result = await service.list_waiting_sessions(current_user.id)
    return success_response(result)


@router.get("/mine", response_model=ApiResponse[list[ChatSessionRead]])
async def list_my_sessions(
    service: ChatSessionServiceDep,
    current_user: SpecialistDep,
) -> dict:
    """The calling specialist's active sessions."""
    result = await service.list_my_sessions(current_user.id)
    return success_response(result)


@router.get("/{session_id}", response_model=ApiResponse[ChatSessionRead])
async def get_session(
    session_id: int,
    service: ChatSessionServiceDep,
    current_user: CurrentUserDep,
) -> dict:
    """Fetch one session."""
    result = await service.get_session(session_id, current_user.id, current_user.role)
    return success_response(result)


@router.post("/{session_id}/claim", response_model=ApiResponse[ChatSessionRead])
async def claim_session(
    session_id: int,
    service: ChatSessionServiceDep,
    current_user: SpecialistDep,
) -> dict:
    """Claim a waiting session; 409 when another specialist won."""
    result = await service.claim_session(session_id, current_user.id)
    return success_response(result, message="Session claimed")


@router.post("/{session_id}/end", response_model=ApiResponse[ChatSessionRead])
async def end_session(
    session_id: int,
    service: ChatSessionServiceDep,
    current_user: CurrentUserDep,
    body: EndSessionRequest | None = None,
) -> dict:
    """End an active session. Ending twice is harmless."""
    reason = body.reason if body is not None else "manual"
    result = await service.end_session(
        session_id, current_user.id, current_user.role, reason=reason
    )
    return success_response(result, message="Session ended")


@router.get(
    "/{session_id}/messages",
    response_model=ApiResponse[SessionMessagesResponse],
)
async def list_messages(
    session_id: int,
    service: ChatSessionServiceDep,
    current_user: CurrentUserDep,
) -> dict:
    """Full message history, oldest first."""
    messages = await service.list_messages(
        session_id, current_user.id, current_user.role
    )
    return success_response(
        SessionMessagesResponse(session_id=session_id, messages=messages)
    )


@router.post(
    "/{session_id}/messages",
    response_model=ApiResponse[ChatMessageRead],
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    session_id: int,
    body: SendMessageRequest,
    service: ChatSessionServiceDep,
    current_user: CurrentUserDep,
) -> dict:
    """Append a message to the session."""
    result = await service.send_message(session_id, current_user.id, body)
    return success_response(result, status=201)


@router.post("/{session_id}/read", response_model=ApiResponse[MarkReadResponse])
async def mark_read(
    session_id: int,
    service: ChatSessionServiceDep,
    current_user: CurrentUserDep,
) -> dict:
    """Mark the other side's messages as read."""
    updated = await service.mark_read(session_id, current_user.id, current_user.role)
    return success_response(MarkReadResponse(updated=updated))
