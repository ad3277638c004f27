"""Global dependencies for the application."""

from collections.abc import Callable

from fastapi import Depends, Request
from fastapi.security import HTTPBearer
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from peer_chat.core.database import get_async_session
from peer_chat.core.exceptions import AuthenticationError, AuthorizationError
from peer_chat.core.redis import get_redis
from peer_chat.repositories.chat_repo import ChatRepository
from peer_chat.repositories.proposal_repo import ProposalRepository
from peer_chat.repositories.specialist_repo import SpecialistRepository
from peer_chat.repositories.user_repo import UserRepository
from peer_chat.services.auth_service import AuthService
from peer_chat.services.chat_session_service import ChatSessionService
from peer_chat.services.proposal_service import ProposalService
from peer_chat.services.realtime_feed import RealtimeFeed
from peer_chat.services.specialist_service import SpecialistService
from peer_chat.services.token_service import TokenService

bearer_scheme = HTTPBearer(auto_error=False)


# --- Auth dependencies ---


class CurrentUser(BaseModel):
    """Authenticated user extracted from request state."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: str


def get_token_service() -> TokenService:
    """Get TokenService backed by the active Redis client."""
    return TokenService(get_redis())


def get_realtime_feed() -> RealtimeFeed:
    """Get the change feed backed by the active Redis client."""
    return RealtimeFeed(get_redis())


def get_current_user(request: Request) -> CurrentUser:
    """Extract the authenticated user from middleware-populated state."""
    state = getattr(request, "state", None)
    user_id = getattr(state, "user_id", None) if state else None
    if user_id is None:
        raise AuthenticationError(message="Not authenticated")
    return CurrentUser(
        id=state.user_id,
        email=state.email,
        role=state.role,
    )


def require_role(*allowed_roles: str) -> Callable[..., CurrentUser]:
    """Dependency factory that enforces role-based access control."""

    def _check(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                message=f"Role '{current_user.role}' is not permitted"
            )
        return current_user

    return _check


# --- Repositories ---


def get_user_repository(
    session: AsyncSession = Depends(get_async_session),
) -> UserRepository:
    """Get UserRepository bound to the current session."""
    return UserRepository(session)


def get_chat_repository(
    session: AsyncSession = Depends(get_async_session),
) -> ChatRepository:
    """Get ChatRepository bound to the current session."""
    return ChatRepository(session)


def get_specialist_repository(
    session: AsyncSession = Depends(get_async_session),
) -> SpecialistRepository:
    """Get SpecialistRepository bound to the current session."""
    return SpecialistRepository(session)


def get_proposal_repository(
    session: AsyncSession = Depends(get_async_session),
) -> ProposalRepository:
    """Get ProposalRepository bound to the current session."""
    return ProposalRepository(session)


# --- Services ---


def get_auth_service(
    user_repo: UserRepository = Depends(get_user_repository),
    specialist_repo: SpecialistRepository = Depends(get_specialist_repository),
    token_service: TokenService = Depends(get_token_service),
    session: AsyncSession = Depends(get_async_session),
) -> AuthService:
    """Get AuthService with all dependencies."""
    return AuthService(
        user_repo=user_repo,
        specialist_repo=specialist_repo,
        token_service=token_service,
        session=session,
    )


def get_chat_session_service(
    chat_repo: ChatRepository = Depends(get_chat_repository),
    specialist_repo: SpecialistRepository = Depends(get_specialist_repository),
    session: AsyncSession = Depends(get_async_session),
    feed: RealtimeFeed = Depends(get_realtime_feed),
) -> ChatSessionService:
    """Get ChatSessionService publishing to the realtime feed."""
    return ChatSessionService(
        chat_repo=chat_repo,
        specialist_repo=specialist_repo,
        session=session,
        feed=feed,
    )


def get_specialist_service(
    specialist_repo: SpecialistRepository = Depends(get_specialist_repository),
    session: AsyncSession = Depends(get_async_session),
    feed: RealtimeFeed = Depends(get_realtime_feed),
) -> SpecialistService:
    """Get SpecialistService publishing to the realtime feed."""
    return SpecialistService(
        specialist_repo=specialist_repo, session=session, feed=feed
    )


def get_proposal_service(
    proposal_repo: ProposalRepository = Depends(get_proposal_repository),
    specialist_repo: SpecialistRepository = Depends(get_specialist_repository),
    chat_repo: ChatRepository = Depends(get_chat_repository),
    session: AsyncSession = Depends(get_async_session),
    feed: RealtimeFeed = Depends(get_realtime_feed),
) -> ProposalService:
    """Get ProposalService publishing to the realtime feed."""
    return ProposalService(
        proposal_repo=proposal_repo,
        specialist_repo=specialist_repo,
        chat_repo=chat_repo,
        session=session,
        feed=feed,
    )
