"""Session store backed by the REST API."""

from typing import Any

import httpx
import structlog
from pydantic import TypeAdapter

from peer_chat.core.exceptions import (
    AppException,
    AuthorizationError,
    ConflictError,
    SessionCreateError,
    SessionNotFoundError,
    TransientNetworkError,
    ValidationError,
)
from peer_chat.schemas.chat_schema import (
    ChatMessageRead,
    ChatSessionRead,
    SendMessageRequest,
    SessionMessagesResponse,
    StartSessionResponse,
)

logger = structlog.get_logger()

_session_list = TypeAdapter(list[ChatSessionRead])


def error_from_envelope(status_code: int, body: dict[str, Any]) -> AppException:
    """Rebuild the server-side exception from a failure envelope."""
    message = body.get("message", "Request failed")
    code = body.get("code", "")
    match code:
        case "VALIDATION_ERROR":
            return ValidationError(message=message)
        case "CONFLICT":
            return ConflictError(message=message)
        case "AUTHORIZATION_ERROR":
            return AuthorizationError(message=message)
        case "SESSION_NOT_FOUND":
            return SessionNotFoundError()
        case "SESSION_CREATE_FAILED":
            return SessionCreateError(message=message)
        case "TRANSIENT_NETWORK_ERROR":
            return TransientNetworkError(message=message)
    if status_code >= 500:
        return TransientNetworkError(message=message)
    return AppException(message=message, code=code or "HTTP_ERROR", status_code=status_code)


class HttpSessionStore:
    """Talks to ``/api/v1/sessions`` with a bearer token."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._owns_client = client is None
        self._headers = {"Authorization": f"Bearer {access_token}"}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method,
                f"/api/v1/sessions{path}",
                json=json,
                params=params,
                headers=self._headers,
            )
        except httpx.TransportError as exc:
            logger.warning("Session API unreachable", path=path, error=str(exc))
            raise TransientNetworkError(f"Session API unreachable: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise error_from_envelope(
                response.status_code, {"message": response.text or "Invalid response"}
            ) from exc
        if not response.is_success or not body.get("success", False):
            raise error_from_envelope(response.status_code, body)
        return body.get("data")

    async def start_session(self, force_new: bool = False) -> StartSessionResponse:
        data = await self._request(
            "POST", "/start", params={"force_new": str(force_new).lower()}
        )
        return StartSessionResponse.model_validate(data)

    async def get_session(self, session_id: int) -> ChatSessionRead:
        return ChatSessionRead.model_validate(
            await self._request("GET", f"/{session_id}")
        )

    async def list_messages(self, session_id: int) -> list[ChatMessageRead]:
        data = await self._request("GET", f"/{session_id}/messages")
        return SessionMessagesResponse.model_validate(data).messages

    async def claim_session(self, session_id: int) -> ChatSessionRead:
        return ChatSessionRead.model_validate(
            await self._request("POST", f"/{session_id}/claim")
        )

    async def end_session(
        self, session_id: int, reason: str = "manual"
    ) -> ChatSessionRead:
        return ChatSessionRead.model_validate(
            await self._request("POST", f"/{session_id}/end", json={"reason": reason})
        )

    async def send_message(
        self, session_id: int, request: SendMessageRequest
    ) -> ChatMessageRead:
        data = await self._request(
            "POST",
            f"/{session_id}/messages",
            json=request.model_dump(mode="json"),
        )
        return ChatMessageRead.model_validate(data)

    async def list_waiting_sessions(self) -> list[ChatSessionRead]:
        return _session_list.validate_python(await self._request("GET", "/waiting"))
