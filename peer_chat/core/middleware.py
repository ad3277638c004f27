"""ASGI authentication middleware."""

import json
from typing import Any

import jwt
import structlog
from starlette.types import ASGIApp, Receive, Scope, Send

from peer_chat.core import redis as redis_state
from peer_chat.core.config import settings
from peer_chat.core.exceptions import error_body

logger = structlog.get_logger()

BLACKLIST_PREFIX = "token_blacklist:"

PUBLIC_PATHS: set[str] = {
    "",
    "/",
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/api/auth/register",
    "/api/auth/login",
    "/api/auth/refresh",
}


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode an access token, raising ``jwt.InvalidTokenError`` subclasses."""
    payload: dict[str, Any] = jwt.decode(
        token,
        settings.auth.secret_key.get_secret_value(),
        algorithms=[settings.auth.algorithm],
    )
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError("Invalid token type")
    return payload


class AuthMiddleware:
    """Pure ASGI middleware for JWT validation on HTTP requests.

    WebSocket connections are passed through; the realtime endpoint
    authenticates from its ``token`` query parameter instead.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        # CORS preflight is always answered by CORSMiddleware.
        if scope.get("method", "") == "OPTIONS":
            await self.app(scope, receive, send)
            return

        path = scope["path"]
        normalized = path.rstrip("/") or "/"
        if normalized in PUBLIC_PATHS or path.startswith(("/docs", "/redoc")):
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        auth_header = headers.get(b"authorization", b"").decode()

        if not auth_header.startswith("Bearer "):
            await self._send_error(
                send, 401, "MISSING_TOKEN", "Authorization header required"
            )
            return

        try:
            payload = decode_access_token(auth_header[7:])
        except jwt.ExpiredSignatureError:
            await self._send_error(send, 401, "TOKEN_EXPIRED", "Token has expired")
            return
        except jwt.InvalidTokenError:
            await self._send_error(send, 401, "INVALID_TOKEN", "Invalid token")
            return

        jti = payload.get("jti", "")
        client = redis_state.redis_client
        if client is not None and await client.get(f"{BLACKLIST_PREFIX}{jti}"):
            await self._send_error(
                send, 401, "TOKEN_BLACKLISTED", "Token has been revoked"
            )
            return

        scope.setdefault("state", {})
        scope["state"]["user_id"] = int(payload["sub"])
        scope["state"]["email"] = payload["email"]
        scope["state"]["role"] = payload["role"]
        scope["state"]["jti"] = jti
        scope["state"]["exp"] = payload["exp"]

        await self.app(scope, receive, send)

    @staticmethod
    async def _send_error(send: Send, status: int, code: str, message: str) -> None:
        """Send a JSON error response directly."""
        body = json.dumps(error_body(status, message, code)).encode()

        await send(
            {
                "type": "http.response.start",
                "status": status,
                "headers": [
                    [b"content-type", b"application/json"],
                    [b"content-length", str(len(body)).encode()],
                ],
            }
        )
        await send({"type": "http.response.body", "body": body})
