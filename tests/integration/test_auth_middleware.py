"""Integration tests for AuthMiddleware."""

import fakeredis.aioredis
from httpx import AsyncClient

from peer_chat.services.token_service import TokenService
from tests.conftest import make_auth_headers


class TestPublicPaths:
    """Public paths are reachable without a token."""

    async def test_health_check(self, async_client: AsyncClient) -> None:
        resp = await async_client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["data"]["redis"] == "up"

    async def test_root(self, async_client: AsyncClient) -> None:
        resp = await async_client.get("/")
        assert resp.status_code == 200

    async def test_docs(self, async_client: AsyncClient) -> None:
        resp = await async_client.get("/docs")
        assert resp.status_code == 200


class TestProtectedPaths:
    """Session endpoints require a valid access token."""

    async def test_without_token(self, async_client: AsyncClient) -> None:
        resp = await async_client.post("/api/v1/sessions/start")
        assert resp.status_code == 401
        assert resp.json()["code"] == "MISSING_TOKEN"

    async def test_with_invalid_token(self, async_client: AsyncClient) -> None:
        resp = await async_client.post(
            "/api/v1/sessions/start",
            headers={"Authorization": "Bearer invalid.token.here"},
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "INVALID_TOKEN"

    async def test_with_valid_token(
        self,
        async_client: AsyncClient,
        fake_redis: fakeredis.aioredis.FakeRedis,
    ) -> None:
        resp = await async_client.get(
            "/api/v1/sessions/404", headers=make_auth_headers(fake_redis)
        )
        assert resp.status_code == 404
        assert resp.json()["code"] == "SESSION_NOT_FOUND"

    async def test_with_blacklisted_token(
        self,
        async_client: AsyncClient,
        fake_redis: fakeredis.aioredis.FakeRedis,
    ) -> None:
        ts = TokenService(fake_redis)
        token = ts.create_access_token(user_id=1, email="bl@test.com", role="user")
        payload = ts.decode_token(token)
        await ts.blacklist_token(payload.jti, payload.exp)

        resp = await async_client.post(
            "/api/v1/sessions/start", headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "TOKEN_BLACKLISTED"

    async def test_refresh_token_rejected(
        self,
        async_client: AsyncClient,
        fake_redis: fakeredis.aioredis.FakeRedis,
    ) -> None:
        token = TokenService(fake_redis).create_refresh_token(
            user_id=1, email="rt@test.com", role="user"
        )
        resp = await async_client.post(
            "/api/v1/sessions/start", headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "INVALID_TOKEN"
