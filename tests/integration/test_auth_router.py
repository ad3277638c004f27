"""Integration tests for auth endpoints."""

from httpx import AsyncClient

REGISTER_PAYLOAD = {
    "email": "seeker@example.com",
    "password": "Test1234!",
    "username": "seeker",
}


async def _register_and_login(client: AsyncClient, **overrides: str) -> dict:
    payload = {**REGISTER_PAYLOAD, **overrides}
    await client.post("/api/auth/register", json=payload)
    resp = await client.post(
        "/api/auth/login",
        json={"email": payload["email"], "password": payload["password"]},
    )
    return resp.json()["data"]


class TestRegisterEndpoint:
    """Tests for POST /api/auth/register."""

    async def test_register_success(self, async_client: AsyncClient) -> None:
        resp = await async_client.post("/api/auth/register", json=REGISTER_PAYLOAD)
        assert resp.status_code == 201
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["user"]["role"] == "user"
        assert "access_token" in body["data"]["tokens"]

    async def test_register_specialist(self, async_client: AsyncClient) -> None:
        resp = await async_client.post(
            "/api/auth/register",
            json={**REGISTER_PAYLOAD, "email": "peer@example.com", "role": "specialist"},
        )
        assert resp.status_code == 201
        assert resp.json()["data"]["user"]["specialist_id"] is not None

    async def test_register_duplicate(self, async_client: AsyncClient) -> None:
        await async_client.post("/api/auth/register", json=REGISTER_PAYLOAD)
        resp = await async_client.post("/api/auth/register", json=REGISTER_PAYLOAD)
        assert resp.status_code == 409
        assert resp.json()["code"] == "USER_ALREADY_EXISTS"

    async def test_register_weak_password(self, async_client: AsyncClient) -> None:
        resp = await async_client.post(
            "/api/auth/register", json={**REGISTER_PAYLOAD, "password": "weak"}
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == "VALIDATION_ERROR"


class TestLoginEndpoint:
    """Tests for POST /api/auth/login."""

    async def test_login_success(self, async_client: AsyncClient) -> None:
        data = await _register_and_login(async_client)
        assert data["token_type"] == "bearer"
        assert data["access_token"]

    async def test_login_wrong_password(self, async_client: AsyncClient) -> None:
        await async_client.post("/api/auth/register", json=REGISTER_PAYLOAD)
        resp = await async_client.post(
            "/api/auth/login",
            json={"email": REGISTER_PAYLOAD["email"], "password": "WrongPass1!"},
        )
        assert resp.status_code == 401
        assert resp.json()["success"] is False


class TestSessionLifecycle:
    """Logout, refresh and /me."""

    async def test_me(self, async_client: AsyncClient) -> None:
        tokens = await _register_and_login(async_client)
        resp = await async_client.get(
            "/api/auth/me",
            headers={"Authorization": f"Bearer {tokens['access_token']}"},
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["email"] == REGISTER_PAYLOAD["email"]

    async def test_logout_revokes_access_token(self, async_client: AsyncClient) -> None:
        tokens = await _register_and_login(async_client)
        headers = {"Authorization": f"Bearer {tokens['access_token']}"}

        resp = await async_client.post(
            "/api/auth/logout",
            json={"refresh_token": tokens["refresh_token"]},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["message"] == "Successfully logged out"

        after = await async_client.get("/api/auth/me", headers=headers)
        assert after.status_code == 401
        assert after.json()["code"] == "TOKEN_BLACKLISTED"

    async def test_refresh(self, async_client: AsyncClient) -> None:
        tokens = await _register_and_login(async_client)
        resp = await async_client.post(
            "/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["access_token"]

    async def test_refresh_with_invalid_token(self, async_client: AsyncClient) -> None:
        resp = await async_client.post(
            "/api/auth/refresh", json={"refresh_token": "invalid.token.here"}
        )
        assert resp.status_code == 401
