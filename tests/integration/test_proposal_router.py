"""Integration tests for appointment proposal endpoints."""

from datetime import timedelta

from httpx import AsyncClient

from peer_chat.core.clock import utcnow
from tests.conftest import make_auth_headers


def _window(days: int = 1) -> dict[str, str]:
    start = utcnow() + timedelta(days=days)
    return {
        "start_at": start.isoformat(),
        "end_at": (start + timedelta(hours=1)).isoformat(),
    }


class TestProposalFlow:
    async def test_propose_and_accept(
        self, async_client: AsyncClient, fake_redis, seed_user, seed_specialist
    ) -> None:
        user_id = await seed_user()
        peer_user_id, specialist_id = await seed_specialist()
        peer = make_auth_headers(
            fake_redis, user_id=peer_user_id, email="peer@test.com", role="specialist"
        )
        seeker = make_auth_headers(fake_redis, user_id=user_id, email="seeker@test.com")

        created = await async_client.post(
            "/api/v1/proposals",
            json={"user_id": user_id, "title": "Follow-up call", **_window()},
            headers=peer,
        )
        assert created.status_code == 201
        proposal = created.json()["data"]
        assert proposal["status"] == "pending"
        assert proposal["specialist_id"] == specialist_id

        pending = await async_client.get("/api/v1/proposals/pending", headers=peer)
        assert [p["id"] for p in pending.json()["data"]] == [proposal["id"]]

        answered = await async_client.post(
            f"/api/v1/proposals/{proposal['id']}/respond",
            json={"accept": True},
            headers=seeker,
        )
        assert answered.status_code == 200
        assert answered.json()["data"]["status"] == "accepted"

        again = await async_client.post(
            f"/api/v1/proposals/{proposal['id']}/respond",
            json={"accept": False},
            headers=seeker,
        )
        assert again.status_code == 409

        pending = await async_client.get("/api/v1/proposals/pending", headers=peer)
        assert pending.json()["data"] == []

    async def test_window_must_be_ordered(
        self, async_client: AsyncClient, fake_redis, seed_user, seed_specialist
    ) -> None:
        user_id = await seed_user()
        peer_user_id, _ = await seed_specialist()
        peer = make_auth_headers(
            fake_redis, user_id=peer_user_id, email="peer@test.com", role="specialist"
        )
        window = _window()
        resp = await async_client.post(
            "/api/v1/proposals",
            json={
                "user_id": user_id,
                "title": "Backwards",
                "start_at": window["end_at"],
                "end_at": window["start_at"],
            },
            headers=peer,
        )
        assert resp.status_code == 422

    async def test_users_cannot_propose(
        self, async_client: AsyncClient, fake_redis, seed_user
    ) -> None:
        user_id = await seed_user()
        seeker = make_auth_headers(fake_redis, user_id=user_id)
        resp = await async_client.post(
            "/api/v1/proposals",
            json={"user_id": user_id, "title": "Self", **_window()},
            headers=seeker,
        )
        assert resp.status_code == 403

    async def test_missing_proposal(
        self, async_client: AsyncClient, fake_redis, seed_user
    ) -> None:
        user_id = await seed_user()
        seeker = make_auth_headers(fake_redis, user_id=user_id)
        resp = await async_client.post(
            "/api/v1/proposals/42/respond", json={"accept": True}, headers=seeker
        )
        assert resp.status_code == 404
        assert resp.json()["code"] == "PROPOSAL_NOT_FOUND"
