"""Tests for the health and version endpoints."""
from httpx import AsyncClient


class TestHealthEndpoint:
    async def test_healthz(self, client: AsyncClient):
        response = await client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"ok": True, "catalogue": True, "database": True}

    async def test_version(self, client: AsyncClient):
        response = await client.get("/version")
        data = response.json()
        assert data["service"] == "catalogue-console"
        assert data["version"] == "0.1.0"
        assert "git_sha" in data

    async def test_unknown_route_is_json(self, client: AsyncClient):
        response = await client.get("/api/nothing-here")
        assert response.status_code == 404
        assert response.json() == {"detail": "Not Found"}
