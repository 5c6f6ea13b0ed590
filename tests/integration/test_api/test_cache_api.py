"""Integration tests for the cache administration endpoints."""

from unittest.mock import patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from location_api.core.config import Settings, get_settings
from location_api.core.dependencies import get_places_cache
from location_api.lib.places import RESOLUTION_CACHE_TYPE, PlacesCache
from location_api.main import create_app


@pytest.fixture
def cache(session_factory) -> PlacesCache:
    return PlacesCache(session_factory)


@pytest.fixture
def client(settings: Settings, cache: PlacesCache) -> AsyncClient:
    with patch("location_api.main.get_settings", return_value=settings):
        app: FastAPI = create_app()
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_places_cache] = lambda: cache
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def auth(settings: Settings) -> dict[str, str]:
    return {"Authorization": f"Bearer {settings.cron_secret}"}


class TestCacheEndpoints:
    """Tests for /cache routes."""

    async def test_requires_secret(self, client: AsyncClient) -> None:
        assert (await client.get("/api/v1/cache/stats")).status_code == 401

    async def test_stats(self, client: AsyncClient, cache: PlacesCache, auth: dict) -> None:
        await cache.set(RESOLUTION_CACHE_TYPE, "a", {"locations": []}, ttl_days=30)
        await cache.set(RESOLUTION_CACHE_TYPE, "b", {"locations": []}, ttl_days=0)

        response = await client.get("/api/v1/cache/stats", headers=auth)

        assert response.status_code == 200
        [row] = response.json()["cache_types"]
        assert row["cache_type"] == RESOLUTION_CACHE_TYPE
        assert row["entries"] == 2
        assert row["expired"] == 1

    async def test_purge_expired(self, client: AsyncClient, cache: PlacesCache, auth: dict) -> None:
        await cache.set(RESOLUTION_CACHE_TYPE, "a", {"locations": []}, ttl_days=30)
        await cache.set(RESOLUTION_CACHE_TYPE, "b", {"locations": []}, ttl_days=0)

        response = await client.post("/api/v1/cache/purge-expired", headers=auth)

        assert response.json() == {"deleted": 1}
        assert await cache.get(RESOLUTION_CACHE_TYPE, "a") is not None

    async def test_clear_by_type(self, client: AsyncClient, cache: PlacesCache, auth: dict) -> None:
        await cache.set(RESOLUTION_CACHE_TYPE, "a", {"locations": []}, ttl_days=30)
        await cache.set("other", "b", {"locations": []}, ttl_days=30)

        response = await client.delete("/api/v1/cache", params={"cache_type": "other"}, headers=auth)
        assert response.json() == {"deleted": 1}

        response = await client.delete("/api/v1/cache", headers=auth)
        assert response.json() == {"deleted": 1}
