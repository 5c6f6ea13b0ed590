"""Fixtures for database-backed integration tests: stub providers and resolvers."""

from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from location_api.lib.places import BasePlacesProvider, PlaceCandidate, PlacesCache, ProviderTier
from location_api.lib.places.base import ProviderNotConfiguredError
from location_api.services.resolver_service import LocationResolver

LA_ANCHOR = (34.0522, -118.2437)


class StubProvider(BasePlacesProvider):
    """In-process provider returning canned candidates (or raising a canned error)."""

    def __init__(
        self,
        name: str,
        results: list[PlaceCandidate] | None = None,
        *,
        error: Exception | None = None,
        configured: bool = True,
        search_cost: float = 0.0,
        per_result_cost: float = 0.0,
    ) -> None:
        self._name = name
        self.results = list(results or [])
        self.error = error
        self._configured = configured
        self._search_cost = search_cost
        self._per_result_cost = per_result_cost
        self.calls = 0

    @property
    def provider_name(self) -> str:
        return self._name

    @property
    def is_configured(self) -> bool:
        return self._configured

    def call_cost(self, result_count: int) -> float:
        return self._search_cost + self._per_result_cost * result_count

    async def find(self, merchant_name, anchor_lat, anchor_lon, radius_km):  # noqa: ANN001, ANN201
        if not self._configured:
            raise ProviderNotConfiguredError(self._name)
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.results)


def spaced_candidates(count: int, source: str, lat: float = LA_ANCHOR[0], lon: float = LA_ANCHOR[1]) -> list:
    """Candidates about 1.1 km apart heading north from the anchor."""
    return [
        PlaceCandidate(
            name=f"Costco #{i + 1}",
            latitude=lat + i * 0.01,
            longitude=lon,
            city="Los Angeles",
            state="CA",
            country="US",
            external_id=f"{source}-{i + 1}",
            source=source,
        )
        for i in range(count)
    ]


def make_resolver(
    community: StubProvider,
    commercial: StubProvider | None = None,
    ai: StubProvider | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> LocationResolver:
    """Resolver over community/commercial/ai stubs; unconfigured stubs fill missing tiers."""
    tiers = [
        ProviderTier(community, counts_toward_sufficiency=True, label="community"),
        ProviderTier(commercial or StubProvider("google", configured=False), label="commercial"),
        ProviderTier(ai or StubProvider("ai", configured=False), label="ai"),
    ]
    cache = PlacesCache(session_factory) if session_factory is not None else None
    return LocationResolver(tiers, cache=cache, sufficiency_threshold=3, cache_ttl_days=30)


@pytest.fixture(autouse=True)
async def _drain_cache_hits(async_engine: AsyncEngine) -> AsyncGenerator[None]:  # noqa: ARG001
    """Let background hit counters finish before the test database is dropped."""
    yield
    await PlacesCache.wait_for_pending_hits()


@pytest.fixture
def community_provider() -> StubProvider:
    """Community stub returning a dozen locations around Los Angeles."""
    return StubProvider("nominatim", spaced_candidates(12, "nominatim"))


@pytest.fixture
def stub_provider() -> type[StubProvider]:
    """The stub provider class, for tests that build their own tiers."""
    return StubProvider


@pytest.fixture
def candidates():  # noqa: ANN201
    """Factory for spaced candidates."""
    return spaced_candidates


@pytest.fixture
def resolver_factory():  # noqa: ANN201
    """Factory for resolvers over stub providers."""
    return make_resolver
