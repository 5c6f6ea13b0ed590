"""Unit tests for the tiered location resolver."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from location_api.core.config import Settings
from location_api.lib.places import (
    AIDiscoveryProvider,
    RESOLUTION_CACHE_TYPE,
    CacheHit,
    GooglePlacesProvider,
    PlaceCandidate,
    PlacesCache,
    PlacesProviderError,
    ProviderNotConfiguredError,
    ProviderTier,
    build_cache_key,
)
from location_api.services.resolver_service import LocationResolver, build_resolver

ANCHOR = (34.0522, -118.2437)


def _candidates(count: int, source: str) -> list[PlaceCandidate]:
    return [
        PlaceCandidate(name=f"Costco {i}", latitude=34.0 + i * 0.01, longitude=-118.2, source=source)
        for i in range(count)
    ]


def _provider(name: str, *, results=None, error: Exception | None = None, cost=0.0) -> MagicMock:
    provider = MagicMock()
    provider.provider_name = name
    provider.find = AsyncMock(side_effect=error) if error else AsyncMock(return_value=results or [])
    provider.call_cost = MagicMock(side_effect=cost if callable(cost) else lambda _n: cost)
    return provider


def _tiers(community: MagicMock, commercial: MagicMock, ai: MagicMock) -> list[ProviderTier]:
    return [
        ProviderTier(community, counts_toward_sufficiency=True, label="community"),
        ProviderTier(commercial, label="commercial"),
        ProviderTier(ai, label="ai"),
    ]


@pytest.fixture
def cache() -> AsyncMock:
    mock = AsyncMock(spec=PlacesCache)
    mock.get.return_value = None
    return mock


class TestTiering:
    """Tests for cost-ordered tier selection."""

    async def test_sufficient_community_results_skip_paid_tiers(self) -> None:
        community = _provider("nominatim", results=_candidates(12, "nominatim"))
        commercial = _provider("google", results=_candidates(8, "google"), cost=0.2)
        ai = _provider("ai", results=_candidates(1, "ai"), cost=0.01)
        resolver = LocationResolver(_tiers(community, commercial, ai))

        result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.source == "community"
        assert len(result.locations) == 12
        assert result.cost_estimate == 0.0
        assert result.providers_invoked == ["nominatim"]
        commercial.find.assert_not_awaited()
        ai.find.assert_not_awaited()

    async def test_commercial_results_replace_community(self) -> None:
        commercial_results = _candidates(8, "google")
        community = _provider("nominatim", results=_candidates(1, "nominatim"))
        commercial = _provider("google", results=commercial_results, cost=lambda n: 0.032 + 0.017 * n)
        ai = _provider("ai", cost=0.01)
        resolver = LocationResolver(_tiers(community, commercial, ai))

        result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.source == "commercial"
        assert result.locations == commercial_results
        assert result.cost_estimate == pytest.approx(0.032 + 0.017 * 8)
        assert result.providers_invoked == ["nominatim", "google"]
        ai.find.assert_not_awaited()

    async def test_ai_is_last_resort(self) -> None:
        community = _provider("nominatim", results=_candidates(2, "nominatim"))
        commercial = _provider("google", results=[], cost=0.032)
        ai = _provider("ai", results=_candidates(3, "ai"), cost=0.01)
        resolver = LocationResolver(_tiers(community, commercial, ai))

        result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.source == "ai"
        assert len(result.locations) == 3
        assert result.cost_estimate == pytest.approx(0.042)

    async def test_last_tier_accepted_even_when_empty(self) -> None:
        community = _provider("nominatim", results=_candidates(2, "nominatim"))
        commercial = _provider("google", results=[])
        ai = _provider("ai", results=[], cost=0.01)
        resolver = LocationResolver(_tiers(community, commercial, ai))

        result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.source == "ai"
        assert result.locations == []
        assert result.last_error is None

    async def test_custom_threshold(self) -> None:
        community = _provider("nominatim", results=_candidates(2, "nominatim"))
        commercial = _provider("google", results=_candidates(5, "google"))
        resolver = LocationResolver(_tiers(community, commercial, _provider("ai")), sufficiency_threshold=2)

        result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.source == "community"
        commercial.find.assert_not_awaited()

    async def test_no_tiers(self) -> None:
        result = await LocationResolver([]).resolve("Costco", *ANCHOR, 50.0)
        assert result.source == "none"
        assert result.locations == []


class TestProviderFailures:
    """Tests for unconfigured and failing providers."""

    async def test_unconfigured_providers_cost_nothing(self) -> None:
        community = _provider("nominatim", results=[])
        commercial = _provider("google", error=ProviderNotConfiguredError("google"), cost=0.032)
        ai = _provider("ai", error=ProviderNotConfiguredError("ai"), cost=0.01)
        resolver = LocationResolver(_tiers(community, commercial, ai))

        result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.locations == []
        assert result.cost_estimate == 0.0
        assert result.source == "community"
        assert result.providers_invoked == ["nominatim"]
        assert result.last_error is None
        commercial.call_cost.assert_not_called()

    async def test_all_unconfigured_labelled_none_and_not_cached(self, cache: AsyncMock) -> None:
        tiers = _tiers(
            _provider("nominatim", error=ProviderNotConfiguredError("nominatim")),
            _provider("google", error=ProviderNotConfiguredError("google")),
            _provider("ai", error=ProviderNotConfiguredError("ai")),
        )
        resolver = LocationResolver(tiers, cache=cache)

        result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.source == "none"
        assert result.providers_invoked == []
        cache.set.assert_not_awaited()

    async def test_unconfigured_last_tier_keeps_last_invoked_label(self) -> None:
        community = _provider("nominatim", results=_candidates(1, "nominatim"))
        commercial = _provider("google", results=[], cost=0.032)
        ai = _provider("ai", error=ProviderNotConfiguredError("ai"))
        resolver = LocationResolver(_tiers(community, commercial, ai))

        result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.source == "commercial"
        assert result.providers_invoked == ["nominatim", "google"]

    async def test_community_error_continues_chain(self) -> None:
        community = _provider("nominatim", error=PlacesProviderError("nominatim", "Search request timed out"))
        commercial = _provider("google", results=_candidates(4, "google"), cost=0.1)
        resolver = LocationResolver(_tiers(community, commercial, _provider("ai")))

        result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.source == "commercial"
        assert len(result.locations) == 4
        assert result.last_error is None

    async def test_failed_paid_call_still_costs(self) -> None:
        community = _provider("nominatim", results=[])
        commercial = _provider("google", error=PlacesProviderError("google", "HTTP 500", 500), cost=0.032)
        ai = _provider("ai", error=PlacesProviderError("ai", "timed out"), cost=0.01)
        resolver = LocationResolver(_tiers(community, commercial, ai))

        result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.locations == []
        assert result.cost_estimate == pytest.approx(0.042)
        assert result.providers_invoked == ["nominatim", "google", "ai"]
        assert result.last_error == "ai: timed out"

    async def test_last_error_from_last_attempted_tier(self) -> None:
        error = PlacesProviderError("nominatim", "Connection to places provider failed")
        community = _provider("nominatim", error=error)
        commercial = _provider("google", error=ProviderNotConfiguredError("google"))
        ai = _provider("ai", error=ProviderNotConfiguredError("ai"))
        resolver = LocationResolver(_tiers(community, commercial, ai))

        result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.locations == []
        assert result.last_error == "nominatim: Connection to places provider failed"

    async def test_clean_call_clears_earlier_error(self) -> None:
        community = _provider("nominatim", error=PlacesProviderError("nominatim", "timed out"))
        commercial = _provider("google", results=[])
        ai = _provider("ai", error=ProviderNotConfiguredError("ai"))
        resolver = LocationResolver(_tiers(community, commercial, ai))

        result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.locations == []
        assert result.last_error is None


def _json_response(data: object) -> MagicMock:
    response = MagicMock()
    response.json.return_value = data
    response.raise_for_status = MagicMock()
    return response


class TestMalformedProviderData:
    """Unexpected payload shapes from real adapters never break the chain."""

    async def test_malformed_google_details_keep_chain_going(self) -> None:
        community = _provider("nominatim", results=_candidates(1, "nominatim"))
        google = GooglePlacesProvider(api_key="test-key")
        search = _json_response(
            {
                "places": [
                    {
                        "id": "ChIJ1",
                        "displayName": {"text": "Costco"},
                        "location": {"latitude": 34.06, "longitude": -118.24},
                    }
                ]
            }
        )
        details = _json_response({"currentOpeningHours": {"specialDays": [{"date": {"month": 12, "day": 25}}]}})
        resolver = LocationResolver(_tiers(community, google, _provider("ai")))

        with patch("httpx.AsyncClient.request", new_callable=AsyncMock, side_effect=[search, details]):
            result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.source == "commercial"
        assert [loc.external_id for loc in result.locations] == ["ChIJ1"]
        assert result.last_error is None

    async def test_malformed_ai_body_is_a_provider_error(self) -> None:
        community = _provider("nominatim", results=[])
        google = GooglePlacesProvider(api_key="")
        ai = AIDiscoveryProvider(api_key="test-key", cost=0.01)
        resolver = LocationResolver(_tiers(community, google, ai))

        with patch("httpx.AsyncClient.post", new_callable=AsyncMock, return_value=_json_response(["oops"])):
            result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.locations == []
        assert result.source == "ai"
        assert result.providers_invoked == ["nominatim", "ai"]
        assert result.cost_estimate == pytest.approx(0.01)
        assert result.last_error == "ai: Unexpected response shape"


class TestValidation:
    """Tests for input rejection before any I/O."""

    @pytest.mark.parametrize(
        ("name", "lat", "lon", "radius"),
        [
            ("Costco", ANCHOR[0], ANCHOR[1], -5.0),
            ("Costco", ANCHOR[0], ANCHOR[1], 0.0),
            ("", ANCHOR[0], ANCHOR[1], 50.0),
            ("Costco", 95.0, ANCHOR[1], 50.0),
            ("Costco", ANCHOR[0], 200.0, 50.0),
        ],
    )
    async def test_invalid_input_touches_nothing(self, cache: AsyncMock, name, lat, lon, radius) -> None:
        community = _provider("nominatim")
        commercial = _provider("google")
        ai = _provider("ai")
        resolver = LocationResolver(_tiers(community, commercial, ai), cache=cache)

        with pytest.raises(ValueError):
            await resolver.resolve(name, lat, lon, radius)

        community.find.assert_not_awaited()
        commercial.find.assert_not_awaited()
        ai.find.assert_not_awaited()
        cache.get.assert_not_awaited()
        cache.set.assert_not_awaited()


class TestCaching:
    """Tests for cache reads and writes."""

    async def test_cache_hit_skips_providers(self, cache: AsyncMock) -> None:
        cached = _candidates(2, "nominatim")
        cache.get.return_value = CacheHit(
            payload={"locations": [c.to_dict() for c in cached], "source": "community", "cost_estimate": 0.0},
            metadata=None,
            created_at=MagicMock(),
            expires_at=None,
            hit_count=1,
        )
        community = _provider("nominatim", results=_candidates(5, "nominatim"))
        resolver = LocationResolver(_tiers(community, _provider("google"), _provider("ai")), cache=cache)

        result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.source == "cache"
        assert result.cached is True
        assert result.cost_estimate == 0.0
        assert result.locations == cached
        community.find.assert_not_awaited()
        cache.get.assert_awaited_once_with(RESOLUTION_CACHE_TYPE, build_cache_key("Costco", *ANCHOR, 50.0))

    async def test_unreadable_payload_is_a_miss(self, cache: AsyncMock) -> None:
        cache.get.return_value = CacheHit(
            payload={"unexpected": True}, metadata=None, created_at=MagicMock(), expires_at=None, hit_count=1
        )
        community = _provider("nominatim", results=_candidates(3, "nominatim"))
        resolver = LocationResolver(_tiers(community, _provider("google"), _provider("ai")), cache=cache)

        result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.source == "community"
        community.find.assert_awaited_once()

    async def test_result_cached_with_ttl(self, cache: AsyncMock) -> None:
        community = _provider("nominatim", results=_candidates(3, "nominatim"))
        resolver = LocationResolver(
            _tiers(community, _provider("google"), _provider("ai")), cache=cache, cache_ttl_days=30
        )

        await resolver.resolve("  COSTCO ", *ANCHOR, 47.0)

        cache.set.assert_awaited_once()
        args = cache.set.await_args
        assert args.args[0] == RESOLUTION_CACHE_TYPE
        assert args.args[1] == build_cache_key("costco", *ANCHOR, 50.0)
        payload = args.args[2]
        assert payload["source"] == "community"
        assert len(payload["locations"]) == 3
        assert args.kwargs["metadata"] == {"merchant": "costco", "area_key": "34.1:-118.2", "radius_bucket_km": 50}
        assert args.kwargs["ttl_days"] == 30

    async def test_empty_result_without_error_is_cached(self, cache: AsyncMock) -> None:
        resolver = LocationResolver(
            _tiers(_provider("nominatim"), _provider("google"), _provider("ai")), cache=cache
        )
        await resolver.resolve("Costco", *ANCHOR, 50.0)
        cache.set.assert_awaited_once()
        assert cache.set.await_args.args[2]["locations"] == []

    async def test_errored_empty_result_not_cached(self, cache: AsyncMock) -> None:
        failing = _provider("nominatim", error=PlacesProviderError("nominatim", "timed out"))
        resolver = LocationResolver(
            _tiers(
                failing,
                _provider("google", error=ProviderNotConfiguredError("google")),
                _provider("ai", error=ProviderNotConfiguredError("ai")),
            ),
            cache=cache,
        )

        result = await resolver.resolve("Costco", *ANCHOR, 50.0)

        assert result.last_error is not None
        cache.set.assert_not_awaited()


class TestBuildResolver:
    """Tests for the settings-driven factory."""

    def test_without_session_factory_has_no_cache(self) -> None:
        settings = Settings(
            database_url="sqlite+aiosqlite:///:memory:",
            cron_secret="resolver-test-secret-0123",
            resolver_sufficiency_threshold=5,
        )
        resolver = build_resolver(settings)
        assert resolver._cache is None
        assert resolver._threshold == 5
        assert [t.source for t in resolver.tiers] == ["community", "commercial", "ai"]

    def test_with_session_factory_has_cache(self) -> None:
        settings = Settings(database_url="sqlite+aiosqlite:///:memory:", cron_secret="resolver-test-secret-0123")
        resolver = build_resolver(settings, MagicMock())
        assert isinstance(resolver._cache, PlacesCache)
