"""Resolver service: cache-first, cost-ordered merchant location resolution."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger

from location_api.lib.places import (
    RESOLUTION_CACHE_TYPE,
    PlaceCandidate,
    PlacesCache,
    PlacesProviderError,
    ProviderNotConfiguredError,
    ProviderTier,
    build_cache_key,
    build_provider_tiers,
    validate_search_params,
)
from location_api.lib.places.geo import area_key, normalize_merchant_name, radius_bucket

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from location_api.core.config import Settings

DEFAULT_SUFFICIENCY_THRESHOLD = 3
DEFAULT_CACHE_TTL_DAYS = 30


@dataclass
class ResolutionResult:
    """Outcome of one resolution request."""

    locations: list[PlaceCandidate]
    source: str
    cost_estimate: float = 0.0
    cached: bool = False
    last_error: str | None = None
    providers_invoked: list[str] = field(default_factory=list)


class LocationResolver:
    """Resolve merchant locations near an anchor, cheapest provider first.

    Tiers are walked in order. A tier that counts toward sufficiency is
    accepted once it returns at least ``sufficiency_threshold`` results; any
    other tier is accepted as soon as it returns anything; the last tier is
    accepted whatever it returns. Accepted results replace those of earlier
    tiers. The result is labelled with the last tier that actually ran, or
    ``none`` when every provider was unconfigured.
    """

    def __init__(
        self,
        tiers: list[ProviderTier],
        cache: PlacesCache | None = None,
        sufficiency_threshold: int = DEFAULT_SUFFICIENCY_THRESHOLD,
        cache_ttl_days: int = DEFAULT_CACHE_TTL_DAYS,
    ) -> None:
        self._tiers = list(tiers)
        self._cache = cache
        self._threshold = sufficiency_threshold
        self._cache_ttl_days = cache_ttl_days

    @property
    def tiers(self) -> list[ProviderTier]:
        return list(self._tiers)

    async def resolve(
        self,
        merchant_name: str,
        anchor_lat: float,
        anchor_lon: float,
        radius_km: float,
    ) -> ResolutionResult:
        """Resolve locations for a merchant.

        Args:
            merchant_name: Merchant display name.
            anchor_lat: Anchor latitude.
            anchor_lon: Anchor longitude.
            radius_km: Search radius in kilometers.

        Returns:
            ResolutionResult with the accepted tier's locations.

        Raises:
            ValueError: On invalid input, before any cache or provider access.
        """
        validate_search_params(merchant_name, anchor_lat, anchor_lon, radius_km)
        key = build_cache_key(merchant_name, anchor_lat, anchor_lon, radius_km)

        if self._cache is not None:
            hit = await self._cache.get(RESOLUTION_CACHE_TYPE, key)
            if hit is not None:
                cached = self._from_payload(hit.payload)
                if cached is not None:
                    logger.debug(f"Resolution cache hit for {merchant_name!r} ({len(cached)} locations)")
                    return ResolutionResult(locations=cached, source="cache", cost_estimate=0.0, cached=True)

        result = await self._walk_tiers(merchant_name, anchor_lat, anchor_lon, radius_km)

        if self._cache is not None and result.source != "none" and not (result.last_error and not result.locations):
            await self._cache.set(
                RESOLUTION_CACHE_TYPE,
                key,
                {
                    "locations": [c.to_dict() for c in result.locations],
                    "source": result.source,
                    "cost_estimate": result.cost_estimate,
                    "providers_invoked": result.providers_invoked,
                },
                metadata={
                    "merchant": normalize_merchant_name(merchant_name),
                    "area_key": area_key(anchor_lat, anchor_lon),
                    "radius_bucket_km": radius_bucket(radius_km),
                },
                ttl_days=self._cache_ttl_days,
            )

        return result

    async def _walk_tiers(
        self,
        merchant_name: str,
        anchor_lat: float,
        anchor_lon: float,
        radius_km: float,
    ) -> ResolutionResult:
        if not self._tiers:
            logger.warning("No places providers configured; resolution returns nothing")
            return ResolutionResult(locations=[], source="none")

        cost = 0.0
        invoked: list[str] = []
        locations: list[PlaceCandidate] = []
        source = "none"
        # Label of the last tier that actually ran; an unconfigured tier never labels a result
        last_invoked_source = "none"
        # Error of the most recently attempted tier, cleared by a clean call
        attempt_error: str | None = None

        for index, tier in enumerate(self._tiers):
            is_last = index == len(self._tiers) - 1
            provider = tier.provider
            try:
                found = await provider.find(merchant_name, anchor_lat, anchor_lon, radius_km)
            except ProviderNotConfiguredError:
                logger.debug(f"Provider {tier.name} not configured, skipping")
                found = []
                ran = False
            except PlacesProviderError as e:
                logger.warning(f"Provider {tier.name} failed for {merchant_name!r}: {e}")
                invoked.append(tier.name)
                cost += provider.call_cost(0)
                attempt_error = str(e)
                found = []
                ran = True
            else:
                invoked.append(tier.name)
                cost += provider.call_cost(len(found))
                attempt_error = None
                ran = True

            if ran:
                last_invoked_source = tier.source

            if self._accepts(tier, found, is_last):
                locations = found
                source = tier.source if ran else last_invoked_source
                break

        last_error = attempt_error if not locations else None
        logger.info(
            f"Resolved {merchant_name!r}: {len(locations)} locations from {source} "
            f"(invoked={invoked}, cost=${cost:.3f})"
        )
        return ResolutionResult(
            locations=locations,
            source=source,
            cost_estimate=round(cost, 6),
            cached=False,
            last_error=last_error,
            providers_invoked=invoked,
        )

    def _accepts(self, tier: ProviderTier, found: list[PlaceCandidate], is_last: bool) -> bool:
        if is_last:
            return True
        if tier.counts_toward_sufficiency:
            return len(found) >= self._threshold
        return len(found) > 0

    @staticmethod
    def _from_payload(payload: Any) -> list[PlaceCandidate] | None:
        """Decode a cached payload; an undecodable payload is treated as a miss."""
        try:
            return [PlaceCandidate.from_dict(item) for item in payload["locations"]]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable cache payload: {e}")
            return None


def build_resolver(
    settings: "Settings",
    session_factory: "async_sessionmaker[AsyncSession] | None" = None,
) -> LocationResolver:
    """Create a resolver wired to the configured providers and, when given a session factory, the cache."""
    cache = PlacesCache(session_factory) if session_factory is not None else None
    return LocationResolver(
        build_provider_tiers(settings),
        cache=cache,
        sufficiency_threshold=settings.resolver_sufficiency_threshold,
        cache_ttl_days=settings.resolver_cache_ttl_days,
    )
