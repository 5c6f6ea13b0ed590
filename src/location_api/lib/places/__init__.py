"""Places library: pluggable merchant location providers with caching.

Public API:
    - PlaceCandidate: Provider-neutral location dataclass
    - BasePlacesProvider: Abstract provider interface
    - PlacesProviderError / ProviderNotConfiguredError: Provider failures
    - NominatimProvider: OpenStreetMap community data (free, rate-limited)
    - GooglePlacesProvider: Google Places commercial data
    - AIDiscoveryProvider: Anthropic model recall (last resort)
    - PlacesCache / build_cache_key: Database cache store
    - get_provider: Provider factory/registry
    - build_provider_tiers: Ordered tier chain for the resolver
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from location_api.lib.places.ai_discovery import AIDiscoveryProvider
from location_api.lib.places.base import (
    BasePlacesProvider,
    PlaceCandidate,
    PlacesProviderError,
    ProviderNotConfiguredError,
)
from location_api.lib.places.cache import RESOLUTION_CACHE_TYPE, CacheHit, PlacesCache, build_cache_key
from location_api.lib.places.geo import (
    area_key,
    haversine_km,
    normalize_merchant_name,
    validate_coordinates,
    validate_search_params,
)
from location_api.lib.places.google_places import GooglePlacesProvider
from location_api.lib.places.nominatim import NominatimProvider

if TYPE_CHECKING:
    from location_api.core.config import Settings

# Provider registry: all known providers
_PROVIDERS: dict[str, type[BasePlacesProvider]] = {
    "nominatim": NominatimProvider,
    "google": GooglePlacesProvider,
    "ai": AIDiscoveryProvider,
}

# Result source label recorded for each provider's tier
_TIER_LABELS: dict[str, str] = {
    "nominatim": "community",
    "google": "commercial",
    "ai": "ai",
}

# Community data: only these tiers are held to the sufficiency threshold
_SUFFICIENCY_PROVIDERS = frozenset({"nominatim"})


@dataclass
class ProviderTier:
    """One step of the resolver's cost-ordered chain."""

    provider: BasePlacesProvider
    counts_toward_sufficiency: bool = False
    label: str | None = None

    @property
    def name(self) -> str:
        return self.provider.provider_name

    @property
    def source(self) -> str:
        """Label recorded as the result source when this tier is accepted."""
        return self.label or self.provider.provider_name


def get_available_providers() -> list[str]:
    """Return the names of all registered providers, sorted."""
    return sorted(_PROVIDERS.keys())


def get_provider(name: str, **kwargs: Any) -> BasePlacesProvider:
    """Get a provider instance by name.

    Args:
        name: Provider name (e.g., "nominatim").
        **kwargs: Forwarded to the provider constructor.

    Raises:
        ValueError: If the provider is not registered.
    """
    cls = _PROVIDERS.get(name)
    if cls is None:
        msg = f"Unknown places provider: {name!r}. Available: {list(_PROVIDERS.keys())}"
        raise ValueError(msg)
    return cls(**kwargs)


def build_provider_tiers(settings: Settings) -> list[ProviderTier]:
    """Build the resolver tier chain in ``resolver_provider_order``.

    Providers without credentials are still included; the resolver treats
    them as empty tiers at no cost. A disabled Nominatim is left out.

    Raises:
        ValueError: If the order names an unknown provider.
    """
    provider_kwargs: dict[str, dict[str, Any]] = {
        "nominatim": {
            "base_url": settings.places_nominatim_base_url,
            "timeout": settings.places_nominatim_timeout,
            "email": settings.places_nominatim_email,
            "user_agent": settings.places_nominatim_user_agent,
            "min_interval": settings.places_nominatim_min_interval,
            "limit": settings.places_nominatim_limit,
        },
        "google": {
            "api_key": settings.places_google_api_key or "",
            "timeout": settings.places_google_timeout,
            "search_cost": settings.places_google_search_cost,
            "detail_cost": settings.places_google_detail_cost,
            "max_detail_lookups": settings.places_google_max_detail_lookups,
        },
        "ai": {
            "api_key": settings.places_ai_api_key or "",
            "model": settings.places_ai_model,
            "timeout": settings.places_ai_timeout,
            "cost": settings.places_ai_cost,
        },
    }

    tiers: list[ProviderTier] = []
    seen: set[str] = set()
    for name in settings.resolver_provider_order_list:
        if name in seen:
            continue
        seen.add(name)
        if name == "nominatim" and not settings.places_nominatim_enabled:
            continue
        provider = get_provider(name, **provider_kwargs.get(name, {}))
        tiers.append(
            ProviderTier(
                provider=provider,
                counts_toward_sufficiency=name in _SUFFICIENCY_PROVIDERS,
                label=_TIER_LABELS.get(name),
            )
        )
    return tiers


__all__ = [
    "AIDiscoveryProvider",
    "BasePlacesProvider",
    "CacheHit",
    "GooglePlacesProvider",
    "NominatimProvider",
    "PlaceCandidate",
    "PlacesCache",
    "PlacesProviderError",
    "ProviderNotConfiguredError",
    "ProviderTier",
    "RESOLUTION_CACHE_TYPE",
    "area_key",
    "build_cache_key",
    "build_provider_tiers",
    "get_available_providers",
    "get_provider",
    "haversine_km",
    "normalize_merchant_name",
    "validate_coordinates",
    "validate_search_params",
]
