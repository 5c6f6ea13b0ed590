"""Google Places API (New) provider (commercial data).

Uses Text Search (https://developers.google.com/maps/documentation/places/web-service/text-search)
with a circular location bias, then Place Details for contact info and hours.
Requires an API key; every call is billed.
"""

from typing import Any

import httpx
from loguru import logger

from location_api.lib.places.base import BasePlacesProvider, PlaceCandidate, PlacesProviderError
from location_api.lib.places.geo import within_radius
from location_api.lib.places.hours import parse_google_periods, parse_google_special_days

GOOGLE_PLACES_API_URL = "https://places.googleapis.com/v1"
DEFAULT_TIMEOUT = 10.0
DEFAULT_SEARCH_COST = 0.032
DEFAULT_DETAIL_COST = 0.017
DEFAULT_MAX_DETAIL_LOOKUPS = 20

# locationBias circles are capped at 50 km by the API
MAX_BIAS_RADIUS_M = 50_000.0

_SEARCH_FIELDS = "places.id,places.displayName,places.formattedAddress,places.location,places.addressComponents"
_DETAIL_FIELDS = (
    "id,nationalPhoneNumber,internationalPhoneNumber,websiteUri,regularOpeningHours,currentOpeningHours"
)


class GooglePlacesProvider(BasePlacesProvider):
    """Google Places provider."""

    def __init__(
        self,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT,
        search_cost: float = DEFAULT_SEARCH_COST,
        detail_cost: float = DEFAULT_DETAIL_COST,
        max_detail_lookups: int = DEFAULT_MAX_DETAIL_LOOKUPS,
        base_url: str = GOOGLE_PLACES_API_URL,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._search_cost = search_cost
        self._detail_cost = detail_cost
        self._max_detail_lookups = max_detail_lookups
        self._base_url = base_url.rstrip("/")

    @property
    def provider_name(self) -> str:
        return "google"

    @property
    def requires_api_key(self) -> bool:
        return True

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def call_cost(self, result_count: int) -> float:
        """One text search plus one details lookup per returned place (capped)."""
        lookups = min(max(result_count, 0), self._max_detail_lookups)
        return self._search_cost + self._detail_cost * lookups

    async def find(
        self,
        merchant_name: str,
        anchor_lat: float,
        anchor_lon: float,
        radius_km: float,
    ) -> list[PlaceCandidate]:
        """Search Google Places for merchant locations inside the radius.

        Raises:
            ProviderNotConfiguredError: If no API key is set.
            PlacesProviderError: On transport, service, or parse errors of the search call.
        """
        self.ensure_configured()

        body = {
            "textQuery": merchant_name,
            "pageSize": 20,
            "locationBias": {
                "circle": {
                    "center": {"latitude": anchor_lat, "longitude": anchor_lon},
                    "radius": min(radius_km * 1000.0, MAX_BIAS_RADIUS_M),
                }
            },
        }
        headers = {"X-Goog-Api-Key": self._api_key, "X-Goog-FieldMask": _SEARCH_FIELDS}

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            data = await self._request(client, "POST", f"{self._base_url}/places:searchText", headers, json=body)
            candidates = self._parse_search_response(data, anchor_lat, anchor_lon, radius_km)
            for candidate in candidates[: self._max_detail_lookups]:
                await self._add_details(client, candidate)

        return candidates

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        headers: dict[str, str],
        **kwargs: Any,
    ) -> dict[str, Any]:
        try:
            response = await client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.warning("Google Places request timed out")
            raise PlacesProviderError("google", "Places request timed out") from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"Google Places HTTP error {e.response.status_code}")
            raise PlacesProviderError(
                "google",
                f"Provider returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"Google Places connection error: {e}")
            raise PlacesProviderError("google", "Connection to places provider failed") from e
        except ValueError as e:
            raise PlacesProviderError("google", f"Failed to decode response: {e}") from e

        if not isinstance(data, dict):
            raise PlacesProviderError("google", "Unexpected response shape")
        return data

    async def _add_details(self, client: httpx.AsyncClient, candidate: PlaceCandidate) -> None:
        """Fill phone, website and hours from Place Details; failures keep the base place."""
        if not candidate.external_id:
            return
        headers = {"X-Goog-Api-Key": self._api_key, "X-Goog-FieldMask": _DETAIL_FIELDS}
        try:
            details = await self._request(client, "GET", f"{self._base_url}/places/{candidate.external_id}", headers)
        except PlacesProviderError as e:
            logger.info(f"Place details unavailable for {candidate.external_id}: {e.message}")
            return
        try:
            self._apply_details(candidate, details)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.info(f"Ignoring malformed place details for {candidate.external_id}: {e!r}")

    @staticmethod
    def _apply_details(candidate: PlaceCandidate, details: dict[str, Any]) -> None:
        regular_hours = parse_google_periods(details.get("regularOpeningHours"))
        special_hours = parse_google_special_days(details.get("currentOpeningHours"))
        candidate.phone = details.get("nationalPhoneNumber") or details.get("internationalPhoneNumber")
        candidate.website = details.get("websiteUri")
        candidate.regular_hours = regular_hours
        candidate.special_hours = special_hours

    def _parse_search_response(
        self,
        data: dict[str, Any],
        anchor_lat: float,
        anchor_lon: float,
        radius_km: float,
    ) -> list[PlaceCandidate]:
        """Parse a Text Search body into in-radius candidates.

        Args:
            data: Raw JSON response from ``places:searchText``.
            anchor_lat: Anchor latitude.
            anchor_lon: Anchor longitude.
            radius_km: Search radius in kilometers.

        Returns:
            Candidates inside the radius, in provider order.
        """
        candidates: list[PlaceCandidate] = []
        for place in data.get("places") or []:
            try:
                location = place["location"]
                components = self._address_components(place.get("addressComponents") or [])
                candidate = PlaceCandidate(
                    name=(place.get("displayName") or {}).get("text") or "",
                    latitude=float(location["latitude"]),
                    longitude=float(location["longitude"]),
                    address=components.get("street") or place.get("formattedAddress"),
                    city=components.get("locality"),
                    state=components.get("administrative_area_level_1"),
                    zip_code=components.get("postal_code"),
                    country=components.get("country"),
                    external_id=place.get("id"),
                    source="google",
                )
            except (KeyError, ValueError, TypeError) as e:
                logger.debug(f"Skipping malformed Google place: {e}")
                continue
            if not candidate.name:
                continue
            if not within_radius(anchor_lat, anchor_lon, candidate.latitude, candidate.longitude, radius_km):
                continue
            candidates.append(candidate)
        return candidates

    @staticmethod
    def _address_components(components: list[dict[str, Any]]) -> dict[str, str]:
        """Flatten ``addressComponents`` into a type → text map with a combined street line."""
        by_type: dict[str, str] = {}
        for component in components:
            for kind in component.get("types") or []:
                short = kind in ("administrative_area_level_1", "country")
                text = component.get("shortText" if short else "longText") or component.get("longText")
                if text and kind not in by_type:
                    by_type[kind] = text
        street = " ".join(p for p in (by_type.get("street_number"), by_type.get("route")) if p)
        if street:
            by_type["street"] = street
        return by_type
