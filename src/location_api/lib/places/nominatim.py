"""OpenStreetMap Nominatim places provider (community data).

Uses the Nominatim search API (https://nominatim.org/release-docs/develop/api/Search/)
restricted to a bounded viewbox around the anchor. Free, but the public
instance allows at most one request per second, so calls from this process
are serialized and spaced by ``min_interval``.
"""

import asyncio
import time
from typing import Any

import httpx
from loguru import logger

from location_api.lib.places.base import BasePlacesProvider, PlaceCandidate, PlacesProviderError
from location_api.lib.places.geo import bounding_box, normalize_merchant_name, within_radius
from location_api.lib.places.hours import parse_osm_opening_hours

NOMINATIM_BASE_URL = "https://nominatim.openstreetmap.org"
DEFAULT_TIMEOUT = 10.0
DEFAULT_USER_AGENT = "location-api/1.0"
DEFAULT_MIN_INTERVAL = 1.0
DEFAULT_LIMIT = 50


class NominatimProvider(BasePlacesProvider):
    """OpenStreetMap Nominatim provider."""

    # Shared by every instance in the process
    _lock: asyncio.Lock | None = None
    _lock_loop: asyncio.AbstractEventLoop | None = None
    _last_call: float | None = None

    def __init__(
        self,
        base_url: str = NOMINATIM_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        email: str = "",
        user_agent: str = DEFAULT_USER_AGENT,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        limit: int = DEFAULT_LIMIT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._email = email
        self._user_agent = user_agent
        self._min_interval = max(min_interval, DEFAULT_MIN_INTERVAL)
        self._limit = limit

    @property
    def provider_name(self) -> str:
        return "nominatim"

    @property
    def rate_limit_delay(self) -> float:
        return self._min_interval

    @classmethod
    def _get_lock(cls) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if cls._lock is None or cls._lock_loop is not loop:
            cls._lock = asyncio.Lock()
            cls._lock_loop = loop
        return cls._lock

    async def _wait_for_slot(self) -> None:
        """Sleep until ``min_interval`` has elapsed since the previous call. Caller holds the lock."""
        last = type(self)._last_call
        if last is not None:
            remaining = self._min_interval - (time.monotonic() - last)
            if remaining > 0:
                await asyncio.sleep(remaining)

    async def find(
        self,
        merchant_name: str,
        anchor_lat: float,
        anchor_lon: float,
        radius_km: float,
    ) -> list[PlaceCandidate]:
        """Search Nominatim for merchant locations inside the radius.

        Raises:
            PlacesProviderError: On transport or service errors.
        """
        min_lat, min_lon, max_lat, max_lon = bounding_box(anchor_lat, anchor_lon, radius_km)
        params: dict[str, str | int] = {
            "q": merchant_name,
            "format": "jsonv2",
            "limit": self._limit,
            "addressdetails": 1,
            "extratags": 1,
            "namedetails": 1,
            "bounded": 1,
            "viewbox": f"{min_lon},{max_lat},{max_lon},{min_lat}",
        }
        if self._email:
            params["email"] = self._email

        headers = {"User-Agent": self._user_agent}

        async with self._get_lock():
            await self._wait_for_slot()
            try:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(f"{self._base_url}/search", params=params, headers=headers)
                    response.raise_for_status()
                data = response.json()
            except httpx.TimeoutException as e:
                logger.warning("Nominatim places search timed out")
                raise PlacesProviderError("nominatim", "Search request timed out") from e
            except httpx.HTTPStatusError as e:
                logger.warning(f"Nominatim places search HTTP error {e.response.status_code}")
                raise PlacesProviderError(
                    "nominatim",
                    f"Provider returned HTTP {e.response.status_code}",
                    status_code=e.response.status_code,
                ) from e
            except httpx.HTTPError as e:
                logger.warning(f"Nominatim places search connection error: {e}")
                raise PlacesProviderError("nominatim", "Connection to places provider failed") from e
            except ValueError as e:
                raise PlacesProviderError("nominatim", f"Failed to decode response: {e}") from e
            finally:
                type(self)._last_call = time.monotonic()

        return self._parse_response(data, merchant_name, anchor_lat, anchor_lon, radius_km)

    def _parse_response(
        self,
        data: Any,
        merchant_name: str,
        anchor_lat: float,
        anchor_lon: float,
        radius_km: float,
    ) -> list[PlaceCandidate]:
        """Turn Nominatim results into candidates matching the merchant inside the radius.

        Args:
            data: Raw JSON response (list of results) from Nominatim.
            merchant_name: Merchant name being searched.
            anchor_lat: Anchor latitude.
            anchor_lon: Anchor longitude.
            radius_km: Search radius in kilometers.

        Returns:
            Matching candidates; malformed entries are skipped.

        Raises:
            PlacesProviderError: If the body is not a JSON list.
        """
        if not isinstance(data, list):
            raise PlacesProviderError("nominatim", "Unexpected response shape")

        wanted = normalize_merchant_name(merchant_name)
        candidates: list[PlaceCandidate] = []
        seen: set[str] = set()
        for item in data:
            if not isinstance(item, dict):
                continue
            extratags = item.get("extratags") or {}
            name = item.get("name") or (item.get("display_name") or "").split(",")[0].strip()
            if not self._matches(wanted, name, extratags):
                continue
            try:
                lat = float(item["lat"])
                lon = float(item["lon"])
                address = item.get("address") or {}
                candidate = PlaceCandidate(
                    name=name or merchant_name,
                    latitude=lat,
                    longitude=lon,
                    address=self._street_address(address) or item.get("display_name"),
                    city=address.get("city") or address.get("town") or address.get("village"),
                    state=address.get("state"),
                    zip_code=address.get("postcode"),
                    country=(address.get("country_code") or "").upper() or None,
                    phone=extratags.get("phone") or extratags.get("contact:phone"),
                    email=extratags.get("email") or extratags.get("contact:email"),
                    website=extratags.get("website") or extratags.get("contact:website"),
                    regular_hours=parse_osm_opening_hours(extratags.get("opening_hours")),
                    external_id=f"{item.get('osm_type', 'node')}:{item['osm_id']}" if "osm_id" in item else None,
                    source="nominatim",
                )
            except (KeyError, ValueError, TypeError) as e:
                logger.debug(f"Skipping malformed Nominatim result: {e}")
                continue
            if not within_radius(anchor_lat, anchor_lon, candidate.latitude, candidate.longitude, radius_km):
                continue
            dedup = candidate.external_id or f"{lat:.5f}:{lon:.5f}"
            if dedup in seen:
                continue
            seen.add(dedup)
            candidates.append(candidate)

        logger.debug(f"Nominatim returned {len(data)} results, {len(candidates)} matched")
        return candidates

    @staticmethod
    def _matches(wanted: str, name: str, extratags: dict[str, Any]) -> bool:
        for value in (name, extratags.get("brand"), extratags.get("operator")):
            if value and wanted in normalize_merchant_name(str(value)):
                return True
        return False

    @staticmethod
    def _street_address(address: dict[str, Any]) -> str | None:
        parts = [address.get("house_number"), address.get("road")]
        street = " ".join(p for p in parts if p)
        return street or None
