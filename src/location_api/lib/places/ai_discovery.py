"""AI discovery places provider (last resort).

Asks an Anthropic model, through the Messages API, to list known locations
of a merchant near the anchor. Results are best-effort model recall: they are
validated, filtered to the radius and stored unverified.
"""

import json
from typing import Any

import httpx
from loguru import logger

from location_api.lib.places.base import BasePlacesProvider, PlaceCandidate, PlacesProviderError
from location_api.lib.places.geo import within_radius

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-haiku-4-5"
DEFAULT_TIMEOUT = 30.0
DEFAULT_COST = 0.01
MAX_TOKENS = 2048

SYSTEM_PROMPT = """You list physical store locations of a named business.
Respond with JSON only: {"locations": [{"name": str, "address": str, "city": str,
"state": str, "zip_code": str, "country": str (ISO 3166-1 alpha-2),
"latitude": float, "longitude": float, "phone": str | null, "website": str | null}]}.
Only include locations you are confident exist. Return {"locations": []} when unsure."""


class AIDiscoveryProvider(BasePlacesProvider):
    """LLM-backed location discovery provider."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout: float = DEFAULT_TIMEOUT,
        cost: float = DEFAULT_COST,
        api_url: str = ANTHROPIC_MESSAGES_URL,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._cost = cost
        self._api_url = api_url

    @property
    def provider_name(self) -> str:
        return "ai"

    @property
    def requires_api_key(self) -> bool:
        return True

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def call_cost(self, result_count: int) -> float:  # noqa: ARG002
        """Fixed cost per invocation regardless of what came back."""
        return self._cost

    async def find(
        self,
        merchant_name: str,
        anchor_lat: float,
        anchor_lon: float,
        radius_km: float,
    ) -> list[PlaceCandidate]:
        """Ask the model for merchant locations inside the radius.

        Raises:
            ProviderNotConfiguredError: If no API key is set.
            PlacesProviderError: On transport or service errors.
        """
        self.ensure_configured()

        payload = {
            "model": self._model,
            "max_tokens": MAX_TOKENS,
            "system": SYSTEM_PROMPT,
            "messages": [
                {
                    "role": "user",
                    "content": (
                        f"Business: {merchant_name}\n"
                        f"List its locations within {radius_km:g} km of latitude {anchor_lat:.4f}, "
                        f"longitude {anchor_lon:.4f}."
                    ),
                }
            ],
        }
        headers = {
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._api_url, json=payload, headers=headers)
                response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            logger.warning("AI discovery request timed out")
            raise PlacesProviderError("ai", "Discovery request timed out") from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"AI discovery HTTP error {e.response.status_code}")
            raise PlacesProviderError(
                "ai",
                f"Provider returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"AI discovery connection error: {e}")
            raise PlacesProviderError("ai", "Connection to discovery provider failed") from e
        except ValueError as e:
            raise PlacesProviderError("ai", f"Failed to decode response: {e}") from e

        if not isinstance(body, dict):
            raise PlacesProviderError("ai", "Unexpected response shape")
        content = body.get("content") or []
        if not isinstance(content, list) or not all(isinstance(block, dict) for block in content):
            raise PlacesProviderError("ai", "Unexpected response shape")
        text = "".join(
            str(block.get("text") or "") for block in content if block.get("type") == "text"
        )
        usage = body.get("usage") if isinstance(body.get("usage"), dict) else {}
        logger.debug(
            f"AI discovery used {usage.get('input_tokens', 0)} input / {usage.get('output_tokens', 0)} output tokens"
        )
        return self._parse_response(text, merchant_name, anchor_lat, anchor_lon, radius_km)

    def _parse_response(
        self,
        text: str,
        merchant_name: str,
        anchor_lat: float,
        anchor_lon: float,
        radius_km: float,
    ) -> list[PlaceCandidate]:
        """Validate model output into in-radius candidates; invalid entries are dropped."""
        candidates: list[PlaceCandidate] = []
        for raw in parse_location_list(text):
            if not isinstance(raw, dict):
                continue
            try:
                candidate = PlaceCandidate(
                    name=str(raw.get("name") or merchant_name).strip(),
                    latitude=float(raw["latitude"]),
                    longitude=float(raw["longitude"]),
                    address=_clean(raw.get("address")),
                    city=_clean(raw.get("city")),
                    state=_clean(raw.get("state")),
                    zip_code=_clean(raw.get("zip_code")),
                    country=(_clean(raw.get("country")) or "")[:2].upper() or None,
                    phone=_clean(raw.get("phone")),
                    website=_clean(raw.get("website")),
                    source="ai",
                )
            except (KeyError, ValueError, TypeError) as e:
                logger.debug(f"Dropping invalid AI discovery entry: {e}")
                continue
            if not within_radius(anchor_lat, anchor_lon, candidate.latitude, candidate.longitude, radius_km):
                continue
            candidates.append(candidate)
        return candidates


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_location_list(text: str) -> list[Any]:
    """Parse model text into a list of location dicts.

    Accepts a bare JSON list, an object with a ``locations`` list, or either
    wrapped in markdown code fences. Returns [] when nothing parses.
    """

    def _extract(data: Any) -> list[Any]:
        if isinstance(data, dict):
            locations = data.get("locations", [])
            if isinstance(locations, list):
                return locations
        if isinstance(data, list):
            return data
        return []

    text = text.strip()
    if not text:
        return []

    try:
        return _extract(json.loads(text))
    except json.JSONDecodeError:
        pass

    if "```" in text:
        for block in text.split("```"):
            block = block.strip()
            if block.startswith("json"):
                block = block[4:].strip()
            try:
                return _extract(json.loads(block))
            except json.JSONDecodeError:
                continue

    logger.warning(f"Failed to parse AI discovery response: {text[:200]}")
    return []
