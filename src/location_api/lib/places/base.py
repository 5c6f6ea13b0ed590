"""Abstract places provider interface and the provider-neutral candidate shape."""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class PlaceCandidate:
    """A business location as reported by a places provider."""

    name: str
    latitude: float
    longitude: float
    address: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    regular_hours: dict[str, list[dict[str, str]]] | None = None
    special_hours: list[dict[str, Any]] | None = field(default=None)
    external_id: str | None = None
    source: str = "unknown"

    def __post_init__(self) -> None:
        if not (-90 <= self.latitude <= 90):
            msg = f"latitude must be between -90 and 90, got {self.latitude}"
            raise ValueError(msg)
        if not (-180 <= self.longitude <= 180):
            msg = f"longitude must be between -180 and 180, got {self.longitude}"
            raise ValueError(msg)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict (cache payload shape)."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlaceCandidate":
        """Rebuild a candidate from a cache payload, ignoring unknown keys."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


class PlacesProviderError(Exception):
    """Raised when a places provider experiences a transport or service error.

    Distinguishes provider failures (timeout, HTTP error, connection error,
    unparseable body) from a successful response with no matches (which
    returns an empty list).

    Args:
        provider_name: Name of the failing provider.
        message: Human-readable error description.
        status_code: Optional HTTP status code from the provider.
    """

    def __init__(self, provider_name: str, message: str, status_code: int | None = None) -> None:
        self.provider_name = provider_name
        self.message = message
        self.status_code = status_code
        super().__init__(f"{provider_name}: {message}")


class ProviderNotConfiguredError(PlacesProviderError):
    """Raised before any network I/O when a provider lacks required credentials."""

    def __init__(self, provider_name: str) -> None:
        super().__init__(provider_name, "Provider is not configured")


class BasePlacesProvider(ABC):
    """Abstract places provider interface. All providers must implement this."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique name identifying this provider."""

    @property
    def requires_api_key(self) -> bool:
        """Whether this provider requires an API key to function."""
        return False

    @property
    def is_configured(self) -> bool:
        """Whether this provider has all required configuration (e.g., API keys)."""
        return True

    @property
    def rate_limit_delay(self) -> float:
        """Minimum delay in seconds between requests (for rate-limited providers)."""
        return 0.0

    def call_cost(self, result_count: int) -> float:  # noqa: ARG002
        """Estimated USD cost of one ``find`` call that yielded ``result_count`` places."""
        return 0.0

    def ensure_configured(self) -> None:
        """Raise ProviderNotConfiguredError when credentials are missing."""
        if not self.is_configured:
            raise ProviderNotConfiguredError(self.provider_name)

    @abstractmethod
    async def find(
        self,
        merchant_name: str,
        anchor_lat: float,
        anchor_lon: float,
        radius_km: float,
    ) -> list[PlaceCandidate]:
        """Find locations of a merchant near an anchor point.

        Args:
            merchant_name: Merchant display name as entered by the user.
            anchor_lat: Anchor latitude (WGS84).
            anchor_lon: Anchor longitude (WGS84).
            radius_km: Search radius in kilometers.

        Returns:
            Candidates within the radius (possibly empty).

        Raises:
            ProviderNotConfiguredError: If credentials are missing.
            PlacesProviderError: On transport or service errors.
        """
