"""Distance, grid and input-validation helpers shared by providers and services."""

import math
import re

EARTH_RADIUS_KM = 6371.0088
KM_PER_DEGREE_LAT = 111.32

# Cache/queue grid: anchors rounded to 0.1 degree (about 11 km), radii to 10 km buckets
GRID_PRECISION = 1
RADIUS_BUCKET_KM = 10

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_merchant_name(name: str) -> str:
    """Fold case and whitespace so equivalent spellings share cache and queue keys."""
    return _WHITESPACE_RE.sub(" ", name).strip().lower()


def validate_coordinates(lat: float, lon: float) -> None:
    """Validate WGS84 coordinate ranges.

    Raises:
        ValueError: If latitude or longitude is out of range or not finite.
    """
    if not (math.isfinite(lat) and -90 <= lat <= 90):
        msg = f"latitude must be between -90 and 90, got {lat}"
        raise ValueError(msg)
    if not (math.isfinite(lon) and -180 <= lon <= 180):
        msg = f"longitude must be between -180 and 180, got {lon}"
        raise ValueError(msg)


def validate_search_params(merchant_name: str, lat: float, lon: float, radius_km: float) -> None:
    """Validate a resolution request before any cache or provider access.

    Raises:
        ValueError: On an empty merchant name, a non-positive radius or
            out-of-range coordinates.
    """
    if not merchant_name or not normalize_merchant_name(merchant_name):
        msg = "merchant name must not be empty"
        raise ValueError(msg)
    if not (math.isfinite(radius_km) and radius_km > 0):
        msg = f"radius_km must be positive, got {radius_km}"
        raise ValueError(msg)
    validate_coordinates(lat, lon)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometers between two WGS84 points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, a)))


def within_radius(anchor_lat: float, anchor_lon: float, lat: float, lon: float, radius_km: float) -> bool:
    """Whether a point lies within ``radius_km`` of the anchor."""
    return haversine_km(anchor_lat, anchor_lon, lat, lon) <= radius_km


def area_key(lat: float, lon: float) -> str:
    """Grid-cell key for an anchor point, e.g. ``"33.7:-84.4"``."""
    return f"{round(lat, GRID_PRECISION):.{GRID_PRECISION}f}:{round(lon, GRID_PRECISION):.{GRID_PRECISION}f}"


def radius_bucket(radius_km: float) -> int:
    """Round a radius up to the next bucket boundary (minimum one bucket)."""
    return max(1, math.ceil(radius_km / RADIUS_BUCKET_KM)) * RADIUS_BUCKET_KM


def bounding_box(lat: float, lon: float, radius_km: float) -> tuple[float, float, float, float]:
    """Approximate bounding box around a point.

    Returns:
        ``(min_lat, min_lon, max_lat, max_lon)`` clamped to valid WGS84 ranges.
    """
    lat_delta = radius_km / KM_PER_DEGREE_LAT
    cos_lat = max(math.cos(math.radians(lat)), 0.01)
    lon_delta = radius_km / (KM_PER_DEGREE_LAT * cos_lat)
    return (
        max(-90.0, lat - lat_delta),
        max(-180.0, lon - lon_delta),
        min(90.0, lat + lat_delta),
        min(180.0, lon + lon_delta),
    )
