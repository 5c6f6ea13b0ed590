"""Location service: brand lookup and deduplicated persistence of resolved locations."""

import uuid
from datetime import UTC, datetime

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from location_api.lib.places import PlaceCandidate, haversine_km, normalize_merchant_name
from location_api.lib.places.geo import bounding_box
from location_api.models.brand import Brand
from location_api.models.brand_location import BrandLocation

DEFAULT_DEDUP_DISTANCE_M = 150.0


async def get_brand_by_name(session: AsyncSession, merchant_name: str) -> Brand | None:
    """Look up a brand by its canonical name."""
    result = await session.execute(select(Brand).where(Brand.name == normalize_merchant_name(merchant_name)))
    return result.scalar_one_or_none()


async def find_or_create_brand(session: AsyncSession, merchant_name: str, category: str | None = None) -> Brand:
    """Return the brand for a merchant, creating it (unverified) when missing.

    Args:
        session: Database session.
        merchant_name: Merchant name as entered; matched case/whitespace-insensitively.
        category: Optional brand category; fills in a missing category on an existing brand.

    Returns:
        The existing or newly flushed Brand.
    """
    category = (category or "").strip()[:50] or None
    brand = await get_brand_by_name(session, merchant_name)
    if brand is not None:
        if category and not brand.category:
            brand.category = category
            await session.flush()
        return brand

    brand = Brand(
        name=normalize_merchant_name(merchant_name),
        display_name=" ".join(merchant_name.split()),
        category=category,
        verified=False,
    )
    session.add(brand)
    await session.flush()
    logger.info(f"Created brand {brand.display_name!r} ({brand.id})")
    return brand


async def _nearby_locations(
    session: AsyncSession,
    lat: float,
    lon: float,
    radius_km: float,
    brand_id: uuid.UUID | None = None,
) -> list[BrandLocation]:
    """Brand locations within ``radius_km`` of a point (bounding-box prefilter, haversine check)."""
    min_lat, min_lon, max_lat, max_lon = bounding_box(lat, lon, radius_km)
    query = select(BrandLocation).where(
        BrandLocation.latitude.between(min_lat, max_lat),
        BrandLocation.longitude.between(min_lon, max_lon),
    )
    if brand_id is not None:
        query = query.where(BrandLocation.brand_id == brand_id)
    result = await session.execute(query)
    return [
        loc for loc in result.scalars().all() if haversine_km(lat, lon, loc.latitude, loc.longitude) <= radius_km
    ]


async def count_locations_near(
    session: AsyncSession,
    lat: float,
    lon: float,
    radius_km: float,
    brand_id: uuid.UUID | None = None,
) -> int:
    """Number of stored locations (optionally for one brand) within the radius."""
    return len(await _nearby_locations(session, lat, lon, radius_km, brand_id))


async def _is_duplicate(
    session: AsyncSession,
    brand_id: uuid.UUID,
    candidate: PlaceCandidate,
    dedup_distance_m: float,
) -> bool:
    if candidate.external_id:
        result = await session.execute(
            select(func.count())
            .select_from(BrandLocation)
            .where(
                BrandLocation.brand_id == brand_id,
                BrandLocation.external_id == candidate.external_id,
                BrandLocation.source_provider == candidate.source,
            )
        )
        if result.scalar_one() > 0:
            return True
    nearby = await _nearby_locations(
        session, candidate.latitude, candidate.longitude, dedup_distance_m / 1000.0, brand_id
    )
    return bool(nearby)


async def persist_locations(
    session: AsyncSession,
    brand: Brand,
    candidates: list[PlaceCandidate],
    dedup_distance_m: float = DEFAULT_DEDUP_DISTANCE_M,
) -> int:
    """Insert resolved candidates for a brand, skipping duplicates.

    A candidate is a duplicate when the brand already has a location with the
    same provider place id, or any location within ``dedup_distance_m``.
    Candidates inserted earlier in the same call count as existing.

    Args:
        session: Database session (flushed, not committed).
        brand: Owning brand.
        candidates: Resolved locations.
        dedup_distance_m: Proximity threshold in meters.

    Returns:
        Number of rows inserted.
    """
    inserted = 0
    now = datetime.now(UTC)
    for candidate in candidates:
        if await _is_duplicate(session, brand.id, candidate, dedup_distance_m):
            continue
        session.add(
            BrandLocation(
                brand_id=brand.id,
                name=candidate.name or brand.display_name,
                address=candidate.address,
                city=candidate.city,
                state=candidate.state,
                zip_code=candidate.zip_code,
                country=candidate.country,
                latitude=candidate.latitude,
                longitude=candidate.longitude,
                phone=candidate.phone,
                email=candidate.email,
                website=candidate.website,
                regular_hours=candidate.regular_hours,
                special_hours=candidate.special_hours,
                external_id=candidate.external_id,
                verified=False,
                source_provider=candidate.source,
                imported_at=now,
            )
        )
        await session.flush()
        inserted += 1

    logger.debug(f"Persisted {inserted}/{len(candidates)} locations for brand {brand.display_name!r}")
    return inserted
