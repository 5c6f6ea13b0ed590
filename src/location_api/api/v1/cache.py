"""Cache administration endpoints.

POST /cache/purge-expired, DELETE /cache?cache_type=, GET /cache/stats.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from location_api.core.dependencies import get_places_cache, require_cron_secret
from location_api.lib.places import PlacesCache
from location_api.schemas.cache import CachePurgeResponse, CacheStatsResponse, CacheTypeStats
from location_api.schemas.common import ErrorResponse

cache_router = APIRouter(
    prefix="/cache",
    tags=["cache"],
    dependencies=[Depends(require_cron_secret)],
    responses={401: {"model": ErrorResponse}},
)


@cache_router.post("/purge-expired", response_model=CachePurgeResponse)
async def purge_expired(cache: Annotated[PlacesCache, Depends(get_places_cache)]) -> CachePurgeResponse:
    """Delete every expired cache entry."""
    return CachePurgeResponse(deleted=await cache.purge_expired())


@cache_router.delete("", response_model=CachePurgeResponse)
async def clear(
    cache: Annotated[PlacesCache, Depends(get_places_cache)],
    cache_type: Annotated[str | None, Query()] = None,
) -> CachePurgeResponse:
    """Delete all cache entries, or only those of ``cache_type``."""
    return CachePurgeResponse(deleted=await cache.purge(cache_type))


@cache_router.get("/stats", response_model=CacheStatsResponse)
async def stats(cache: Annotated[PlacesCache, Depends(get_places_cache)]) -> CacheStatsResponse:
    """Entry counts, expired counts and hit totals per cache type."""
    return CacheStatsResponse(cache_types=[CacheTypeStats(**row) for row in await cache.stats()])
