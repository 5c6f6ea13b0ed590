"""Cache administration Pydantic v2 schemas."""

from datetime import datetime

from pydantic import BaseModel


class CacheTypeStats(BaseModel):
    """Statistics for one cache type."""

    cache_type: str
    entries: int
    expired: int
    total_hits: int
    oldest: datetime | None = None
    newest: datetime | None = None


class CacheStatsResponse(BaseModel):
    """Statistics for every cache type."""

    cache_types: list[CacheTypeStats]


class CachePurgeResponse(BaseModel):
    """Number of cache entries removed."""

    deleted: int
