"""Database-backed content-keyed cache for resolution results.

Every operation runs in its own short session so that a cache failure can
never poison the caller's transaction. Read errors are treated as misses and
write errors are logged and dropped. Hit counters are updated in the
background after a read returns.
"""

import asyncio
import hashlib
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from loguru import logger
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from location_api.lib.places.geo import area_key, normalize_merchant_name, radius_bucket
from location_api.models.location_cache import LocationCache

RESOLUTION_CACHE_TYPE = "resolution"


def build_cache_key(merchant_name: str, lat: float, lon: float, radius_km: float) -> str:
    """Deterministic digest of a resolution request.

    Inputs that normalize to the same merchant, grid cell and radius bucket
    share a key.
    """
    material = f"{normalize_merchant_name(merchant_name)}|{area_key(lat, lon)}|{radius_bucket(radius_km)}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


@dataclass
class CacheHit:
    """A live cache entry."""

    payload: Any
    metadata: dict | None
    created_at: datetime
    expires_at: datetime | None
    hit_count: int


class PlacesCache:
    """Cache store over the ``location_cache`` table."""

    # Hit-counter updates still running, shared by every instance in the process
    _pending_hits: set[asyncio.Task] = set()

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, cache_type: str, key: str) -> CacheHit | None:
        """Return the live entry for ``(cache_type, key)``; expired or unreadable entries are misses.

        The hit counter is bumped by a background task.
        """
        now = datetime.now(UTC)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(LocationCache).where(
                        LocationCache.cache_type == cache_type,
                        LocationCache.cache_key == key,
                        (LocationCache.expires_at.is_(None)) | (LocationCache.expires_at > now),
                    )
                )
                entry = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Cache read failed for {cache_type}:{key[:12]}, treating as miss: {e}")
            return None
        if entry is None:
            return None

        task = asyncio.create_task(self._record_hit(entry.id, now))
        PlacesCache._pending_hits.add(task)
        task.add_done_callback(PlacesCache._pending_hits.discard)
        return CacheHit(
            payload=entry.payload,
            metadata=entry.entry_metadata,
            created_at=entry.created_at,
            expires_at=entry.expires_at,
            hit_count=entry.hit_count + 1,
        )

    async def _record_hit(self, entry_id: Any, now: datetime) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    update(LocationCache)
                    .where(LocationCache.id == entry_id)
                    .values(hit_count=LocationCache.hit_count + 1, last_hit_at=now)
                )
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.debug(f"Cache hit counter update failed: {e}")

    @classmethod
    async def wait_for_pending_hits(cls) -> None:
        """Wait until every scheduled hit-counter update has finished."""
        if cls._pending_hits:
            await asyncio.gather(*cls._pending_hits, return_exceptions=True)

    async def set(
        self,
        cache_type: str,
        key: str,
        payload: Any,
        metadata: dict | None = None,
        ttl_days: int | None = None,
    ) -> None:
        """Insert or replace an entry (last write wins). ``ttl_days=None`` never expires."""
        now = datetime.now(UTC)
        expires_at = now + timedelta(days=ttl_days) if ttl_days is not None else None
        table = LocationCache.__table__
        columns = {c.name: c for c in table.columns}
        values = {
            "cache_type": cache_type,
            "cache_key": key,
            "payload": payload,
            "metadata": metadata,
            "created_at": now,
            "expires_at": expires_at,
            "hit_count": 0,
            "last_hit_at": None,
        }
        try:
            async with self._session_factory() as session:
                insert = pg_insert if session.bind.dialect.name == "postgresql" else sqlite_insert
                stmt = insert(table).values({columns["id"]: uuid.uuid4(), **{columns[k]: v for k, v in values.items()}})
                stmt = stmt.on_conflict_do_update(
                    index_elements=[columns["cache_type"], columns["cache_key"]],
                    set_={
                        columns[k]: stmt.excluded[columns[k].key]
                        for k in values
                        if k not in ("cache_type", "cache_key")
                    },
                )
                await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Cache write failed for {cache_type}:{key[:12]}: {e}")

    async def purge_expired(self) -> int:
        """Delete every expired entry. Returns the number removed (0 on error)."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(LocationCache).where(
                        LocationCache.expires_at.is_not(None),
                        LocationCache.expires_at <= datetime.now(UTC),
                    )
                )
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Cache purge of expired entries failed: {e}")
            return 0
        removed = result.rowcount or 0
        if removed:
            logger.info(f"Purged {removed} expired cache entries")
        return removed

    async def purge(self, cache_type: str | None = None) -> int:
        """Delete all entries, or all entries of one cache type. Returns the number removed."""
        stmt = delete(LocationCache)
        if cache_type is not None:
            stmt = stmt.where(LocationCache.cache_type == cache_type)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Cache purge failed: {e}")
            return 0
        removed = result.rowcount or 0
        logger.info(f"Purged {removed} cache entries (type={cache_type or 'all'})")
        return removed

    async def stats(self) -> list[dict[str, Any]]:
        """Per cache type: entry count, expired count, total hits, oldest and newest entry."""
        now = datetime.now(UTC)
        expired = func.sum(
            case((LocationCache.expires_at.is_not(None) & (LocationCache.expires_at <= now), 1), else_=0)
        )
        stmt = (
            select(
                LocationCache.cache_type,
                func.count().label("entries"),
                expired.label("expired"),
                func.coalesce(func.sum(LocationCache.hit_count), 0).label("total_hits"),
                func.min(LocationCache.created_at).label("oldest"),
                func.max(LocationCache.created_at).label("newest"),
            )
            .group_by(LocationCache.cache_type)
            .order_by(LocationCache.cache_type)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).all()
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Cache stats query failed: {e}")
            return []
        return [
            {
                "cache_type": row.cache_type,
                "entries": row.entries,
                "expired": int(row.expired or 0),
                "total_hits": int(row.total_hits or 0),
                "oldest": row.oldest,
                "newest": row.newest,
            }
            for row in rows
        ]
