"""Import queue service: durable job queue for location imports.

Jobs move ``pending → processing → completed | pending (retry) | failed``.
The pending→processing claim is a single UPDATE so overlapping processors
never claim the same job.
"""

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from loguru import logger
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from location_api.lib.places import area_key, normalize_merchant_name, validate_search_params
from location_api.models.import_job import ImportJob
from location_api.services.location_service import count_locations_near, find_or_create_brand, get_brand_by_name

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
JOB_STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_COMPLETED, STATUS_FAILED)
ACTIVE_STATUSES = (STATUS_PENDING, STATUS_PROCESSING)

ADDED_REASONS = ("manual", "card_created", "scheduled", "initial")

DEFAULT_PRIORITY = 100
CARD_CREATED_PRIORITY = 10
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RADIUS_KM = 100.0

# Geographic center of the contiguous US, used when a backfill entry has no anchor
DEFAULT_ANCHOR = (39.8283, -98.5795)

MAX_ERROR_LENGTH = 1000


def _truncate_error(error: str) -> str:
    return error if len(error) <= MAX_ERROR_LENGTH else error[: MAX_ERROR_LENGTH - 3] + "..."


async def find_active_job(session: AsyncSession, merchant_name: str, lat: float, lon: float) -> ImportJob | None:
    """Return the pending/processing job for the same merchant and area, if any."""
    result = await session.execute(
        select(ImportJob).where(
            ImportJob.merchant_key == normalize_merchant_name(merchant_name),
            ImportJob.area_key == area_key(lat, lon),
            ImportJob.status.in_(ACTIVE_STATUSES),
        )
    )
    return result.scalars().first()


async def enqueue_job(
    session: AsyncSession,
    *,
    merchant_name: str,
    latitude: float,
    longitude: float,
    radius_km: float = DEFAULT_RADIUS_KM,
    priority: int = DEFAULT_PRIORITY,
    added_reason: str = "manual",
    added_by: str | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> tuple[ImportJob, bool]:
    """Enqueue an import job unless an equivalent one is already pending or processing.

    Args:
        session: Database session.
        merchant_name: Merchant to import.
        latitude: Anchor latitude.
        longitude: Anchor longitude.
        radius_km: Search radius in kilometers.
        priority: Lower runs sooner.
        added_reason: One of ``manual``, ``card_created``, ``scheduled``, ``initial``.
        added_by: Free-form identifier of the requester.
        max_attempts: Attempts before the job is terminally failed.

    Returns:
        Tuple of (job, created). ``created`` is False when an existing active
        job was returned instead.

    Raises:
        ValueError: On invalid input; nothing is persisted.
    """
    validate_search_params(merchant_name, latitude, longitude, radius_km)
    if added_reason not in ADDED_REASONS:
        msg = f"added_reason must be one of {list(ADDED_REASONS)}, got {added_reason!r}"
        raise ValueError(msg)
    if priority < 1:
        msg = f"priority must be >= 1, got {priority}"
        raise ValueError(msg)
    if max_attempts < 1:
        msg = f"max_attempts must be >= 1, got {max_attempts}"
        raise ValueError(msg)

    existing = await find_active_job(session, merchant_name, latitude, longitude)
    if existing is not None:
        logger.debug(f"Import job for {merchant_name!r} already {existing.status} ({existing.id})")
        return existing, False

    job = ImportJob(
        merchant_name=" ".join(merchant_name.split()),
        merchant_key=normalize_merchant_name(merchant_name),
        area_key=area_key(latitude, longitude),
        anchor_latitude=latitude,
        anchor_longitude=longitude,
        radius_km=radius_km,
        priority=priority,
        status=STATUS_PENDING,
        attempts=0,
        max_attempts=max_attempts,
        added_reason=added_reason,
        added_by=added_by,
    )
    session.add(job)
    try:
        await session.commit()
    except IntegrityError:
        # Lost a race with a concurrent enqueue of the same merchant/area
        await session.rollback()
        existing = await find_active_job(session, merchant_name, latitude, longitude)
        if existing is None:
            raise
        return existing, False

    await session.refresh(job)
    logger.info(f"Enqueued import job {job.id} for {job.merchant_name!r} (priority={priority}, reason={added_reason})")
    return job, True


async def claim_jobs(session: AsyncSession, limit: int) -> list[ImportJob]:
    """Atomically flip up to ``limit`` pending jobs to processing and return them.

    Jobs are taken in (priority, created_at) order. The selection and the
    status change run as one UPDATE with ``FOR UPDATE SKIP LOCKED`` so that
    concurrent claimers receive disjoint sets.
    """
    if limit <= 0:
        return []
    now = datetime.now(UTC)
    candidates = (
        select(ImportJob.id)
        .where(ImportJob.status == STATUS_PENDING)
        .order_by(ImportJob.priority, ImportJob.created_at)
        .limit(limit)
        .with_for_update(skip_locked=True)
    )
    stmt = (
        update(ImportJob)
        .where(ImportJob.id.in_(candidates), ImportJob.status == STATUS_PENDING)
        .values(status=STATUS_PROCESSING, last_attempted_at=now, updated_at=now)
        .returning(ImportJob.id)
        .execution_options(synchronize_session=False)
    )
    claimed_ids = list((await session.execute(stmt)).scalars().all())
    await session.commit()
    if not claimed_ids:
        return []

    result = await session.execute(
        select(ImportJob)
        .where(ImportJob.id.in_(claimed_ids))
        .order_by(ImportJob.priority, ImportJob.created_at)
        .execution_options(populate_existing=True)
    )
    jobs = list(result.scalars().all())
    logger.info(f"Claimed {len(jobs)} import jobs")
    return jobs


async def mark_completed(
    session: AsyncSession,
    job: ImportJob,
    *,
    locations_found: int,
    locations_inserted: int,
    data_source: str,
    cost_estimate: float = 0.0,
    brand_id: uuid.UUID | None = None,
) -> ImportJob:
    """Record a successful import."""
    now = datetime.now(UTC)
    job.status = STATUS_COMPLETED
    job.locations_found = locations_found
    job.locations_inserted = locations_inserted
    job.data_source = data_source
    job.cost_estimate = cost_estimate
    job.brand_id = brand_id
    job.last_error = None
    job.completed_at = now
    job.updated_at = now
    await session.commit()
    await session.refresh(job)
    return job


async def mark_failed(session: AsyncSession, job: ImportJob, error: str) -> ImportJob:
    """Record a failed attempt: back to pending while attempts remain, else terminally failed."""
    job.attempts += 1
    job.last_error = _truncate_error(error)
    job.updated_at = datetime.now(UTC)
    job.status = STATUS_PENDING if job.attempts < job.max_attempts else STATUS_FAILED
    await session.commit()
    await session.refresh(job)
    if job.status == STATUS_FAILED:
        logger.warning(f"Import job {job.id} failed permanently after {job.attempts} attempts: {job.last_error}")
    else:
        logger.info(f"Import job {job.id} attempt {job.attempts}/{job.max_attempts} failed; requeued")
    return job


async def recover_stale_jobs(session: AsyncSession, stale_after_minutes: int = 15) -> int:
    """Reclaim jobs stuck in processing past the staleness window.

    A reclaimed job goes back to pending without spending an attempt and
    ``last_error`` notes the reclaim.

    Returns:
        Number of jobs reclaimed.
    """
    now = datetime.now(UTC)
    cutoff = now - timedelta(minutes=stale_after_minutes)
    result = await session.execute(
        select(ImportJob)
        .where(ImportJob.status == STATUS_PROCESSING, ImportJob.updated_at < cutoff)
        .with_for_update(skip_locked=True)
    )
    stale = list(result.scalars().all())
    for job in stale:
        job.status = STATUS_PENDING
        job.last_error = f"Reclaimed after exceeding {stale_after_minutes} minute processing window"
        job.updated_at = now
    await session.commit()
    if stale:
        logger.warning(f"Recovered {len(stale)} stale import jobs")
    return len(stale)


async def requeue_job(session: AsyncSession, job_id: uuid.UUID) -> ImportJob | None:
    """Manually re-enqueue a failed job with a fresh attempt budget.

    Returns:
        The requeued job, or None if not found.

    Raises:
        ValueError: If the job is not in ``failed`` status.
    """
    job = await get_job(session, job_id)
    if job is None:
        return None
    if job.status != STATUS_FAILED:
        msg = f"Only failed jobs can be requeued (job is {job.status})"
        raise ValueError(msg)
    job.status = STATUS_PENDING
    job.attempts = 0
    job.last_error = None
    job.updated_at = datetime.now(UTC)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        msg = "An equivalent job is already pending or processing"
        raise ValueError(msg) from None
    await session.refresh(job)
    logger.info(f"Requeued import job {job.id}")
    return job


async def get_job(session: AsyncSession, job_id: uuid.UUID) -> ImportJob | None:
    """Get an import job by ID."""
    result = await session.execute(select(ImportJob).where(ImportJob.id == job_id))
    return result.scalar_one_or_none()


async def list_jobs(
    session: AsyncSession,
    *,
    status: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[ImportJob], int]:
    """List import jobs, most urgent first.

    Returns:
        Tuple of (jobs, total count).
    """
    query = select(ImportJob)
    count_query = select(func.count(ImportJob.id))
    if status:
        query = query.where(ImportJob.status == status)
        count_query = count_query.where(ImportJob.status == status)

    total = (await session.execute(count_query)).scalar_one()
    offset = (page - 1) * page_size
    query = query.order_by(ImportJob.priority, ImportJob.created_at).offset(offset).limit(page_size)
    result = await session.execute(query)
    return list(result.scalars().all()), total


async def get_queue_stats(session: AsyncSession, status: str | None = None, sample_size: int = 5) -> dict[str, Any]:
    """Aggregate queue statistics per status, plus the oldest and newest jobs."""
    stats_query = select(
        ImportJob.status,
        func.count().label("count"),
        func.avg(ImportJob.attempts).label("avg_attempts"),
        func.avg(ImportJob.locations_found).label("avg_locations_found"),
        func.sum(ImportJob.cost_estimate).label("total_cost"),
        func.min(ImportJob.created_at).label("oldest_created_at"),
        func.max(ImportJob.updated_at).label("latest_updated_at"),
    ).group_by(ImportJob.status)
    sample_query = select(ImportJob)
    if status:
        stats_query = stats_query.where(ImportJob.status == status)
        sample_query = sample_query.where(ImportJob.status == status)

    rows = (await session.execute(stats_query)).all()
    by_status = {
        row.status: {
            "count": row.count,
            "avg_attempts": round(float(row.avg_attempts or 0), 2),
            "avg_locations_found": round(float(row.avg_locations_found or 0), 2),
            "total_cost": round(float(row.total_cost or 0), 4),
            "oldest_created_at": row.oldest_created_at,
            "latest_updated_at": row.latest_updated_at,
        }
        for row in rows
    }
    counts = {s: by_status.get(s, {}).get("count", 0) for s in JOB_STATUSES}

    oldest = (await session.execute(sample_query.order_by(ImportJob.created_at).limit(sample_size))).scalars().all()
    newest = (
        (await session.execute(sample_query.order_by(ImportJob.updated_at.desc()).limit(sample_size))).scalars().all()
    )
    return {
        "total": sum(row["count"] for row in by_status.values()),
        "counts": counts,
        "by_status": by_status,
        "oldest": list(oldest),
        "newest": list(newest),
    }


async def delete_job(session: AsyncSession, job_id: uuid.UUID) -> bool:
    """Delete a single job. Returns False when it does not exist."""
    result = await session.execute(delete(ImportJob).where(ImportJob.id == job_id))
    await session.commit()
    return (result.rowcount or 0) > 0


async def purge_completed(session: AsyncSession) -> int:
    """Delete every completed job. Returns the number removed."""
    result = await session.execute(delete(ImportJob).where(ImportJob.status == STATUS_COMPLETED))
    await session.commit()
    removed = result.rowcount or 0
    logger.info(f"Purged {removed} completed import jobs")
    return removed


async def enqueue_if_no_known_locations(
    session: AsyncSession,
    merchant_name: str,
    latitude: float,
    longitude: float,
    radius_km: float = DEFAULT_RADIUS_KM,
    *,
    priority: int = CARD_CREATED_PRIORITY,
    added_by: str | None = None,
) -> ImportJob | None:
    """Card-creation hook: enqueue an urgent import when the merchant has no known location nearby.

    Never raises; card creation must not depend on the queue.

    Returns:
        The new or already-active job, or None when locations are already
        known or anything went wrong.
    """
    try:
        brand = await get_brand_by_name(session, merchant_name)
        if brand is not None and await count_locations_near(session, latitude, longitude, radius_km, brand.id) > 0:
            logger.debug(f"Locations already known for {merchant_name!r}; nothing to enqueue")
            return None
        job, _created = await enqueue_job(
            session,
            merchant_name=merchant_name,
            latitude=latitude,
            longitude=longitude,
            radius_km=radius_km,
            priority=priority,
            added_reason="card_created",
            added_by=added_by,
        )
        return job
    except Exception as e:  # noqa: BLE001
        logger.warning(f"Card-created enqueue for {merchant_name!r} skipped: {e}")
        await session.rollback()
        return None


async def seed_jobs(
    session: AsyncSession,
    entries: list[dict[str, Any]],
    *,
    added_reason: str = "scheduled",
    default_radius_km: float = DEFAULT_RADIUS_KM,
    default_priority: int = DEFAULT_PRIORITY,
    added_by: str | None = None,
) -> tuple[int, int, list[str]]:
    """Enqueue a backfill list of merchants.

    Each entry needs ``name`` and may carry ``latitude``/``longitude``,
    ``radius_km``, ``priority`` and ``category``. Entries without an anchor
    use the center of the contiguous US. A ``category`` creates the brand up
    front, or fills in the category of an existing brand that lacks one.

    Returns:
        Tuple of (created, skipped_existing, errors).
    """
    created = 0
    skipped = 0
    errors: list[str] = []
    for index, entry in enumerate(entries):
        name = str(entry.get("name") or "").strip()
        try:
            job, was_created = await enqueue_job(
                session,
                merchant_name=name,
                latitude=float(entry.get("latitude", DEFAULT_ANCHOR[0])),
                longitude=float(entry.get("longitude", DEFAULT_ANCHOR[1])),
                radius_km=float(entry.get("radius_km", default_radius_km)),
                priority=int(entry.get("priority", default_priority)),
                added_reason=added_reason,
                added_by=added_by,
            )
        except (ValueError, TypeError) as e:
            errors.append(f"entry {index} ({name or '<unnamed>'}): {e}")
            continue
        if entry.get("category"):
            await find_or_create_brand(session, name, category=str(entry["category"]))
            await session.commit()
        if was_created:
            created += 1
        else:
            skipped += 1
    logger.info(f"Seeded import queue: {created} created, {skipped} already queued, {len(errors)} invalid")
    return created, skipped, errors
