"""Queue processor: drains one bounded batch of import jobs per invocation.

Jobs are processed strictly one after another with a fixed pause between
them so the community provider's public rate limit is respected. The
processor never schedules itself; an external trigger calls it.
"""

import asyncio
import uuid
from dataclasses import dataclass, field

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from location_api.models.import_job import ImportJob
from location_api.services import import_queue_service
from location_api.services.location_service import (
    DEFAULT_DEDUP_DISTANCE_M,
    find_or_create_brand,
    persist_locations,
)
from location_api.services.resolver_service import LocationResolver

DEFAULT_BATCH_SIZE = 10
DEFAULT_INTER_JOB_DELAY = 2.0
DEFAULT_STALE_AFTER_MINUTES = 15


@dataclass
class JobOutcome:
    """Result of processing one job."""

    job_id: uuid.UUID
    merchant_name: str
    status: str
    locations_found: int = 0
    locations_inserted: int = 0
    data_source: str | None = None
    cost_estimate: float = 0.0
    error: str | None = None


@dataclass
class BatchSummary:
    """Result of one processor invocation."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    recovered: int = 0
    results: list[JobOutcome] = field(default_factory=list)


async def process_job(
    session: AsyncSession,
    resolver: LocationResolver,
    job: ImportJob,
    *,
    dedup_distance_m: float = DEFAULT_DEDUP_DISTANCE_M,
) -> JobOutcome:
    """Resolve and persist locations for a claimed job, then transition it.

    Any error (including an errored resolution that found nothing) rolls back
    this job's partial writes and records a failed attempt.
    """
    job_id = job.id
    merchant_name = job.merchant_name
    try:
        result = await resolver.resolve(merchant_name, job.anchor_latitude, job.anchor_longitude, job.radius_km)
        if not result.locations and result.last_error:
            msg = f"No locations found; last provider error: {result.last_error}"
            raise RuntimeError(msg)

        brand = await find_or_create_brand(session, merchant_name)
        inserted = await persist_locations(session, brand, result.locations, dedup_distance_m)
        await import_queue_service.mark_completed(
            session,
            job,
            locations_found=len(result.locations),
            locations_inserted=inserted,
            data_source=result.source,
            cost_estimate=result.cost_estimate,
            brand_id=brand.id,
        )
    except Exception as e:  # noqa: BLE001
        logger.warning(f"Import job {job_id} ({merchant_name!r}) failed: {e}")
        await session.rollback()
        job = await import_queue_service.get_job(session, job_id)
        if job is None:
            return JobOutcome(job_id=job_id, merchant_name=merchant_name, status="missing", error=str(e))
        job = await import_queue_service.mark_failed(session, job, str(e) or type(e).__name__)
        return JobOutcome(
            job_id=job_id,
            merchant_name=merchant_name,
            status=job.status,
            error=job.last_error,
        )

    logger.info(
        f"Import job {job_id} completed: {result.source} found {len(result.locations)}, inserted {inserted}"
    )
    return JobOutcome(
        job_id=job_id,
        merchant_name=merchant_name,
        status=job.status,
        locations_found=len(result.locations),
        locations_inserted=inserted,
        data_source=result.source,
        cost_estimate=result.cost_estimate,
    )


async def process_batch(
    session: AsyncSession,
    resolver: LocationResolver,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    inter_job_delay: float = DEFAULT_INTER_JOB_DELAY,
    stale_after_minutes: int = DEFAULT_STALE_AFTER_MINUTES,
    dedup_distance_m: float = DEFAULT_DEDUP_DISTANCE_M,
) -> BatchSummary:
    """Recover stale jobs, claim up to ``batch_size`` pending jobs and process them in order.

    Args:
        session: Database session.
        resolver: Location resolver.
        batch_size: Maximum jobs to claim.
        inter_job_delay: Seconds to sleep between consecutive jobs.
        stale_after_minutes: Staleness window for the recovery sweep.
        dedup_distance_m: Proximity threshold for location deduplication.

    Returns:
        BatchSummary with one outcome per claimed job.
    """
    summary = BatchSummary()
    summary.recovered = await import_queue_service.recover_stale_jobs(session, stale_after_minutes)

    jobs = await import_queue_service.claim_jobs(session, batch_size)
    for index, job in enumerate(jobs):
        if index > 0 and inter_job_delay > 0:
            await asyncio.sleep(inter_job_delay)
        # A previous job's rollback expires every loaded instance
        await session.refresh(job)
        outcome = await process_job(session, resolver, job, dedup_distance_m=dedup_distance_m)
        summary.results.append(outcome)
        summary.processed += 1
        if outcome.status == import_queue_service.STATUS_COMPLETED:
            summary.succeeded += 1
        else:
            summary.failed += 1

    logger.info(
        f"Processed import batch: {summary.processed} jobs, {summary.succeeded} succeeded, "
        f"{summary.failed} failed, {summary.recovered} recovered"
    )
    return summary
