"""Import queue API endpoints.

POST /import-queue (enqueue), POST /import-queue/process (run one batch),
POST /import-queue/card-created (card-creation hook), POST /import-queue/recover,
GET /import-queue/stats, GET /import-queue (list), GET /import-queue/{job_id},
POST /import-queue/{job_id}/requeue, DELETE /import-queue/{job_id},
DELETE /import-queue?clear_completed=true.

Every route requires the shared trigger secret.
"""

import math
import uuid
from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from location_api.core.config import Settings, get_settings
from location_api.core.dependencies import get_async_session, get_resolver, require_cron_secret
from location_api.schemas.common import ErrorResponse, PaginationMeta
from location_api.schemas.import_queue import (
    BatchSummaryResponse,
    CardCreatedRequest,
    CardCreatedResponse,
    EnqueueRequest,
    EnqueueResponse,
    ImportJobResponse,
    JobStatus,
    PaginatedImportJobResponse,
    ProcessRequest,
    PurgeResponse,
    QueueStatsResponse,
    RecoverResponse,
)
from location_api.services import import_queue_service
from location_api.services.queue_processor import process_batch
from location_api.services.resolver_service import LocationResolver

import_queue_router = APIRouter(
    prefix="/import-queue",
    tags=["import-queue"],
    dependencies=[Depends(require_cron_secret)],
    responses={401: {"model": ErrorResponse}},
)

_JOB_NOT_FOUND = "Import job not found"


@import_queue_router.post("", response_model=EnqueueResponse, status_code=201)
async def enqueue(
    request: EnqueueRequest,
    response: Response,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> EnqueueResponse:
    """Enqueue a location import; returns the existing job (200) when one is already active."""
    job, created = await import_queue_service.enqueue_job(
        session,
        merchant_name=request.merchant_name,
        latitude=request.latitude,
        longitude=request.longitude,
        radius_km=request.radius_km or settings.queue_default_radius_km,
        priority=request.priority or settings.queue_default_priority,
        added_reason=request.added_reason,
        added_by=request.added_by,
        max_attempts=settings.queue_max_attempts,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return EnqueueResponse(created=created, job=ImportJobResponse.model_validate(job))


@import_queue_router.post("/process", response_model=BatchSummaryResponse)
async def process(
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    resolver: Annotated[LocationResolver, Depends(get_resolver)],
    request: Annotated[ProcessRequest | None, Body()] = None,
) -> BatchSummaryResponse:
    """Run one processor batch (the scheduled trigger)."""
    batch_size = request.batch_size if request and request.batch_size else settings.queue_batch_size
    summary = await process_batch(
        session,
        resolver,
        batch_size=batch_size,
        inter_job_delay=settings.queue_inter_job_delay,
        stale_after_minutes=settings.queue_stale_after_minutes,
        dedup_distance_m=settings.location_dedup_distance_m,
    )
    return BatchSummaryResponse.model_validate(summary)


@import_queue_router.post("/card-created", response_model=CardCreatedResponse, status_code=202)
async def card_created(
    request: CardCreatedRequest,
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> CardCreatedResponse:
    """Card-creation hook: enqueue an urgent import if no nearby location is known."""
    job = await import_queue_service.enqueue_if_no_known_locations(
        session,
        request.merchant_name,
        request.latitude,
        request.longitude,
        request.radius_km or settings.queue_default_radius_km,
        priority=settings.queue_card_created_priority,
        added_by=request.added_by,
    )
    return CardCreatedResponse(queued=job is not None, job_id=job.id if job else None)


@import_queue_router.post("/recover", response_model=RecoverResponse)
async def recover(
    session: Annotated[AsyncSession, Depends(get_async_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> RecoverResponse:
    """Reclaim jobs stuck in processing past the staleness window."""
    recovered = await import_queue_service.recover_stale_jobs(session, settings.queue_stale_after_minutes)
    return RecoverResponse(recovered=recovered)


@import_queue_router.get("/stats", response_model=QueueStatsResponse)
async def stats(
    session: Annotated[AsyncSession, Depends(get_async_session)],
    status_filter: Annotated[JobStatus | None, Query(alias="status")] = None,
) -> QueueStatsResponse:
    """Aggregated queue statistics, optionally for one status."""
    data = await import_queue_service.get_queue_stats(session, status_filter)
    return QueueStatsResponse(
        total=data["total"],
        counts=data["counts"],
        by_status=data["by_status"],
        oldest=[ImportJobResponse.model_validate(j) for j in data["oldest"]],
        newest=[ImportJobResponse.model_validate(j) for j in data["newest"]],
    )


@import_queue_router.get("", response_model=PaginatedImportJobResponse)
async def list_jobs(
    session: Annotated[AsyncSession, Depends(get_async_session)],
    status_filter: Annotated[JobStatus | None, Query(alias="status")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
) -> PaginatedImportJobResponse:
    """List import jobs, most urgent first."""
    jobs, total = await import_queue_service.list_jobs(session, status=status_filter, page=page, page_size=page_size)
    return PaginatedImportJobResponse(
        items=[ImportJobResponse.model_validate(j) for j in jobs],
        pagination=PaginationMeta(
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if total > 0 else 0,
        ),
    )


@import_queue_router.delete("", response_model=PurgeResponse)
async def clear_completed(
    session: Annotated[AsyncSession, Depends(get_async_session)],
    clear_completed: Annotated[bool, Query()] = False,
) -> PurgeResponse:
    """Delete all completed jobs; requires ``clear_completed=true``."""
    if not clear_completed:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Pass clear_completed=true to delete completed jobs",
        )
    deleted = await import_queue_service.purge_completed(session)
    return PurgeResponse(deleted=deleted)


@import_queue_router.get("/{job_id}", response_model=ImportJobResponse)
async def get_job(
    job_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> ImportJobResponse:
    """Get one import job."""
    job = await import_queue_service.get_job(session, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND)
    return ImportJobResponse.model_validate(job)


@import_queue_router.post("/{job_id}/requeue", response_model=ImportJobResponse)
async def requeue(
    job_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> ImportJobResponse:
    """Return a failed job to pending with a fresh attempt budget."""
    job = await import_queue_service.requeue_job(session, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND)
    return ImportJobResponse.model_validate(job)


@import_queue_router.delete("/{job_id}", status_code=204)
async def delete_job(
    job_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> None:
    """Delete one import job."""
    if not await import_queue_service.delete_job(session, job_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND)
