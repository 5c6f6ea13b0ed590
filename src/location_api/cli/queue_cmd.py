"""Import queue CLI commands: enqueue, process, stats, recover, seed, remove, requeue."""

import asyncio
import json
import uuid
from pathlib import Path

import typer

queue_app = typer.Typer()


@queue_app.command("enqueue")
def enqueue(
    merchant: str = typer.Argument(..., help="Merchant name"),
    lat: float = typer.Option(..., "--lat", help="Anchor latitude (-90 to 90)"),
    lon: float = typer.Option(..., "--lon", help="Anchor longitude (-180 to 180)"),
    radius: float | None = typer.Option(None, "--radius", help="Search radius in km"),
    priority: int | None = typer.Option(None, "--priority", help="Lower runs sooner"),
    reason: str = typer.Option("manual", "--reason", help="manual, card_created, scheduled or initial"),
) -> None:
    """Enqueue one merchant import."""
    asyncio.run(_enqueue(merchant, lat, lon, radius, priority, reason))


@queue_app.command("process")
def process(
    batch_size: int | None = typer.Option(None, "--batch-size", help="Jobs to claim"),
    delay: float | None = typer.Option(None, "--delay", help="Seconds between jobs"),
) -> None:
    """Process one batch of pending jobs."""
    asyncio.run(_process(batch_size, delay))


@queue_app.command("stats")
def stats(
    status: str | None = typer.Option(None, "--status", help="Only this status"),
) -> None:
    """Show queue statistics."""
    asyncio.run(_stats(status))


@queue_app.command("recover")
def recover(
    minutes: int | None = typer.Option(None, "--minutes", help="Staleness window in minutes"),
) -> None:
    """Reclaim jobs stuck in processing."""
    asyncio.run(_recover(minutes))


@queue_app.command("seed")
def seed(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON list of merchants"),  # noqa: B008
    reason: str = typer.Option("scheduled", "--reason", help="scheduled or initial"),
) -> None:
    """Enqueue a backfill list of merchants from a JSON file.

    The file holds a list of objects with ``name`` and optional
    ``latitude``, ``longitude``, ``radius_km``, ``priority`` and ``category``.
    """
    try:
        entries = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        typer.echo(f"Cannot read {path}: {e}", err=True)
        raise typer.Exit(code=1) from e
    if isinstance(entries, dict):
        entries = entries.get("brands") or entries.get("merchants") or []
    if not isinstance(entries, list):
        typer.echo("Seed file must contain a JSON list", err=True)
        raise typer.Exit(code=1)
    asyncio.run(_seed(entries, reason))


@queue_app.command("remove")
def remove(
    job_id: str | None = typer.Argument(None, help="Job UUID"),
    completed: bool = typer.Option(False, "--completed", help="Delete every completed job instead"),  # noqa: FBT001
) -> None:
    """Delete one job, or all completed jobs."""
    if job_id is None and not completed:
        typer.echo("Give a job id or --completed", err=True)
        raise typer.Exit(code=2)
    asyncio.run(_remove(job_id, completed))


@queue_app.command("requeue")
def requeue(job_id: str = typer.Argument(..., help="Job UUID")) -> None:
    """Return a failed job to pending."""
    asyncio.run(_requeue(job_id))


def _init():  # noqa: ANN202
    from location_api.core.config import get_settings
    from location_api.core.database import get_session_factory, init_engine

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)
    return settings, get_session_factory()


async def _enqueue(
    merchant: str, lat: float, lon: float, radius: float | None, priority: int | None, reason: str
) -> None:
    from location_api.core.database import dispose_engine
    from location_api.services.import_queue_service import enqueue_job

    settings, factory = _init()
    try:
        async with factory() as session:
            try:
                job, created = await enqueue_job(
                    session,
                    merchant_name=merchant,
                    latitude=lat,
                    longitude=lon,
                    radius_km=radius or settings.queue_default_radius_km,
                    priority=priority or settings.queue_default_priority,
                    added_reason=reason,
                    added_by="cli",
                    max_attempts=settings.queue_max_attempts,
                )
            except ValueError as e:
                typer.echo(f"Invalid request: {e}", err=True)
                raise typer.Exit(code=2) from e
            state = "Enqueued" if created else "Already queued"
            typer.echo(f"{state}: {job.id} ({job.merchant_name}, {job.status}, priority {job.priority})")
    finally:
        await dispose_engine()


async def _process(batch_size: int | None, delay: float | None) -> None:
    from location_api.core.database import dispose_engine
    from location_api.lib.places import PlacesCache
    from location_api.services.queue_processor import process_batch
    from location_api.services.resolver_service import build_resolver

    settings, factory = _init()
    try:
        resolver = build_resolver(settings, factory)
        async with factory() as session:
            summary = await process_batch(
                session,
                resolver,
                batch_size=batch_size or settings.queue_batch_size,
                inter_job_delay=settings.queue_inter_job_delay if delay is None else delay,
                stale_after_minutes=settings.queue_stale_after_minutes,
                dedup_distance_m=settings.location_dedup_distance_m,
            )
        typer.echo(f"Processed: {summary.processed}")
        typer.echo(f"  Succeeded: {summary.succeeded}")
        typer.echo(f"  Failed:    {summary.failed}")
        typer.echo(f"  Recovered: {summary.recovered}")
        for outcome in summary.results:
            detail = outcome.error or f"{outcome.locations_found} found via {outcome.data_source}"
            typer.echo(f"  {outcome.job_id} {outcome.merchant_name}: {outcome.status} ({detail})")
    finally:
        await PlacesCache.wait_for_pending_hits()
        await dispose_engine()


async def _stats(status: str | None) -> None:
    from location_api.core.database import dispose_engine
    from location_api.services.import_queue_service import get_queue_stats

    _settings, factory = _init()
    try:
        async with factory() as session:
            data = await get_queue_stats(session, status)
        typer.echo(f"Total jobs: {data['total']}")
        for name, row in data["by_status"].items():
            typer.echo(
                f"  {name:<10} {row['count']:>6}  avg attempts {row['avg_attempts']:.2f}  "
                f"avg found {row['avg_locations_found']:.2f}  cost ${row['total_cost']:.3f}"
            )
    finally:
        await dispose_engine()


async def _recover(minutes: int | None) -> None:
    from location_api.core.database import dispose_engine
    from location_api.services.import_queue_service import recover_stale_jobs

    settings, factory = _init()
    try:
        async with factory() as session:
            count = await recover_stale_jobs(session, minutes or settings.queue_stale_after_minutes)
        typer.echo(f"Recovered {count} stale jobs")
    finally:
        await dispose_engine()


async def _seed(entries: list, reason: str) -> None:
    from location_api.core.database import dispose_engine
    from location_api.services.import_queue_service import seed_jobs

    settings, factory = _init()
    try:
        async with factory() as session:
            created, skipped, errors = await seed_jobs(
                session,
                entries,
                added_reason=reason,
                default_radius_km=settings.queue_default_radius_km,
                default_priority=settings.queue_default_priority,
                added_by="cli-seed",
            )
        typer.echo(f"Created {created}, already queued {skipped}, invalid {len(errors)}")
        for error in errors:
            typer.echo(f"  {error}", err=True)
    finally:
        await dispose_engine()


async def _remove(job_id: str | None, completed: bool) -> None:
    from location_api.core.database import dispose_engine
    from location_api.services.import_queue_service import delete_job, purge_completed

    _settings, factory = _init()
    try:
        async with factory() as session:
            if completed:
                typer.echo(f"Deleted {await purge_completed(session)} completed jobs")
                return
            if not await delete_job(session, uuid.UUID(job_id)):
                typer.echo(f"Job {job_id} not found", err=True)
                raise typer.Exit(code=1)
            typer.echo(f"Deleted job {job_id}")
    finally:
        await dispose_engine()


async def _requeue(job_id: str) -> None:
    from location_api.core.database import dispose_engine
    from location_api.services.import_queue_service import requeue_job

    _settings, factory = _init()
    try:
        async with factory() as session:
            try:
                job = await requeue_job(session, uuid.UUID(job_id))
            except ValueError as e:
                typer.echo(str(e), err=True)
                raise typer.Exit(code=1) from e
            if job is None:
                typer.echo(f"Job {job_id} not found", err=True)
                raise typer.Exit(code=1)
            typer.echo(f"Requeued {job.id} ({job.merchant_name})")
    finally:
        await dispose_engine()
