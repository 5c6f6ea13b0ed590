"""Resolution cache CLI commands."""

import asyncio

import typer

cache_app = typer.Typer()


@cache_app.command("purge-expired")
def purge_expired() -> None:
    """Delete expired cache entries."""
    asyncio.run(_run("purge-expired"))


@cache_app.command("clear")
def clear(
    cache_type: str | None = typer.Option(None, "--type", help="Only clear this cache type"),
) -> None:
    """Delete all cache entries (or one cache type)."""
    asyncio.run(_run("clear", cache_type))


@cache_app.command("stats")
def stats() -> None:
    """Show cache statistics per cache type."""
    asyncio.run(_run("stats"))


async def _run(action: str, cache_type: str | None = None) -> None:
    from location_api.core.config import get_settings
    from location_api.core.database import dispose_engine, get_session_factory, init_engine
    from location_api.lib.places import PlacesCache

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        cache = PlacesCache(get_session_factory())
        if action == "purge-expired":
            typer.echo(f"Purged {await cache.purge_expired()} expired entries")
        elif action == "clear":
            typer.echo(f"Deleted {await cache.purge(cache_type)} entries")
        else:
            rows = await cache.stats()
            if not rows:
                typer.echo("Cache is empty")
            for row in rows:
                typer.echo(
                    f"{row['cache_type']}: {row['entries']} entries, {row['expired']} expired, "
                    f"{row['total_hits']} hits (oldest {row['oldest']}, newest {row['newest']})"
                )
    finally:
        await dispose_engine()
