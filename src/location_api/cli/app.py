"""Typer CLI root application with serve and resolve commands."""

import asyncio

import typer

from location_api.core.config import get_settings
from location_api.core.logging import setup_logging

app = typer.Typer(name="location-api", help="Merchant location resolution and ingestion CLI")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)


@app.command()
def serve(
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
    host: str = typer.Option("0.0.0.0", "--host", help="Bind host"),  # noqa: S104
    port: int = typer.Option(8000, "--port", help="Bind port"),
) -> None:
    """Start the API server."""
    import uvicorn

    uvicorn.run(
        "location_api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def resolve(
    merchant: str = typer.Argument(..., help="Merchant name"),
    lat: float = typer.Option(..., "--lat", help="Anchor latitude (-90 to 90)"),
    lon: float = typer.Option(..., "--lon", help="Anchor longitude (-180 to 180)"),
    radius: float = typer.Option(50.0, "--radius", help="Search radius in km"),
    use_cache: bool = typer.Option(True, "--cache/--no-cache", help="Read and write the resolution cache"),
) -> None:
    """Resolve locations for a merchant once, without persisting them."""
    asyncio.run(_resolve(merchant, lat, lon, radius, use_cache))


async def _resolve(merchant: str, lat: float, lon: float, radius: float, use_cache: bool) -> None:
    """Async implementation of one-off resolution."""
    from location_api.core.database import dispose_engine, get_session_factory, init_engine
    from location_api.lib.places import PlacesCache
    from location_api.services.resolver_service import build_resolver

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        resolver = build_resolver(settings, get_session_factory() if use_cache else None)
        try:
            result = await resolver.resolve(merchant, lat, lon, radius)
        except ValueError as e:
            typer.echo(f"Invalid request: {e}", err=True)
            raise typer.Exit(code=2) from e

        typer.echo(f"Source: {result.source} (cached={result.cached})")
        typer.echo(f"Providers invoked: {', '.join(result.providers_invoked) or 'none'}")
        typer.echo(f"Estimated cost: ${result.cost_estimate:.3f}")
        if result.last_error:
            typer.echo(f"Last error: {result.last_error}")
        typer.echo(f"Locations: {len(result.locations)}")
        for loc in result.locations:
            parts = [p for p in (loc.address, loc.city, loc.state) if p]
            typer.echo(f"  {loc.name} | {', '.join(parts) or '-'} | {loc.latitude:.5f}, {loc.longitude:.5f}")
    finally:
        await PlacesCache.wait_for_pending_hits()
        await dispose_engine()


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from location_api.cli.cache_cmd import cache_app
    from location_api.cli.db_cmd import db_app
    from location_api.cli.queue_cmd import queue_app

    app.add_typer(db_app, name="db", help="Database migration commands")
    app.add_typer(queue_app, name="queue", help="Import queue commands")
    app.add_typer(cache_app, name="cache", help="Resolution cache commands")


_register_subcommands()
