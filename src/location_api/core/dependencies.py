"""FastAPI dependency injection for database sessions, trigger auth, and the resolver."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from location_api.core.config import Settings, get_settings
from location_api.core.database import get_session_factory
from location_api.core.security import extract_bearer_token, verify_shared_secret
from location_api.lib.places import PlacesCache
from location_api.services.resolver_service import LocationResolver, build_resolver


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Yield an async database session with per-request lifecycle."""
    factory = get_session_factory()
    async with factory() as session:
        yield session


async def require_cron_secret(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[str | None, Header()] = None,
    x_cron_secret: Annotated[str | None, Header()] = None,
) -> None:
    """Reject requests that do not carry the configured shared secret.

    Raises:
        HTTPException: 401 if the secret is missing or wrong.
    """
    provided = extract_bearer_token(authorization) or x_cron_secret
    if not verify_shared_secret(provided, settings.cron_secret):
        logger.warning("Rejected request with missing or invalid trigger secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing trigger secret",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_places_cache() -> PlacesCache:
    """Cache store bound to the application session factory."""
    return PlacesCache(get_session_factory())


def get_resolver(settings: Annotated[Settings, Depends(get_settings)]) -> LocationResolver:
    """Resolver wired to the configured providers and the database cache."""
    return build_resolver(settings, get_session_factory())
