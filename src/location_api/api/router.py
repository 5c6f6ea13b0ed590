"""Root API router with /api/v1 prefix."""

from fastapi import APIRouter

from location_api.core.config import Settings


def create_router(settings: Settings) -> APIRouter:
    """Create the root API router with all sub-routers included.

    Args:
        settings: Application settings.

    Returns:
        Configured API router.
    """
    from location_api.api.v1.cache import cache_router
    from location_api.api.v1.import_queue import import_queue_router

    root_router = APIRouter(prefix=settings.api_v1_prefix)
    root_router.include_router(import_queue_router)
    root_router.include_router(cache_router)

    return root_router
