"""ORM model registry: import all models so Alembic autogenerate discovers them."""

from location_api.models.brand import Brand
from location_api.models.brand_location import BrandLocation
from location_api.models.import_job import ImportJob
from location_api.models.location_cache import LocationCache

__all__ = [
    "Brand",
    "BrandLocation",
    "ImportJob",
    "LocationCache",
]
