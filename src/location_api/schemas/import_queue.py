"""Import queue Pydantic v2 request/response schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from location_api.schemas.common import PaginationMeta

AddedReason = Literal["manual", "card_created", "scheduled", "initial"]
JobStatus = Literal["pending", "processing", "completed", "failed"]


class _MerchantAnchor(BaseModel):
    merchant_name: str = Field(min_length=1, max_length=255, description="Merchant display name")
    latitude: float = Field(ge=-90, le=90, description="Anchor latitude (WGS84)")
    longitude: float = Field(ge=-180, le=180, description="Anchor longitude (WGS84)")
    radius_km: float | None = Field(
        default=None, gt=0, le=500, description="Search radius in km, server default when omitted"
    )

    @field_validator("merchant_name")
    @classmethod
    def strip_merchant_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            msg = "merchant_name must not be blank"
            raise ValueError(msg)
        return v


class EnqueueRequest(_MerchantAnchor):
    """Manually enqueue a location import."""

    priority: int | None = Field(default=None, ge=1, description="Lower runs sooner; server default when omitted")
    added_reason: AddedReason = Field(default="manual")
    added_by: str | None = Field(default=None, max_length=255)


class CardCreatedRequest(_MerchantAnchor):
    """Notification that a card for a merchant was created near a point."""

    added_by: str | None = Field(default=None, max_length=255)


class ProcessRequest(BaseModel):
    """Optional overrides for one processor invocation."""

    batch_size: int | None = Field(default=None, gt=0, le=100)


class ImportJobResponse(BaseModel):
    """Import job state."""

    id: UUID
    merchant_name: str
    merchant_key: str
    area_key: str
    anchor_latitude: float
    anchor_longitude: float
    radius_km: float
    priority: int
    status: str
    attempts: int
    max_attempts: int
    last_error: str | None = None
    added_by: str | None = None
    added_reason: str
    brand_id: UUID | None = None
    locations_found: int
    locations_inserted: int
    data_source: str | None = None
    cost_estimate: float
    last_attempted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    model_config = {"from_attributes": True}


class EnqueueResponse(BaseModel):
    """Enqueue outcome."""

    created: bool = Field(description="False when an equivalent active job already existed")
    job: ImportJobResponse


class CardCreatedResponse(BaseModel):
    """Card-creation hook outcome."""

    queued: bool
    job_id: UUID | None = None


class PaginatedImportJobResponse(BaseModel):
    """Paginated list of import jobs."""

    items: list[ImportJobResponse]
    pagination: PaginationMeta


class JobOutcomeResponse(BaseModel):
    """Outcome of one job within a batch."""

    job_id: UUID
    merchant_name: str
    status: str
    locations_found: int = 0
    locations_inserted: int = 0
    data_source: str | None = None
    cost_estimate: float = 0.0
    error: str | None = None

    model_config = {"from_attributes": True}


class BatchSummaryResponse(BaseModel):
    """Outcome of one processor invocation."""

    processed: int
    succeeded: int
    failed: int
    recovered: int = 0
    results: list[JobOutcomeResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class StatusStats(BaseModel):
    """Aggregates for one job status."""

    count: int
    avg_attempts: float
    avg_locations_found: float
    total_cost: float
    oldest_created_at: datetime | None = None
    latest_updated_at: datetime | None = None


class QueueStatsResponse(BaseModel):
    """Queue-wide statistics."""

    total: int
    counts: dict[str, int]
    by_status: dict[str, StatusStats]
    oldest: list[ImportJobResponse] = Field(default_factory=list)
    newest: list[ImportJobResponse] = Field(default_factory=list)


class RecoverResponse(BaseModel):
    """Stale-job sweep outcome."""

    recovered: int


class PurgeResponse(BaseModel):
    """Bulk deletion outcome."""

    deleted: int
