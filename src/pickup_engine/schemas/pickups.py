"""Pydantic request/response models for pickup endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from ..models.domain import PickupRecord, Product


class ProductPayload(BaseModel):
    """A catalog product as the booking frontend sends it; unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    productCode: str = Field(..., min_length=1)
    name: str = ""
    shortDescription: Optional[str] = None
    description: Optional[str] = None
    locationAddress: Union[str, dict[str, Any], None] = None

    def to_domain(self) -> Product:
        # Only the keys the client sent, explicit nulls included.
        return Product.from_payload(self.model_dump(exclude_unset=True))


class FilterRequest(BaseModel):
    products: Sequence[ProductPayload]
    region: Optional[str] = Field(None, description="Region name, alias or 'all'.")
    enable_fallback: bool = Field(default=True, description="Run the live fetch and text tiers.")
    use_live_fetch: Optional[bool] = Field(
        default=None, description="Override the configured live fetch behaviour for this call."
    )


class FilterStatsModel(BaseModel):
    total_products: int
    filtered_count: int
    region: str
    index_resolved: int
    live_fetch_resolved: int
    text_fallback_matched: int
    unresolved: int
    accuracy: str
    data_source: str


class FilterResponse(BaseModel):
    products: list[dict[str, Any]]
    stats: FilterStatsModel


class CheckRequest(BaseModel):
    product: ProductPayload
    location: str = Field(..., min_length=1)
    use_live_fetch: Optional[bool] = None


class CheckResponse(BaseModel):
    product_code: str
    location: str
    has_pickup: bool
    method: str
    confidence: str


class PreloadRequest(BaseModel):
    product_codes: Sequence[str] = Field(..., description="Product codes to fetch pickups for.")


class PreloadResponse(BaseModel):
    successful: list[str]
    failed: list[str]
    skipped: list[str]


class PickupModel(BaseModel):
    locationName: str
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    minutesPrior: Optional[int] = None
    additionalInstructions: Optional[str] = None

    @classmethod
    def from_domain(cls, record: PickupRecord) -> "PickupModel":
        return cls(
            locationName=record.location_name,
            address=record.address,
            latitude=record.latitude,
            longitude=record.longitude,
            minutesPrior=record.minutes_prior,
            additionalInstructions=record.additional_instructions,
        )


class ProductPickupsResponse(BaseModel):
    product_code: str
    pickup_count: int
    pickups: list[PickupModel]


class StoredFileModel(BaseModel):
    product_code: str
    file_name: str
    file_size: int
    fetched_at: datetime
    last_accessed: Optional[datetime] = None
    access_count: int
    pickup_count: int
    freshness: str


class StoreStatsResponse(BaseModel):
    total_files: int
    total_bytes: int
    oldest_file: Optional[str] = None
    newest_file: Optional[str] = None
    files: list[StoredFileModel]


class IndexStatsResponse(BaseModel):
    is_built: bool
    built_at: Optional[datetime] = None
    total_products: int
    products_with_pickup_data: int
    regions_present: list[str]
    location_counts: dict[str, int]


class CacheStatsResponse(BaseModel):
    total_products: int
    fresh: int
    stale: int
    expired: int
    invalid_files: int
    total_bytes: int
    pending_refreshes: int
    oldest_fetched_at: Optional[datetime] = None
    newest_fetched_at: Optional[datetime] = None

