"""Pydantic models for the on-disk pickup document and upstream pickup payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..clock import ensure_utc
from ..models.domain import PickupRecord, PickupSource, ProductPickupFile

_ADDRESS_FIELDS = ("addressLine", "addressLine2", "city", "state", "postCode", "countryCode")


class PickupRecordModel(BaseModel):
    """A pickup point as the booking API and the document format spell it."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    location_name: str = Field(alias="locationName")
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    minutes_prior: Optional[int] = Field(default=None, alias="minutesPrior")
    additional_instructions: Optional[str] = Field(default=None, alias="additionalInstructions")

    @field_validator("address", mode="before")
    @classmethod
    def _flatten_address(cls, value: Any) -> Any:
        # The API sometimes returns a structured address object.
        if isinstance(value, dict):
            parts = [str(value[key]).strip() for key in _ADDRESS_FIELDS if value.get(key)]
            return ", ".join(parts) or None
        return value

    def to_domain(self) -> PickupRecord:
        return PickupRecord(
            location_name=self.location_name,
            address=self.address,
            latitude=self.latitude,
            longitude=self.longitude,
            minutes_prior=self.minutes_prior,
            additional_instructions=self.additional_instructions,
        )

    @classmethod
    def from_domain(cls, record: PickupRecord) -> "PickupRecordModel":
        return cls(
            location_name=record.location_name,
            address=record.address,
            latitude=record.latitude,
            longitude=record.longitude,
            minutes_prior=record.minutes_prior,
            additional_instructions=record.additional_instructions,
        )


class PickupDocument(BaseModel):
    """One product's persisted pickup file."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    product_code: str = Field(alias="productCode", min_length=1)
    pickups: List[PickupRecordModel]
    fetched_at: datetime = Field(alias="fetchedAt")
    source: PickupSource
    last_accessed: Optional[datetime] = Field(default=None, alias="lastAccessed")
    access_count: Optional[int] = Field(default=None, alias="accessCount", ge=0)

    @field_validator("fetched_at", "last_accessed")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    def to_domain(self) -> ProductPickupFile:
        return ProductPickupFile(
            product_code=self.product_code,
            pickups=tuple(record.to_domain() for record in self.pickups),
            fetched_at=self.fetched_at,
            source=self.source,
            last_accessed=self.last_accessed,
            access_count=self.access_count or 0,
        )

    @classmethod
    def from_domain(cls, document: ProductPickupFile) -> "PickupDocument":
        return cls(
            product_code=document.product_code,
            pickups=[PickupRecordModel.from_domain(record) for record in document.pickups],
            fetched_at=document.fetched_at,
            source=document.source,
            last_accessed=document.last_accessed,
            access_count=document.access_count,
        )

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
