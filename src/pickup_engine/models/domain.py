"""Domain models for products and their pickup points."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Union


class PickupSource(str, Enum):
    REZDY_API = "rezdy_api"
    MANUAL = "manual"
    IMPORTED = "imported"


class Freshness(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class PickupRecord:
    """One physical pickup point offered by a product."""

    location_name: str
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    # Negative or positive; the magnitude is how early guests must arrive.
    minutes_prior: Optional[int] = None
    additional_instructions: Optional[str] = None

    def search_text(self) -> str:
        parts = (self.location_name, self.address or "", self.additional_instructions or "")
        return " ".join(parts).lower().strip()


@dataclass(slots=True)
class ProductPickupFile:
    """The durable unit of storage: every known pickup point for one product."""

    product_code: str
    pickups: tuple[PickupRecord, ...]
    fetched_at: datetime
    source: PickupSource = PickupSource.REZDY_API
    last_accessed: Optional[datetime] = None
    access_count: int = 0


@dataclass(slots=True)
class Product:
    """The catalog fields the resolver reads from a tour product."""

    product_code: str
    name: str = ""
    short_description: Optional[str] = None
    description: Optional[str] = None
    location_address: Union[str, Mapping[str, Any], None] = None
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Product":
        return cls(
            product_code=str(payload["productCode"]),
            name=str(payload.get("name") or ""),
            short_description=payload.get("shortDescription"),
            description=payload.get("description"),
            location_address=payload.get("locationAddress"),
            raw=dict(payload),
        )
