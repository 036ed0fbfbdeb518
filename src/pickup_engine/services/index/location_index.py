"""In-memory region index built from the persisted pickup documents."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional

from ...clock import Clock, utc_now
from ...models.domain import ProductPickupFile
from ...persistence.pickup_store import PickupStore
from ..normalization import LocationNormalizer

logger = logging.getLogger(__name__)

_EMPTY: frozenset[str] = frozenset()


@dataclass(frozen=True, slots=True)
class IndexEntry:
    product_code: str
    regions: frozenset[str]
    has_pickup_data: bool
    pickup_count: int
    fetched_at: Optional[datetime]


@dataclass(frozen=True, slots=True)
class RegionMatch:
    matched: bool
    has_data: bool


@dataclass(frozen=True, slots=True)
class IndexSnapshot:
    """Forward and reverse maps published together; never mutated after creation."""

    products: Mapping[str, IndexEntry]
    regions: Mapping[str, frozenset[str]]
    built_at: Optional[datetime]


@dataclass(slots=True)
class IndexMetadata:
    is_built: bool
    built_at: Optional[datetime]
    total_products: int
    products_with_pickup_data: int
    regions_present: list[str] = field(default_factory=list)


def _freeze(products: dict[str, IndexEntry], regions: dict[str, set[str] | frozenset[str]], built_at) -> IndexSnapshot:
    return IndexSnapshot(
        products=MappingProxyType(products),
        regions=MappingProxyType({region: frozenset(codes) for region, codes in regions.items() if codes}),
        built_at=built_at,
    )


class LocationIndex:
    """Product -> regions and region -> products, kept mutually consistent.

    Writers build a complete new snapshot off to the side and publish it by
    swapping a single reference, so a reader holding a snapshot always sees a
    forward map and a reverse map that agree.
    """

    def __init__(
        self,
        store: PickupStore,
        normalizer: LocationNormalizer | None = None,
        *,
        clock: Clock | None = None,
        follow_store: bool = True,
    ) -> None:
        self.store = store
        self.normalizer = normalizer or LocationNormalizer()
        self.clock = clock or utc_now
        self._snapshot = _freeze({}, {}, None)
        self._write_lock = threading.Lock()
        if follow_store:
            store.add_listener(self.refresh_one)

    @property
    def snapshot(self) -> IndexSnapshot:
        return self._snapshot

    @property
    def is_built(self) -> bool:
        return self._snapshot.built_at is not None

    def _entry_for(self, document: ProductPickupFile) -> IndexEntry:
        return IndexEntry(
            product_code=document.product_code,
            regions=self.normalizer.regions_for_records(document.pickups),
            has_pickup_data=True,
            pickup_count=len(document.pickups),
            fetched_at=document.fetched_at,
        )

    def build(self) -> IndexSnapshot:
        started = time.perf_counter()
        products: dict[str, IndexEntry] = {}
        regions: dict[str, set[str]] = {}
        for _, document in self.store.scan():
            entry = self._entry_for(document)
            products[entry.product_code] = entry
            for region in entry.regions:
                regions.setdefault(region, set()).add(entry.product_code)

        snapshot = _freeze(products, regions, self.clock())
        with self._write_lock:
            self._snapshot = snapshot

        logger.info(
            f"Pickup index built: {len(products)} products, "
            f"{sum(1 for entry in products.values() if entry.pickup_count)} with pickups, "
            f"regions={sorted(snapshot.regions)} in {(time.perf_counter() - started) * 1000:.1f}ms"
        )
        return snapshot

    def ensure_built(self) -> IndexSnapshot:
        if not self.is_built:
            return self.build()
        return self._snapshot

    def refresh_one(self, product_code: str) -> IndexEntry | None:
        """Re-derive one product's regions from its current document and splice it in."""
        document = self.store.peek(product_code)
        entry = self._entry_for(document) if document is not None else None

        with self._write_lock:
            current = self._snapshot
            previous = current.products.get(product_code)
            if previous is None and entry is None:
                return None

            products = dict(current.products)
            regions: dict[str, frozenset[str]] = dict(current.regions)
            old_regions = previous.regions if previous else _EMPTY
            new_regions = entry.regions if entry else _EMPTY

            for region in old_regions - new_regions:
                regions[region] = regions.get(region, _EMPTY) - {product_code}
            for region in new_regions - old_regions:
                regions[region] = regions.get(region, _EMPTY) | {product_code}

            if entry is None:
                products.pop(product_code, None)
            else:
                products[product_code] = entry

            self._snapshot = _freeze(products, regions, current.built_at)

        logger.debug(f"Pickup index refreshed {product_code}: {sorted(new_regions) or 'no regions'}")
        return entry

    def product_entry(self, product_code: str) -> IndexEntry | None:
        return self._snapshot.products.get(product_code)

    def has_data(self, product_code: str) -> bool:
        return product_code in self._snapshot.products

    def products_in_region(self, region: str) -> list[str]:
        canonical = self.normalizer.canonical_region(region)
        if canonical is None:
            return []
        return sorted(self._snapshot.regions.get(canonical, _EMPTY))

    def has_region(self, product_code: str, region: str) -> RegionMatch:
        snapshot = self._snapshot
        entry = snapshot.products.get(product_code)
        if entry is None:
            return RegionMatch(matched=False, has_data=False)
        canonical = self.normalizer.canonical_region(region)
        return RegionMatch(matched=canonical is not None and canonical in entry.regions, has_data=True)

    def location_counts(self) -> dict[str, int]:
        snapshot = self._snapshot
        return {region: len(snapshot.regions.get(region, _EMPTY)) for region in self.normalizer.supported_regions}

    def metadata(self) -> IndexMetadata:
        snapshot = self._snapshot
        return IndexMetadata(
            is_built=snapshot.built_at is not None,
            built_at=snapshot.built_at,
            total_products=len(snapshot.products),
            products_with_pickup_data=sum(1 for entry in snapshot.products.values() if entry.pickup_count),
            regions_present=sorted(snapshot.regions),
        )
