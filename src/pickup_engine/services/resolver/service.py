"""Pickup resolution orchestration service."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional, Sequence

from ...clock import Clock
from ...config import settings
from ...models.domain import PickupRecord, Product
from ...persistence.pickup_store import CacheStats, PickupFetcher, PickupStore, StorageStats
from ..index import IndexMetadata, LocationIndex
from ..normalization import LocationNormalizer, load_region_rules
from .base import Confidence, ResolutionStrategy, TierOutcome
from .free_text_tier import FreeTextStrategy
from .index_tier import IndexStrategy
from .live_fetch_tier import LiveFetchStrategy

logger = logging.getLogger(__name__)


class DataSource(str, Enum):
    LOCAL_FILES = "local_files"
    UPSTREAM_API = "upstream_api"
    TEXT_FALLBACK = "text_fallback"
    NONE = "none"


@dataclass(slots=True)
class FilterStats:
    total_products: int
    filtered_count: int
    region: str
    index_resolved: int = 0
    live_fetch_resolved: int = 0
    text_fallback_matched: int = 0
    unresolved: int = 0
    accuracy: Confidence = Confidence.LOW
    data_source: DataSource = DataSource.NONE


@dataclass(slots=True)
class FilterResult:
    products: list[Product]
    stats: FilterStats


@dataclass(slots=True)
class PickupCheck:
    has_pickup: bool
    method: str
    confidence: Confidence


@dataclass(slots=True)
class PreloadResult:
    successful: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class PickupResolver:
    """Answer "which of these products pick up from this region?".

    Tiers run in order (index, live fetch, free text). Each tier only sees
    the products earlier tiers could not answer. Data availability problems
    degrade the answer's accuracy; only storage failures raise.
    """

    def __init__(
        self,
        store: PickupStore,
        index: LocationIndex,
        fetcher: PickupFetcher | None = None,
        normalizer: LocationNormalizer | None = None,
        *,
        strategies: Sequence[ResolutionStrategy] | None = None,
        live_fetch_enabled: bool | None = None,
        live_fetch_concurrency: int | None = None,
        preload_batch_size: int | None = None,
    ) -> None:
        self.store = store
        self.index = index
        self.fetcher = fetcher
        self.normalizer = normalizer or index.normalizer
        self.live_fetch_enabled = (
            live_fetch_enabled if live_fetch_enabled is not None else settings.live_fetch_enabled
        ) and fetcher is not None
        self.preload_batch_size = preload_batch_size or settings.preload_batch_size
        if strategies is None:
            strategies = [IndexStrategy(index)]
            if fetcher is not None:
                strategies.append(
                    LiveFetchStrategy(
                        store,
                        index,
                        fetcher,
                        concurrency=live_fetch_concurrency or settings.live_fetch_concurrency,
                    )
                )
            strategies.append(FreeTextStrategy(self.normalizer))
        self.strategies = list(strategies)

    def _active_strategies(self, enable_fallback: bool, use_live_fetch: bool | None) -> list[ResolutionStrategy]:
        if not enable_fallback:
            return self.strategies[:1]
        live = self.live_fetch_enabled if use_live_fetch is None else use_live_fetch
        if live:
            return list(self.strategies)
        return [strategy for strategy in self.strategies if strategy.name != LiveFetchStrategy.name]

    async def _run_tiers(
        self,
        products: Sequence[Product],
        region: str,
        strategies: Iterable[ResolutionStrategy],
    ) -> tuple[set[str], dict[str, TierOutcome], list[Product]]:
        matched: set[str] = set()
        outcomes: dict[str, TierOutcome] = {}
        remaining = list(products)
        for strategy in strategies:
            if not remaining:
                break
            outcome = await strategy.attempt(remaining, region)
            outcomes[strategy.name] = outcome
            matched.update(product.product_code for product in outcome.matched)
            remaining = outcome.unresolved
            logger.debug(
                f"Tier {strategy.name} for {region}: {len(outcome.resolved)} resolved, "
                f"{len(outcome.matched)} matched, {len(remaining)} remaining"
            )
        return matched, outcomes, remaining

    async def filter_by_region(
        self,
        products: Sequence[Product],
        region: str | None,
        *,
        enable_fallback: bool = True,
        use_live_fetch: bool | None = None,
    ) -> FilterResult:
        products = list(products)
        total = len(products)
        if self.normalizer.is_all_sentinel(region):
            return FilterResult(
                products=products,
                stats=FilterStats(total_products=total, filtered_count=total, region="all", accuracy=Confidence.HIGH),
            )

        canonical = self.normalizer.canonical_region(region)
        if canonical is None:
            logger.info(f"Unknown pickup region '{region}'")
            return FilterResult(
                products=[],
                stats=FilterStats(total_products=total, filtered_count=0, region=str(region), unresolved=total),
            )

        self.index.ensure_built()
        matched, outcomes, remaining = await self._run_tiers(
            products, canonical, self._active_strategies(enable_fallback, use_live_fetch)
        )
        filtered = [product for product in products if product.product_code in matched]

        def _count(name: str, attr: str) -> int:
            outcome = outcomes.get(name)
            return len(getattr(outcome, attr)) if outcome else 0

        stats = FilterStats(
            total_products=total,
            filtered_count=len(filtered),
            region=canonical,
            index_resolved=_count(IndexStrategy.name, "resolved"),
            live_fetch_resolved=_count(LiveFetchStrategy.name, "resolved"),
            text_fallback_matched=_count(FreeTextStrategy.name, "matched"),
            unresolved=len(remaining),
        )
        if enable_fallback:
            stats.accuracy = self._accuracy(stats, bool(filtered))
            stats.data_source = self._data_source(stats)
        else:
            # The index answer is final when the caller opts out of fallbacks.
            stats.accuracy = Confidence.HIGH
            stats.data_source = DataSource.LOCAL_FILES
        logger.info(
            f"Filtered {total} products to {len(filtered)} for {canonical} "
            f"(accuracy={stats.accuracy.value}, source={stats.data_source.value})"
        )
        return FilterResult(products=filtered, stats=stats)

    @staticmethod
    def _accuracy(stats: FilterStats, any_matched: bool) -> Confidence:
        if stats.text_fallback_matched:
            return Confidence.MEDIUM
        if any_matched:
            return Confidence.HIGH
        structured = stats.index_resolved + stats.live_fetch_resolved
        if structured and structured == stats.total_products:
            return Confidence.HIGH
        return Confidence.LOW

    @staticmethod
    def _data_source(stats: FilterStats) -> DataSource:
        if stats.text_fallback_matched:
            return DataSource.TEXT_FALLBACK
        if stats.live_fetch_resolved:
            return DataSource.UPSTREAM_API
        if stats.index_resolved:
            return DataSource.LOCAL_FILES
        return DataSource.NONE

    async def has_pickup_from_location(
        self,
        product: Product,
        location: str | None,
        *,
        use_live_fetch: bool | None = None,
    ) -> PickupCheck:
        canonical = self.normalizer.canonical_region(location) if location else None
        if canonical is None:
            return PickupCheck(has_pickup=False, method="none", confidence=Confidence.LOW)

        self.index.ensure_built()
        for strategy in self._active_strategies(True, use_live_fetch):
            outcome = await strategy.attempt([product], canonical)
            if outcome.resolved:
                return PickupCheck(
                    has_pickup=bool(outcome.matched),
                    method=strategy.name,
                    confidence=strategy.confidence,
                )
        return PickupCheck(has_pickup=False, method="none", confidence=Confidence.LOW)

    async def preload(self, product_codes: Iterable[str]) -> PreloadResult:
        """Fetch pickups for every code the index has no data for, a batch at a time."""
        self.index.ensure_built()
        result = PreloadResult()
        pending: list[str] = []
        for code in dict.fromkeys(product_codes):
            if self.index.has_data(code):
                result.skipped.append(code)
            else:
                pending.append(code)

        if pending and self.fetcher is None:
            logger.warning(f"No upstream client configured, cannot preload {len(pending)} products")
            result.failed.extend(pending)
            return result

        for start in range(0, len(pending), self.preload_batch_size):
            batch = pending[start : start + self.preload_batch_size]
            outcomes = await asyncio.gather(*(self._preload_one(code) for code in batch), return_exceptions=True)
            for code, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    logger.warning(f"Failed to preload pickup data for {code}: {outcome}")
                    result.failed.append(code)
                else:
                    result.successful.append(code)

        logger.info(
            f"Pickup preload finished: {len(result.successful)} fetched, "
            f"{len(result.failed)} failed, {len(result.skipped)} already indexed"
        )
        return result

    async def _preload_one(self, product_code: str) -> None:
        await self.store.get_or_fetch(product_code, self.fetcher)
        if not self.index.has_data(product_code):
            self.index.refresh_one(product_code)

    async def get_pickups(self, product_code: str, *, refresh: bool = False) -> Optional[list[PickupRecord]]:
        """Cached pickups for one product; ``None`` when unknown and nothing can be fetched."""
        if self.fetcher is None:
            cached = self.store.load(product_code)
            return list(cached.pickups) if cached is not None else None
        if refresh:
            return await self.store.refresh(product_code, self.fetcher)
        return await self.store.get_with_background_refresh(product_code, self.fetcher)

    def rebuild_index(self) -> IndexMetadata:
        self.index.build()
        return self.index.metadata()

    def store_stats(self) -> StorageStats:
        return self.store.storage_stats()

    def index_metadata(self) -> IndexMetadata:
        return self.index.metadata()

    def cache_stats(self) -> CacheStats:
        return self.store.cache_stats()

    async def aclose(self) -> None:
        await self.store.wait_for_refreshes()
        closer = getattr(self.fetcher, "aclose", None)
        if closer is not None:
            await closer()


def create_resolver(
    fetcher: PickupFetcher | None = None,
    *,
    root: Path | None = None,
    clock: Clock | None = None,
    rules_file: Path | None = None,
) -> PickupResolver:
    """Wire store, index and resolver from settings."""
    normalizer = LocationNormalizer(load_region_rules(rules_file or settings.region_rules_file))
    store = PickupStore(root, clock=clock)
    index = LocationIndex(store, normalizer, clock=clock)
    if fetcher is None and settings.rezdy_api_key:
        from ..upstream import RezdyClient

        fetcher = RezdyClient()
    if fetcher is None:
        logger.warning("Rezdy API key not configured; live pickup fetching is disabled")
    return PickupResolver(store, index, fetcher, normalizer)
