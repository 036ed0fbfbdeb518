"""Resolution by fetching missing pickup data from the booking API."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from ...errors import ResolutionError
from ...models.domain import Product
from ...persistence.pickup_store import PickupFetcher, PickupStore
from ..index import LocationIndex
from .base import Confidence, ResolutionStrategy, TierOutcome

logger = logging.getLogger(__name__)


class LiveFetchStrategy(ResolutionStrategy):
    """Fetch, persist and index pickups for products the index knows nothing about."""

    name = "live_fetch"
    confidence = Confidence.HIGH

    def __init__(
        self,
        store: PickupStore,
        index: LocationIndex,
        fetcher: PickupFetcher,
        *,
        concurrency: int = 5,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1.")
        self.store = store
        self.index = index
        self.fetcher = fetcher
        self.concurrency = concurrency

    async def _load(self, product_code: str, semaphore: asyncio.Semaphore) -> bool:
        async with semaphore:
            try:
                await self.store.get_or_fetch(product_code, self.fetcher)
            except ResolutionError as exc:
                logger.warning(f"Live pickup fetch failed for {product_code}: {exc}")
                return False
        # Saves reach the index through the store listener; cached hits may not have.
        if not self.index.has_data(product_code):
            self.index.refresh_one(product_code)
        return True

    async def attempt(self, products: Sequence[Product], region: str) -> TierOutcome:
        codes = list(dict.fromkeys(product.product_code for product in products))
        semaphore = asyncio.Semaphore(self.concurrency)
        loaded = await asyncio.gather(*(self._load(code, semaphore) for code in codes))
        available = {code for code, ok in zip(codes, loaded) if ok}
        logger.debug(f"Live fetch resolved {len(available)}/{len(codes)} products for {region}")

        outcome = TierOutcome()
        for product in products:
            if product.product_code not in available:
                outcome.unresolved.append(product)
                continue
            outcome.resolved.append(product)
            if self.index.has_region(product.product_code, region).matched:
                outcome.matched.append(product)
        return outcome
