"""Resolution from the in-memory region index."""

from __future__ import annotations

from typing import Sequence

from ...models.domain import Product
from ..index import LocationIndex
from .base import Confidence, ResolutionStrategy, TierOutcome


class IndexStrategy(ResolutionStrategy):
    """Answer from persisted pickup data already loaded into the index."""

    name = "index"
    confidence = Confidence.HIGH

    def __init__(self, index: LocationIndex) -> None:
        self.index = index

    async def attempt(self, products: Sequence[Product], region: str) -> TierOutcome:
        outcome = TierOutcome()
        for product in products:
            match = self.index.has_region(product.product_code, region)
            if not match.has_data:
                outcome.unresolved.append(product)
                continue
            outcome.resolved.append(product)
            if match.matched:
                outcome.matched.append(product)
        return outcome
