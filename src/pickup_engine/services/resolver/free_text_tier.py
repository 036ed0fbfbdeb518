"""Last-resort resolution from product text."""

from __future__ import annotations

from typing import Sequence

from ...models.domain import Product
from ..normalization import LocationNormalizer
from .base import Confidence, ResolutionStrategy, TierOutcome
from .text_extraction import extract_regions


class FreeTextStrategy(ResolutionStrategy):
    name = "text"
    confidence = Confidence.MEDIUM

    def __init__(self, normalizer: LocationNormalizer) -> None:
        self.normalizer = normalizer

    async def attempt(self, products: Sequence[Product], region: str) -> TierOutcome:
        outcome = TierOutcome()
        for product in products:
            regions = extract_regions(product, self.normalizer)
            if not regions:
                outcome.unresolved.append(product)
                continue
            outcome.resolved.append(product)
            if region in regions:
                outcome.matched.append(product)
        return outcome
