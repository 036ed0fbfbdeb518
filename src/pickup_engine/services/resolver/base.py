"""Base classes for pickup resolution tiers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from ...models.domain import Product


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(slots=True)
class TierOutcome:
    """What one tier could say about the products handed to it.

    ``resolved`` holds every product the tier gave an answer for, matched or
    not; ``unresolved`` is passed on to the next tier.
    """

    matched: list[Product] = field(default_factory=list)
    resolved: list[Product] = field(default_factory=list)
    unresolved: list[Product] = field(default_factory=list)


class ResolutionStrategy(ABC):
    """Contract for a tier in the resolution chain."""

    name: str
    confidence: Confidence

    @abstractmethod
    async def attempt(self, products: Sequence[Product], region: str) -> TierOutcome:
        raise NotImplementedError
