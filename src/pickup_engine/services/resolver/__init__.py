"""Tiered pickup resolution."""

from .base import Confidence, ResolutionStrategy, TierOutcome
from .free_text_tier import FreeTextStrategy
from .index_tier import IndexStrategy
from .live_fetch_tier import LiveFetchStrategy
from .service import (
    DataSource,
    FilterResult,
    FilterStats,
    PickupCheck,
    PickupResolver,
    PreloadResult,
    create_resolver,
)

__all__ = [
    "Confidence",
    "DataSource",
    "FilterResult",
    "FilterStats",
    "FreeTextStrategy",
    "IndexStrategy",
    "LiveFetchStrategy",
    "PickupCheck",
    "PickupResolver",
    "PreloadResult",
    "ResolutionStrategy",
    "TierOutcome",
    "create_resolver",
]
