"""Location normalization helpers."""

from .normalizer import LocationNormalizer
from .rules import RegionRule, RegionRules, load_region_rules

__all__ = ["LocationNormalizer", "RegionRule", "RegionRules", "load_region_rules"]
