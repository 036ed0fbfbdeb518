"""Map free-text pickup names and addresses onto canonical regions."""

from __future__ import annotations

import re
from typing import Iterable

from ...models.domain import PickupRecord
from .rules import DEFAULT_REGION_RULES, RegionRule, RegionRules

ALL_SENTINELS = frozenset({"all", "all regions", "any"})
# Shorter candidates are too ambiguous for containment matching.
MIN_CONTAINMENT_LENGTH = 3

_WHITESPACE = re.compile(r"\s+")
_NON_LETTERS = re.compile(r"[^a-z]")


def _clean(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip().lower()


def _has_any(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword in text for keyword in keywords)


class LocationNormalizer:
    """Keyword driven region matcher.

    ``normalize`` checks, in strict priority order, an exact canonical name,
    the alias table, the keyword tables (an exclude keyword vetoes its rule)
    and finally substring containment against region display names. The first
    rule that fires wins. ``None`` means the text is unknown, not that the
    location has no pickup.
    """

    def __init__(self, rules: RegionRules | None = None) -> None:
        self.rules = rules or DEFAULT_REGION_RULES
        self._canonical = {region.lower(): region for region in self.rules.regions}
        self._by_length_desc = sorted(self.rules.regions, key=len, reverse=True)
        self._by_length_asc = sorted(self.rules.regions, key=len)

    @property
    def supported_regions(self) -> tuple[str, ...]:
        return self.rules.regions

    @staticmethod
    def is_all_sentinel(value: str | None) -> bool:
        if value is None:
            return True
        cleaned = _clean(value)
        return not cleaned or cleaned in ALL_SENTINELS

    def normalize(self, raw_text: str | None, *, containment: bool = True) -> str | None:
        """Canonical region for ``raw_text``; ``containment=False`` stops after the keyword tables."""
        if not raw_text:
            return None
        candidate = _clean(raw_text)
        if not candidate:
            return None

        canonical = self._canonical.get(candidate)
        if canonical:
            return canonical

        alias = self.rules.aliases.get(candidate) or self.rules.aliases.get(_NON_LETTERS.sub("", candidate))
        if alias:
            return alias

        for rule in self.rules.rules:
            if self._rule_matches(rule, candidate):
                return rule.region

        if not containment:
            return None
        for region in self._by_length_desc:
            if region.lower() in candidate:
                return region
        if len(candidate) >= MIN_CONTAINMENT_LENGTH:
            for region in self._by_length_asc:
                if candidate in region.lower():
                    return region
        return None

    def canonical_region(self, region: str | None) -> str | None:
        """Return ``region`` if it already is canonical, otherwise normalize it."""
        if region in self.rules.regions:
            return region
        return self.normalize(region)

    def matches_region(self, record: PickupRecord, region: str) -> bool:
        target = self.canonical_region(region)
        if target is None:
            return False
        text = record.search_text()
        if not text:
            return False

        rule = self.rules.rule_for(target)
        if rule is not None:
            if _has_any(text, rule.exclude_keywords):
                return False
            if _has_any(text, rule.keywords):
                return True
        return self.normalize(record.location_name) == target

    def regions_for_record(self, record: PickupRecord) -> tuple[str, ...]:
        return tuple(region for region in self.rules.regions if self.matches_region(record, region))

    def regions_for_records(self, records: Iterable[PickupRecord]) -> frozenset[str]:
        regions: set[str] = set()
        for record in records:
            regions.update(self.regions_for_record(record))
        return frozenset(regions)

    @staticmethod
    def _rule_matches(rule: RegionRule, text: str) -> bool:
        if _has_any(text, rule.exclude_keywords):
            return False
        return _has_any(text, rule.keywords)
