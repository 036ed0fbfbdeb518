"""Region keyword tables used to map free-text pickup names to canonical regions."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

logger = logging.getLogger(__name__)

BRISBANE = "Brisbane"
GOLD_COAST = "Gold Coast"
BRISBANE_LOOP = "Brisbane Loop"
TAMBORINE_MOUNTAIN = "Tamborine Mountain"


@dataclass(frozen=True, slots=True)
class RegionRule:
    region: str
    keywords: tuple[str, ...]
    exclude_keywords: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RegionRules:
    """Ordered rules plus the alias table; rule order is match priority."""

    rules: tuple[RegionRule, ...]
    aliases: Mapping[str, str]

    @property
    def regions(self) -> tuple[str, ...]:
        return tuple(rule.region for rule in self.rules)

    def rule_for(self, region: str) -> RegionRule | None:
        for rule in self.rules:
            if rule.region == region:
                return rule
        return None


DEFAULT_RULES: tuple[RegionRule, ...] = (
    RegionRule(
        region=TAMBORINE_MOUNTAIN,
        keywords=(
            "tamborine mountain", "mount tamborine", "mt tamborine", "mt. tamborine",
            "tamborine",
        ),
    ),
    RegionRule(
        region=BRISBANE,
        keywords=(
            "brisbane marriott", "1 howard st", "howard street",
            "royal on the park", "royal on park", "152 alice st", "alice street",
            "emporium southbank", "emporium", "267 grey st", "grey street",
            "marriott", "brisbane city", "brisbane cbd", "brisbane hotels",
        ),
        # Stops of the city loop share CBD addresses.
        exclude_keywords=(
            "loop", "south brisbane", "petrie terrace", "anzac square",
            "howard smith wharves", "kangaroo point",
            "gold coast", "surfers paradise", "broadbeach", "main beach",
        ),
    ),
    RegionRule(
        region=GOLD_COAST,
        keywords=(
            "gold coast", "goldcoast", "star casino", "the star casino", "1 casino dr",
            "casino drive", "broadbeach", "voco gold coast", "voco", "31 hamilton ave",
            "hamilton avenue", "sheraton grand mirage", "71 seaworld dr", "seaworld drive",
            "surfers paradise", "main beach", "cavill avenue",
        ),
    ),
    RegionRule(
        region=BRISBANE_LOOP,
        keywords=(
            "267 grey st south brisbane", "southbank grey st", "southbank",
            "petrie terrace", "sexton st", "roma st", "windmill cafe",
            "anzac square", "no 1 anzac square", "no1 anzac square", "295 ann st",
            "ann street brisbane", "howard smith wharves", "7 boundary st", "boundary street",
            "kangaroo point", "kangaroo point cliffs", "66 river terrace", "river terrace",
            "city loop", "brisbane loop", "loop tour",
        ),
    ),
)

DEFAULT_ALIASES: dict[str, str] = {
    "bris": BRISBANE,
    "brisbane city": BRISBANE,
    "brisbane cbd": BRISBANE,
    "brisbane central": BRISBANE,
    "gc": GOLD_COAST,
    "goldcoast": GOLD_COAST,
    "the gold coast": GOLD_COAST,
    "city loop": BRISBANE_LOOP,
    "brisbane city loop": BRISBANE_LOOP,
    "cityloop": BRISBANE_LOOP,
    "brisbanecityloop": BRISBANE_LOOP,
    "tamborine": TAMBORINE_MOUNTAIN,
    "tamborinemountain": TAMBORINE_MOUNTAIN,
    "mount tamborine": TAMBORINE_MOUNTAIN,
    "mt tamborine": TAMBORINE_MOUNTAIN,
    "mt. tamborine": TAMBORINE_MOUNTAIN,
}

DEFAULT_REGION_RULES = RegionRules(rules=DEFAULT_RULES, aliases=DEFAULT_ALIASES)


def _as_keywords(values: Sequence[Any] | None) -> tuple[str, ...]:
    return tuple(str(value).strip().lower() for value in (values or ()) if str(value).strip())


def parse_region_rules(payload: Mapping[str, Any]) -> RegionRules:
    """Build rules from a mapping shaped like ``{"regions": [...], "aliases": {...}}``."""
    entries = payload.get("regions")
    if not isinstance(entries, list) or not entries:
        raise ValueError("Region rules must define a non-empty 'regions' list.")

    rules: list[RegionRule] = []
    seen: set[str] = set()
    for entry in entries:
        region = str(entry.get("region") or "").strip()
        if not region:
            raise ValueError("Region rule missing 'region'.")
        if region in seen:
            raise ValueError(f"Duplicate region rule '{region}'.")
        seen.add(region)
        rules.append(
            RegionRule(
                region=region,
                keywords=_as_keywords(entry.get("keywords")),
                exclude_keywords=_as_keywords(entry.get("excludeKeywords") or entry.get("exclude_keywords")),
            )
        )

    aliases: dict[str, str] = {}
    for alias, region in (payload.get("aliases") or {}).items():
        if region not in seen:
            raise ValueError(f"Alias '{alias}' points at unknown region '{region}'.")
        aliases[str(alias).strip().lower()] = region
    return RegionRules(rules=tuple(rules), aliases=aliases)


def load_region_rules(path: Path | None = None) -> RegionRules:
    """Load rules from a JSON file, or return the built-in tables."""
    if path is None:
        return DEFAULT_REGION_RULES
    with path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    rules = parse_region_rules(payload)
    logger.info(f"Loaded {len(rules.rules)} region rules from {path}")
    return rules
