import json
from pathlib import Path

import pytest

from pickup_engine.models.domain import PickupRecord
from pickup_engine.services.normalization import LocationNormalizer, load_region_rules
from pickup_engine.services.normalization.rules import DEFAULT_REGION_RULES, parse_region_rules


@pytest.fixture
def normalizer() -> LocationNormalizer:
    return LocationNormalizer()


def test_tamborine_variants_share_one_region(normalizer: LocationNormalizer) -> None:
    results = {
        normalizer.normalize("Mt Tamborine"),
        normalizer.normalize("mount tamborine"),
        normalizer.normalize("Tamborine Mountain"),
        normalizer.normalize("Mt. Tamborine"),
    }

    assert results == {"Tamborine Mountain"}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("brisbane", "Brisbane"),
        ("  GOLD   coast ", "Gold Coast"),
        ("GC", "Gold Coast"),
        ("City Loop", "Brisbane Loop"),
        ("Star Casino, Broadbeach", "Gold Coast"),
        ("Brisbane Marriott Hotel", "Brisbane"),
        ("No 1 Anzac Square", "Brisbane Loop"),
        ("Brisbane Airport", "Brisbane"),
        ("gold", "Gold Coast"),
    ],
)
def test_normalize_maps_variants(normalizer: LocationNormalizer, raw: str, expected: str) -> None:
    assert normalizer.normalize(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "Sydney Opera House", "co"])
def test_normalize_returns_none_for_unknown_text(normalizer: LocationNormalizer, raw) -> None:
    assert normalizer.normalize(raw) is None


@pytest.mark.parametrize("value", [None, "", "  ", "all", "All", "all regions", "ANY"])
def test_all_sentinels(value) -> None:
    assert LocationNormalizer.is_all_sentinel(value)


def test_region_name_is_not_a_sentinel() -> None:
    assert not LocationNormalizer.is_all_sentinel("Brisbane")


def test_brisbane_keywords_do_not_claim_loop_stops(normalizer: LocationNormalizer) -> None:
    hotel = PickupRecord(location_name="Brisbane Marriott Hotel", address="1 Howard St, Brisbane City")
    wharves = PickupRecord(location_name="Howard Smith Wharves", address="7 Boundary St, Brisbane City")

    assert normalizer.matches_region(hotel, "Brisbane")
    assert not normalizer.matches_region(hotel, "Brisbane Loop")
    assert not normalizer.matches_region(wharves, "Brisbane")
    assert normalizer.matches_region(wharves, "Brisbane Loop")


def test_gold_coast_marriott_is_not_brisbane(normalizer: LocationNormalizer) -> None:
    record = PickupRecord(location_name="JW Marriott Gold Coast", address="158 Ferny Ave, Surfers Paradise")

    assert normalizer.regions_for_record(record) == ("Gold Coast",)


def test_matches_region_accepts_aliases(normalizer: LocationNormalizer) -> None:
    record = PickupRecord(location_name="Mt Tamborine Winery")

    assert normalizer.matches_region(record, "Mount Tamborine")
    assert not normalizer.matches_region(record, "Atlantis")


def test_regions_for_records_collects_every_region(normalizer: LocationNormalizer) -> None:
    records = [
        PickupRecord(location_name="Brisbane Marriott Hotel"),
        PickupRecord(location_name="Anzac Square", address="295 Ann St"),
        PickupRecord(location_name="Somewhere else"),
    ]

    assert normalizer.regions_for_records(records) == frozenset({"Brisbane", "Brisbane Loop"})
    assert normalizer.regions_for_records([]) == frozenset()


def test_load_region_rules_defaults_without_path() -> None:
    assert load_region_rules(None) is DEFAULT_REGION_RULES


def test_load_region_rules_from_file(tmp_path: Path) -> None:
    rules_path = tmp_path / "regions.json"
    rules_path.write_text(
        json.dumps(
            {
                "regions": [
                    {"region": "Byron Bay", "keywords": ["byron", "Wategos"]},
                    {"region": "Ballina", "keywords": ["ballina"], "excludeKeywords": ["byron"]},
                ],
                "aliases": {"The Bay": "Byron Bay"},
            }
        ),
        encoding="utf-8",
    )

    normalizer = LocationNormalizer(load_region_rules(rules_path))

    assert normalizer.supported_regions == ("Byron Bay", "Ballina")
    assert normalizer.normalize("the bay") == "Byron Bay"
    assert normalizer.normalize("Wategos Beach") == "Byron Bay"
    assert normalizer.normalize("Ballina Airport") == "Ballina"
    assert normalizer.normalize("Brisbane") is None


def test_parse_region_rules_rejects_bad_tables() -> None:
    with pytest.raises(ValueError):
        parse_region_rules({"regions": []})
    with pytest.raises(ValueError):
        parse_region_rules({"regions": [{"region": "A"}, {"region": "A"}]})
    with pytest.raises(ValueError):
        parse_region_rules({"regions": [{"region": "A"}], "aliases": {"b": "B"}})
