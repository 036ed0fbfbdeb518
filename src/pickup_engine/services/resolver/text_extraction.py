"""Pickup region inference from product names, descriptions and addresses."""

from __future__ import annotations

import re
from typing import Any, Mapping

from ...models.domain import Product
from ..normalization import LocationNormalizer

_STOP = r"(?=\s+to\b|\s+for\b|\s+with\b|\s*[-–,.;:!?\n]|\s*$)"
PICKUP_PATTERNS = tuple(
    re.compile(rf"{prefix}\s+([^,.;:!?\n]+?){_STOP}", re.IGNORECASE)
    for prefix in (
        r"\bdeparting\s+from",
        r"\bdeparts?\s+from",
        r"\bpickups?\s+from",
        r"\bpick\s+up\s+from",
        r"\bcollection\s+from",
        r"\bfrom",
    )
)
CONTEXT_TEMPLATES = (
    "from {region}",
    "depart {region}",
    "departing {region}",
    "pickup {region}",
    "pick up {region}",
    "collection {region}",
    "{region} pickup",
    "{region} departure",
)
_TAGS = re.compile(r"<[^>]+>")


def _address_text(address: str | Mapping[str, Any] | None) -> str | None:
    if not address:
        return None
    if isinstance(address, str):
        return address
    for key in ("city", "addressLine", "state"):
        value = address.get(key)
        if value:
            return str(value)
    return None


def _product_text(product: Product) -> str:
    parts = (product.name, product.short_description or "", product.description or "")
    return _TAGS.sub(" ", " ".join(parts))


def extract_regions(product: Product, normalizer: LocationNormalizer) -> set[str]:
    """Regions a product's free text claims it departs from.

    Only the structured location address and phrases like "departs from X"
    or "pickup from X" count; a region merely mentioned in passing does not.
    """
    regions: set[str] = set()

    address = _address_text(product.location_address)
    if address:
        region = normalizer.normalize(address)
        if region:
            regions.add(region)

    text = _product_text(product)
    for pattern in PICKUP_PATTERNS:
        for match in pattern.finditer(text):
            # Captures can be arbitrary fragments ("from coast"); substring hits are too loose.
            region = normalizer.normalize(match.group(1), containment=False)
            if region:
                regions.add(region)

    lowered = " ".join(text.lower().split())
    for region in normalizer.supported_regions:
        phrases = (template.format(region=region.lower()) for template in CONTEXT_TEMPLATES)
        if any(phrase in lowered for phrase in phrases):
            regions.add(region)
    return regions
