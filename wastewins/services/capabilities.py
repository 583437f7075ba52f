"""
Accepted-material vocabulary shared by every source.

Source tag maps are normalized here, at the fetcher boundary; nothing
downstream looks at raw OSM tags or curated service names.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, FrozenSet, Iterable, Optional, Set, Tuple

from wastewins.core.contracts import Capability

logger = logging.getLogger(__name__)

CAPABILITIES: Tuple[Capability, ...] = (
    "plastic", "paper", "glass", "metal",
    "clothes", "electronics", "batteries", "books",
    "biowaste",
)

# OSM recycling:* suffixes and curated service names → vocabulary
_ALIASES: Dict[str, Capability] = {
    # Plastic
    "plastic": "plastic",
    "plastics": "plastic",
    "plastic_bottles": "plastic",
    "plastic_packaging": "plastic",
    "plastic_bags": "plastic",
    "pet": "plastic",
    "packaging": "plastic",
    # Paper
    "paper": "paper",
    "paper_packaging": "paper",
    "cardboard": "paper",
    "newspaper": "paper",
    "magazines": "paper",
    "cartons": "paper",
    "beverage_cartons": "paper",
    # Glass
    "glass": "glass",
    "glass_bottles": "glass",
    # Metal
    "metal": "metal",
    "scrap_metal": "metal",
    "cans": "metal",
    "aluminium": "metal",
    "aluminum": "metal",
    "tin": "metal",
    # Textiles
    "clothes": "clothes",
    "clothing": "clothes",
    "textiles": "clothes",
    "textile": "clothes",
    "shoes": "clothes",
    # Electronics
    "electronics": "electronics",
    "e-waste": "electronics",
    "ewaste": "electronics",
    "electrical_items": "electronics",
    "electrical_appliances": "electronics",
    "small_appliances": "electronics",
    "computers": "electronics",
    "mobile_phones": "electronics",
    "printer_cartridges": "electronics",
    "fluorescent_tubes": "electronics",
    # Batteries
    "batteries": "batteries",
    "battery": "batteries",
    "car_batteries": "batteries",
    # Books
    "books": "books",
    # Organic
    "biowaste": "biowaste",
    "bio-waste": "biowaste",
    "organic": "biowaste",
    "green_waste": "biowaste",
    "garden_waste": "biowaste",
    "food_waste": "biowaste",
    "compost": "biowaste",
}

_YES = {"yes", "true", "1"}


def normalize_capability(token: Any) -> Optional[Capability]:
    """Map one free-form material name onto the vocabulary, or None."""
    if token is None:
        return None
    t = str(token).strip().lower().replace(" ", "_")
    if not t:
        return None
    return _ALIASES.get(t)


def _collect(tokens: Iterable[Any]) -> FrozenSet[str]:
    out: Set[str] = set()
    dropped: Set[str] = set()
    for tok in tokens:
        cap = normalize_capability(tok)
        if cap is not None:
            out.add(cap)
        elif tok:
            dropped.add(str(tok))
    if dropped:
        logger.debug("capabilities_dropped tokens=%s", sorted(dropped))
    return frozenset(out)


def capabilities_from_osm_tags(tags: Dict[str, Any]) -> FrozenSet[str]:
    """
    OSM encodes materials two ways:
      - flags:  "recycling:plastic"="yes"
      - lists:  "materials"="plastic;paper"   (older / import data)
    """
    tokens: list[str] = []
    for k, v in tags.items():
        if not isinstance(k, str) or not k.startswith("recycling:"):
            continue
        if str(v).strip().lower() in _YES:
            tokens.append(k.split(":", 1)[1])

    materials = tags.get("materials")
    if isinstance(materials, str):
        tokens.extend(m for m in materials.split(";") if m.strip())

    return _collect(tokens)


def capabilities_from_services(services: Iterable[Any]) -> FrozenSet[str]:
    return _collect(services or [])
