from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from wastewins.core.contracts import EnrichedSite, SortBy
from wastewins.services.capabilities import normalize_capability

# Raw metadata keys searched by the free-text filter
_TEXT_RAW_KEYS: Tuple[str, ...] = ("operator", "address")


def within_radius(site: EnrichedSite, radius_m: int) -> bool:
    return site.distance_km * 1000.0 <= radius_m


def matches_text(site: EnrichedSite, text: Optional[str]) -> bool:
    needle = (text or "").strip().casefold()
    if not needle:
        return True
    fields: List[str] = []
    if site.name:
        fields.append(site.name)
    fields.extend(site.raw[k] for k in _TEXT_RAW_KEYS if site.raw.get(k))
    fields.extend(site.capabilities)
    return any(needle in f.casefold() for f in fields)


def matches_category(site: EnrichedSite, category: Optional[str]) -> bool:
    if not category or not category.strip():
        return True
    cap = normalize_capability(category)
    # An unknown category cannot match anything
    return cap is not None and cap in site.capabilities


def _distance_key(site: EnrichedSite):
    return (site.distance_km, site.id)


def _name_key(site: EnrichedSite):
    # Unnamed sites go last
    return (site.name is None, (site.name or "").casefold(), site.id)


def rank(
    sites: Sequence[EnrichedSite],
    *,
    radius_m: int,
    text_filter: Optional[str] = None,
    category_filter: Optional[str] = None,
    sort_by: SortBy = "distance",
    limit: int = 20,
) -> List[EnrichedSite]:
    """Filter, sort, then truncate. Truncation is always last."""
    kept = [
        s for s in sites
        if within_radius(s, radius_m)
        and matches_text(s, text_filter)
        and matches_category(s, category_filter)
    ]
    kept.sort(key=_name_key if sort_by == "name" else _distance_key)
    return kept[: max(0, int(limit))]
