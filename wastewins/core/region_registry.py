# wastewins/core/region_registry.py
"""
Region detection from static bounding boxes.

Used by the search pipeline to decide which region-specialized sources to
query on top of the always-on community map and curated dataset.
Membership is inclusive of the box edges.
"""
from __future__ import annotations

from typing import Dict, List, Tuple

from wastewins.core.contracts import LatLon, SourceId


# Approximate region bounding boxes: (minLon, minLat, maxLon, maxLat)
_REGION_BOUNDS: Dict[str, Tuple[float, float, float, float]] = {
    "in": (68.0, 6.5, 97.5, 35.5),
}

# Region → specialized sources it enables
_REGION_SOURCES: Dict[str, Tuple[SourceId, ...]] = {
    "in": ("osm_india",),
}

# Always queried, regardless of region
_BASE_SOURCES: Tuple[SourceId, ...] = ("osm", "curated")


def _contains(bounds: Tuple[float, float, float, float], p: LatLon) -> bool:
    return bounds[0] <= p.lon <= bounds[2] and bounds[1] <= p.lat <= bounds[3]


def regions_for_point(center: LatLon) -> List[str]:
    """
    Sorted region codes whose bounds contain the point.

    >>> regions_for_point(LatLon(lat=28.6139, lon=77.2090))
    ['in']
    """
    return sorted(code for code, bounds in _REGION_BOUNDS.items() if _contains(bounds, center))


def classify(center: LatLon) -> List[SourceId]:
    """Sources applicable to a search centred on `center`."""
    out: List[SourceId] = [_BASE_SOURCES[0]]
    for code in regions_for_point(center):
        for source in _REGION_SOURCES.get(code, ()):
            if source not in out:
                out.append(source)
    out.extend(s for s in _BASE_SOURCES[1:] if s not in out)
    return out
