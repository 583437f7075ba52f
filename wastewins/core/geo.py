from __future__ import annotations

import math
from typing import Any

from wastewins.core.contracts import LatLon

EARTH_RADIUS_KM = 6371.0


def great_circle_km(a: LatLon, b: LatLon) -> float:
    """Haversine distance in kilometres between two points."""
    lat1, lon1 = math.radians(a.lat), math.radians(a.lon)
    lat2, lon2 = math.radians(b.lat), math.radians(b.lon)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    x = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # Clamp: rounding can push x a hair outside [0, 1] for identical or antipodal points
    x = min(1.0, max(0.0, x))
    return 2.0 * EARTH_RADIUS_KM * math.asin(math.sqrt(x))


def is_valid_coord(lat: Any, lon: Any) -> bool:
    if isinstance(lat, bool) or isinstance(lon, bool):
        return False
    try:
        la = float(lat)
        lo = float(lon)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(la) and math.isfinite(lo)):
        return False
    return -90.0 <= la <= 90.0 and -180.0 <= lo <= 180.0


def rounding_pad_m(precision: int) -> int:
    """
    Upper bound, in metres, on how far a point can sit from its coordinates
    rounded to `precision` decimal degrees (half a step on both axes).
    """
    half_step_deg = 0.5 * 10 ** (-int(precision))
    metres_per_deg = math.pi * EARTH_RADIUS_KM * 1000.0 / 180.0
    return int(math.ceil(half_step_deg * metres_per_deg * math.sqrt(2.0)))
