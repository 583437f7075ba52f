from __future__ import annotations

import base64
import hashlib
from typing import Any

import orjson

from wastewins.core.contracts import LatLon


def _orjson_dumps(obj: Any) -> bytes:
    return orjson.dumps(
        obj,
        option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS,
    )


def sha256_b32(data: bytes) -> str:
    h = hashlib.sha256(data).digest()
    # URL-safe base32-ish: we use base64 urlsafe with no padding for brevity
    return base64.urlsafe_b64encode(h).decode("ascii").rstrip("=")


def _fmt(p: LatLon, precision: int) -> str:
    # Rounded + fixed width so 19.1 and 19.10 share a key
    return f"{round(p.lat, precision):.{precision}f},{round(p.lon, precision):.{precision}f}"


def distance_key(origin: LatLon, dest: LatLon, *, precision: int) -> str:
    """
    Low-cardinality key for a distance lookup.

    Both ends are rounded to `precision` decimal degrees (3 ≈ 110 m), so nearby
    origins share entries. Direction matters: routed distances are not symmetric.
    """
    return f"dist:v1:{_fmt(origin, precision)}|{_fmt(dest, precision)}"


def source_key(source: str, center: LatLon, radius_m: int, *, precision: int, algo_version: str) -> str:
    payload = {
        "algo_version": algo_version,
        "source": source,
        "center": _fmt(center, precision),
        "radius_m": int(radius_m),
    }
    return f"src:{source}:" + sha256_b32(_orjson_dumps(payload))


def geocode_key(address: str) -> str:
    norm = " ".join(address.strip().lower().split())
    return "geo:" + sha256_b32(norm.encode("utf-8"))
