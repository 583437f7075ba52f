"""
Hand-maintained recycling centres bundled with the service.

The dataset is small and local, so it is loaded once and filtered in
memory on every search (no cache round-trip).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import orjson

from wastewins.core.contracts import LatLon, RecyclingSite
from wastewins.core.geo import great_circle_km, is_valid_coord
from wastewins.services.capabilities import capabilities_from_services
from wastewins.services.sources import SourceFetcher

logger = logging.getLogger(__name__)

DEFAULT_CURATED_PATH = Path(__file__).resolve().parent.parent / "data" / "curated_sites.json"


def _entry_to_site(entry: Dict[str, Any]) -> Optional[RecyclingSite]:
    slug = entry.get("id")
    lat, lon = entry.get("lat"), entry.get("lon")
    if not slug or not is_valid_coord(lat, lon):
        return None

    raw: Dict[str, str] = {}
    for src, dst in (("address", "address"), ("phone", "phone"), ("hours", "opening_hours"), ("website", "website")):
        v = entry.get(src)
        if v:
            raw[dst] = str(v)

    return RecyclingSite(
        id=f"curated:{slug}",
        name=entry.get("name") or None,
        location=LatLon(lat=float(lat), lon=float(lon)),
        capabilities=capabilities_from_services(entry.get("services") or []),
        source_tag="curated",
        raw=raw,
    )


def load_curated_sites(path: Path | str | None = None) -> List[RecyclingSite]:
    p = Path(path) if path else DEFAULT_CURATED_PATH
    entries = orjson.loads(p.read_bytes())
    if not isinstance(entries, list):
        raise ValueError(f"curated dataset must be a JSON list: {p}")

    sites: List[RecyclingSite] = []
    for entry in entries:
        site = _entry_to_site(entry) if isinstance(entry, dict) else None
        if site is None:
            logger.warning("curated_entry_skipped entry=%r", entry)
            continue
        sites.append(site)

    logger.info("curated_loaded path=%s count=%d", p, len(sites))
    return sites


class CuratedFetcher(SourceFetcher):
    source_id = "curated"
    source_tag = "curated"
    cacheable = False

    def __init__(self, *, sites: Optional[List[RecyclingSite]] = None, path: Path | str | None = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.sites = sites if sites is not None else load_curated_sites(path)

    async def _fetch_sites(self, center: LatLon, radius_m: int) -> List[RecyclingSite]:
        radius_km = radius_m / 1000.0
        return [s for s in self.sites if great_circle_km(center, s.location) <= radius_km]
