from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Dict, List, Optional, Sequence

import httpx

from wastewins.core.contracts import LatLon, RecyclingSite, SourceTag
from wastewins.core.errors import SourceUnavailable
from wastewins.core.geo import is_valid_coord
from wastewins.services.capabilities import capabilities_from_osm_tags
from wastewins.services.sources import SourceFetcher

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────
# Query filters
# ──────────────────────────────────────────────────────────────

COMMUNITY_FILTERS: List[str] = ['["amenity"="recycling"]']

# Indian data is sparse on amenity=recycling; disposal points and scrap yards
# are where most collection actually happens.
INDIA_FILTERS: List[str] = [
    '["amenity"="recycling"]',
    '["amenity"="waste_disposal"]',
    '["amenity"="waste_transfer_station"]',
    '["landuse"="industrial"]["industrial"="scrap_yard"]',
]


def build_around_ql(
    *,
    center: LatLon,
    radius_m: int,
    filters: Sequence[str],
    timeout_s: int = 25,
    limit: int = 100,
) -> str:
    around = f"(around:{int(radius_m)},{center.lat},{center.lon})"
    parts: List[str] = []
    for f in filters:
        parts.append(f"node{f}{around};")
        parts.append(f"way{f}{around};")
        parts.append(f"relation{f}{around};")
    return (
        f"[out:json][timeout:{int(timeout_s)}];"
        f"("
        f'{"".join(parts)}'
        f");"
        f"out center {int(limit)};"
    )


# ──────────────────────────────────────────────────────────────
# Element normalization
# ──────────────────────────────────────────────────────────────

def _address_from_tags(tags: Dict[str, Any]) -> Optional[str]:
    street = " ".join(
        str(tags[k]).strip() for k in ("addr:housenumber", "addr:street") if tags.get(k)
    )
    parts = [street] if street else []
    for k in ("addr:suburb", "addr:city", "addr:postcode"):
        v = tags.get(k)
        if v:
            parts.append(str(v).strip())
    return ", ".join(parts) or tags.get("addr:full") or None


def element_to_site(el: Dict[str, Any], *, source_tag: SourceTag) -> Optional[RecyclingSite]:
    """One Overpass element → RecyclingSite, or None if it has no usable position."""
    osm_type = el.get("type", "node")
    osm_id = el.get("id")
    if osm_id is None:
        return None

    lat = el.get("lat")
    lon = el.get("lon")
    if lat is None or lon is None:
        center = el.get("center") or {}
        lat = center.get("lat")
        lon = center.get("lon")
    if not is_valid_coord(lat, lon):
        return None

    tags = el.get("tags") or {}
    name = tags.get("name") or tags.get("brand")

    raw: Dict[str, str] = {"osm_type": str(osm_type), "osm_id": str(osm_id)}
    picks = {
        "operator": tags.get("operator"),
        "phone": tags.get("phone") or tags.get("contact:phone"),
        "website": tags.get("website") or tags.get("contact:website"),
        "opening_hours": tags.get("opening_hours"),
        "recycling_type": tags.get("recycling_type"),
        "address": _address_from_tags(tags),
    }
    for k, v in picks.items():
        if v:
            raw[k] = str(v)

    return RecyclingSite(
        id=f"osm:{osm_type}:{osm_id}",
        name=str(name) if name else None,
        location=LatLon(lat=float(lat), lon=float(lon)),
        capabilities=capabilities_from_osm_tags(tags),
        source_tag=source_tag,
        raw=raw,
    )


# ──────────────────────────────────────────────────────────────
# Overpass transport
# ──────────────────────────────────────────────────────────────

def _is_retryable_status(code: int) -> bool:
    return code in (429, 502, 503, 504)


async def fetch_overpass_with_retries(
    *,
    client: httpx.AsyncClient,
    url: str,
    ql: str,
    source: str,
    retries: int = 2,
    base_sleep_s: float = 0.5,
) -> Dict[str, Any]:
    attempts = max(1, int(retries) + 1)
    last_err = "no attempts made"

    for i in range(attempts):
        try:
            r = await client.post(url, content=ql.encode("utf-8"))
            if _is_retryable_status(r.status_code):
                last_err = f"HTTP {r.status_code}"
            else:
                r.raise_for_status()
                data = r.json()
                if not isinstance(data, dict):
                    raise SourceUnavailable(source, "unexpected payload")
                return data
        except httpx.HTTPStatusError as e:
            raise SourceUnavailable(source, f"HTTP {e.response.status_code}") from e
        except httpx.TransportError as e:
            last_err = f"{type(e).__name__}: {e}"
        except ValueError as e:
            raise SourceUnavailable(source, "invalid JSON") from e

        if i + 1 < attempts:
            delay = base_sleep_s * (2 ** i) + random.random() * 0.25
            logger.info("overpass_retry source=%s attempt=%d err=%s sleep_s=%.2f", source, i + 1, last_err, delay)
            await asyncio.sleep(delay)

    raise SourceUnavailable(source, last_err)


# ──────────────────────────────────────────────────────────────
# Fetchers
# ──────────────────────────────────────────────────────────────

class OverpassFetcher(SourceFetcher):
    filters: List[str] = COMMUNITY_FILTERS

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        url: str,
        retries: int = 2,
        retry_base_s: float = 0.5,
        result_limit: int = 100,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.client = client
        self.url = url
        self.retries = retries
        self.retry_base_s = retry_base_s
        self.result_limit = result_limit

    async def _fetch_sites(self, center: LatLon, radius_m: int) -> List[RecyclingSite]:
        ql = build_around_ql(
            center=center,
            radius_m=radius_m,
            filters=self.filters,
            limit=self.result_limit,
        )
        data = await fetch_overpass_with_retries(
            client=self.client,
            url=self.url,
            ql=ql,
            source=self.source_id,
            retries=self.retries,
            base_sleep_s=self.retry_base_s,
        )

        sites: List[RecyclingSite] = []
        skipped = 0
        for el in data.get("elements") or []:
            if not isinstance(el, dict):
                skipped += 1
                continue
            site = element_to_site(el, source_tag=self.source_tag)
            if site is None:
                skipped += 1
                continue
            sites.append(site)

        if skipped:
            logger.debug("overpass_elements_skipped source=%s skipped=%d", self.source_id, skipped)
        return sites


class CommunityMapFetcher(OverpassFetcher):
    """Worldwide amenity=recycling points from the public Overpass API."""

    source_id = "osm"
    source_tag = "community_map"
    filters = COMMUNITY_FILTERS


class IndiaRecyclingFetcher(OverpassFetcher):
    """Broader waste-facility query against an India-friendly Overpass mirror."""

    source_id = "osm_india"
    source_tag = "region_specialized"
    filters = INDIA_FILTERS
