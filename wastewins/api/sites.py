from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from wastewins.core.contracts import (
    DistanceRequest,
    DistanceResult,
    GeocodeRequest,
    GeocodeResult,
    SearchQuery,
    SearchResult,
)
from wastewins.core.errors import (
    InvalidQuery,
    SearchTimeout,
    SourceUnavailable,
    bad_request,
    gateway_timeout,
    not_found,
    service_unavailable,
)
from wastewins.core.geo import is_valid_coord
from wastewins.services.distance import DistanceEnricher, resolve_distance
from wastewins.services.geocoding import NominatimGeocoding
from wastewins.services.search import SiteSearch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sites")


def get_search_service() -> SiteSearch:
    raise RuntimeError("SiteSearch must be provided by app dependency override")


def get_distance_enricher() -> DistanceEnricher:
    raise RuntimeError("DistanceEnricher must be provided by app dependency override")


def get_geocoder() -> NominatimGeocoding:
    raise RuntimeError("NominatimGeocoding must be provided by app dependency override")


# ──────────────────────────────────────────────────────────────
# /sites/search
# ──────────────────────────────────────────────────────────────

@router.post("/search", response_model=SearchResult)
async def sites_search(
    query: SearchQuery,
    search: SiteSearch = Depends(get_search_service),
) -> SearchResult:
    try:
        return await search.search(query)
    except InvalidQuery as e:
        bad_request(e.code, str(e))
    except SearchTimeout as e:
        gateway_timeout(e.code, str(e))


# ──────────────────────────────────────────────────────────────
# /sites/distance
# ──────────────────────────────────────────────────────────────

@router.post("/distance", response_model=DistanceResult)
async def sites_distance(
    req: DistanceRequest,
    enricher: DistanceEnricher = Depends(get_distance_enricher),
) -> DistanceResult:
    for label, p in (("origin", req.origin), ("destination", req.destination)):
        if not is_valid_coord(p.lat, p.lon):
            bad_request("invalid_query", f"{label} out of range: lat={p.lat} lon={p.lon}")
    return await resolve_distance(enricher, req.origin, req.destination)


# ──────────────────────────────────────────────────────────────
# /sites/geocode
# ──────────────────────────────────────────────────────────────

@router.post("/geocode", response_model=GeocodeResult)
async def sites_geocode(
    req: GeocodeRequest,
    geocoder: NominatimGeocoding = Depends(get_geocoder),
) -> GeocodeResult:
    try:
        result = await geocoder.geocode(req.address)
    except InvalidQuery as e:
        bad_request(e.code, str(e))
    except SourceUnavailable as e:
        service_unavailable("geocoder_unavailable", str(e))

    if result is None:
        not_found("address_not_found", f"No match for {req.address.strip()!r}")
    return result
