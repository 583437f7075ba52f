from __future__ import annotations

from typing import Dict, FrozenSet, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer


# ──────────────────────────────────────────────────────────────
# Vocabularies
# ──────────────────────────────────────────────────────────────

# Provenance of a site; also the merge precedence order (low → high).
SourceTag = Literal["community_map", "region_specialized", "curated"]

# Fetcher identity, as returned by the region classifier.
SourceId = Literal["osm", "osm_india", "curated"]

DistanceMethod = Literal["routed", "great_circle"]

SortBy = Literal["distance", "name"]

FetchStatus = Literal["ok", "timeout", "error"]

Capability = Literal[
    "plastic", "paper", "glass", "metal",
    "clothes", "electronics", "batteries", "books",
    "biowaste",
]


# ──────────────────────────────────────────────────────────────
# Shared
# ──────────────────────────────────────────────────────────────

class LatLon(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lon: float


# ──────────────────────────────────────────────────────────────
# Sites
# ──────────────────────────────────────────────────────────────

class RecyclingSite(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str                                   # namespaced: "osm:node:123", "curated:delhi-dwarka"
    name: Optional[str] = None
    location: LatLon
    capabilities: FrozenSet[str] = Field(default_factory=frozenset)
    source_tag: SourceTag
    raw: Dict[str, str] = Field(default_factory=dict)  # display only

    @field_serializer("capabilities")
    def _sorted_capabilities(self, caps: FrozenSet[str]) -> List[str]:
        return sorted(caps)


class EnrichedSite(RecyclingSite):
    distance_km: float
    distance_method: DistanceMethod


# ──────────────────────────────────────────────────────────────
# Fetching
# ──────────────────────────────────────────────────────────────

class FetchOutcome(BaseModel):
    source: SourceId
    source_tag: SourceTag
    status: FetchStatus = "ok"
    sites: List[RecyclingSite] = Field(default_factory=list)
    error: Optional[str] = None
    elapsed_s: float = 0.0


class SourceReport(BaseModel):
    source: SourceId
    status: FetchStatus
    count: int
    error: Optional[str] = None


# ──────────────────────────────────────────────────────────────
# Search
# ──────────────────────────────────────────────────────────────

class SearchQuery(BaseModel):
    # Constraints are enforced by the search service so callers get InvalidQuery,
    # not a validation error from the model layer.
    origin: LatLon
    radius_meters: int
    text_filter: Optional[str] = None
    category_filter: Optional[str] = None
    sort_by: SortBy = "distance"


class SearchResult(BaseModel):
    sites: List[EnrichedSite] = Field(default_factory=list)
    result_count: int = 0
    degraded: bool = False
    sources: List[SourceReport] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    created_at: str                           # ISO8601 UTC


# ──────────────────────────────────────────────────────────────
# Point-to-point distance + geocoding
# ──────────────────────────────────────────────────────────────

class DistanceRequest(BaseModel):
    origin: LatLon
    destination: LatLon


class DistanceResult(BaseModel):
    origin: LatLon
    destination: LatLon
    distance_km: float
    distance_method: DistanceMethod
    degraded: bool = False


class GeocodeRequest(BaseModel):
    address: str


class GeocodeResult(BaseModel):
    lat: float
    lon: float
    display_name: str
