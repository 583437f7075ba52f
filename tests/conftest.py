# tests/conftest.py
from __future__ import annotations

import asyncio
from typing import List, Optional

import pytest

from wastewins.core.cache import TTLCache
from wastewins.core.contracts import EnrichedSite, LatLon, RecyclingSite
from wastewins.services.sources import SourceFetcher


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StaticFetcher(SourceFetcher):
    """Returns a fixed list, or raises, or never finishes."""

    def __init__(
        self,
        source_id: str,
        source_tag: str,
        sites: Optional[List[RecyclingSite]] = None,
        *,
        error: Optional[Exception] = None,
        hang: bool = False,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.source_id = source_id
        self.source_tag = source_tag
        self.sites = sites or []
        self.error = error
        self.hang = hang
        self.calls = 0
        self.queries: List[tuple] = []

    async def _fetch_sites(self, center: LatLon, radius_m: int) -> List[RecyclingSite]:
        self.calls += 1
        self.queries.append((center, radius_m))
        if self.hang:
            await asyncio.sleep(3600)
        if self.error is not None:
            raise self.error
        return list(self.sites)


def make_site(
    site_id: str,
    lat: float = 28.6139,
    lon: float = 77.2090,
    *,
    name: Optional[str] = None,
    source_tag: str = "community_map",
    capabilities=(),
    raw=None,
) -> RecyclingSite:
    return RecyclingSite(
        id=site_id,
        name=name,
        location=LatLon(lat=lat, lon=lon),
        capabilities=frozenset(capabilities),
        source_tag=source_tag,
        raw=raw or {},
    )


def make_enriched(
    site_id: str,
    distance_km: float,
    *,
    name: Optional[str] = None,
    capabilities=(),
    raw=None,
) -> EnrichedSite:
    return EnrichedSite(
        id=site_id,
        name=name,
        location=LatLon(lat=0.0, lon=0.0),
        capabilities=frozenset(capabilities),
        source_tag="community_map",
        raw=raw or {},
        distance_km=distance_km,
        distance_method="great_circle",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> TTLCache:
    return TTLCache(clock=clock)
