"""
Source fetcher contract.

A fetcher turns (center, radius) into a FetchOutcome. It never raises for
upstream trouble: timeouts and failures become a non-ok status so the
aggregator can keep whatever the other sources delivered.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from wastewins.core.cache import TTLCache
from wastewins.core.contracts import FetchOutcome, LatLon, RecyclingSite, SourceId, SourceTag
from wastewins.core.geo import rounding_pad_m
from wastewins.core.keying import source_key

logger = logging.getLogger(__name__)


class SourceFetcher(ABC):
    source_id: SourceId
    source_tag: SourceTag
    # Local sources skip the cache: reading them is cheaper than a lookup
    cacheable: bool = True
    algo_version: str = "v1"

    def __init__(
        self,
        *,
        cache: Optional[TTLCache] = None,
        cache_ttl_s: float = 3600,
        key_precision: int = 2,
    ):
        self.cache = cache
        self.cache_ttl_s = float(cache_ttl_s)
        self.key_precision = int(key_precision)

    @abstractmethod
    async def _fetch_sites(self, center: LatLon, radius_m: int) -> List[RecyclingSite]:
        """Query the upstream and normalize. May raise."""

    def _cache_key(self, center: LatLon, radius_m: int) -> str:
        return source_key(
            self.source_id,
            center,
            radius_m,
            precision=self.key_precision,
            algo_version=self.algo_version,
        )

    def _query_area(self, center: LatLon, radius_m: int) -> Tuple[LatLon, int]:
        """
        Area actually fetched. A cached result is shared by every center that
        rounds to the same key, so it must cover all of them: query around the
        rounded center with the radius padded by the worst-case rounding offset.
        """
        if self.cache is None or not self.cacheable:
            return center, radius_m
        p = self.key_precision
        rounded = LatLon(lat=round(center.lat, p), lon=round(center.lon, p))
        return rounded, int(radius_m) + rounding_pad_m(p)

    async def _cached(self, key: str) -> Optional[List[RecyclingSite]]:
        if self.cache is None or not self.cacheable:
            return None
        value, found = await self.cache.get(key)
        if not found:
            return None
        try:
            return [RecyclingSite.model_validate(v) for v in value]
        except Exception as e:
            logger.warning("source_cache_unreadable source=%s err=%r", self.source_id, e)
            return None

    async def fetch(self, center: LatLon, radius_m: int, timeout_s: float) -> FetchOutcome:
        t0 = time.monotonic()
        key = self._cache_key(center, radius_m)

        hit = await self._cached(key)
        if hit is not None:
            logger.debug("source_cache_hit source=%s count=%d", self.source_id, len(hit))
            return self._outcome("ok", sites=hit, t0=t0)

        query_center, query_radius_m = self._query_area(center, radius_m)
        try:
            sites = await asyncio.wait_for(
                self._fetch_sites(query_center, query_radius_m),
                timeout=max(0.0, timeout_s),
            )
        except asyncio.TimeoutError:
            logger.warning("source_timeout source=%s timeout_s=%.2f", self.source_id, timeout_s)
            return self._outcome("timeout", error=f"no response within {timeout_s:.1f}s", t0=t0)
        except Exception as e:
            logger.warning("source_failed source=%s err=%r", self.source_id, e)
            return self._outcome("error", error=str(e) or type(e).__name__, t0=t0)

        if self.cache is not None and self.cacheable:
            await self.cache.set(key, [s.model_dump(mode="json") for s in sites], self.cache_ttl_s)

        logger.info(
            "source_fetched source=%s count=%d elapsed_s=%.2f",
            self.source_id, len(sites), time.monotonic() - t0,
        )
        return self._outcome("ok", sites=sites, t0=t0)

    def _outcome(
        self,
        status: str,
        *,
        t0: float,
        sites: Optional[List[RecyclingSite]] = None,
        error: Optional[str] = None,
    ) -> FetchOutcome:
        return FetchOutcome(
            source=self.source_id,
            source_tag=self.source_tag,
            status=status,
            sites=sites or [],
            error=error,
            elapsed_s=round(time.monotonic() - t0, 3),
        )
