"""
Distance resolution: cache → routing providers in order → great-circle.

A routed value is never reported below the great-circle value for the same
pair; provider quirks (snapping both ends onto the same road) can return a
shorter figure, which is clamped up.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from wastewins.core.cache import TTLCache
from wastewins.core.contracts import DistanceMethod, DistanceResult, EnrichedSite, LatLon, RecyclingSite
from wastewins.core.errors import ProviderUnavailable
from wastewins.core.geo import great_circle_km
from wastewins.core.keying import distance_key
from wastewins.services.routing import RoutingProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    distance_km: float
    method: DistanceMethod
    degraded: bool = False


class DistanceEnricher:
    def __init__(
        self,
        *,
        cache: Optional[TTLCache] = None,
        providers: Sequence[RoutingProvider] = (),
        great_circle: Callable[[LatLon, LatLon], float] = great_circle_km,
        cache_ttl_s: float = 6 * 60 * 60,
        fallback_ttl_s: float = 300,
        key_precision: int = 3,
        concurrency: int = 8,
    ):
        self.cache = cache
        self.providers = list(providers)
        self.great_circle = great_circle
        self.cache_ttl_s = float(cache_ttl_s)
        self.fallback_ttl_s = float(fallback_ttl_s)
        self.key_precision = int(key_precision)
        self._sem = asyncio.Semaphore(max(1, int(concurrency)))

    # ──────────────────────────────────────────────────────────
    # Single pair
    # ──────────────────────────────────────────────────────────

    async def _route(self, origin: LatLon, dest: LatLon) -> Optional[float]:
        """First provider that answers, or None if all failed."""
        for provider in self.providers:
            try:
                async with self._sem:
                    return await asyncio.wait_for(provider.route_km(origin, dest), timeout=provider.timeout_s)
            except asyncio.TimeoutError:
                logger.warning("routing_timeout provider=%s timeout_s=%.2f", provider.name, provider.timeout_s)
            except ProviderUnavailable as e:
                logger.warning("routing_failed provider=%s err=%s", e.provider, e)
        return None

    async def resolve(self, origin: LatLon, dest: LatLon, *, max_km: Optional[float] = None) -> Resolution:
        """
        Distance from origin to dest.

        With `max_km`, a pair whose great-circle distance already exceeds it
        skips routing (a road route can only be longer) and is not cached.
        """
        key = distance_key(origin, dest, precision=self.key_precision)
        if self.cache is not None:
            value, found = await self.cache.get(key)
            if found:
                return Resolution(
                    distance_km=float(value["distance_km"]),
                    method=value["method"],
                    degraded=bool(value.get("degraded", False)),
                )

        gc_km = self.great_circle(origin, dest)
        if max_km is not None and gc_km > max_km:
            return Resolution(distance_km=gc_km, method="great_circle")

        if not self.providers:
            res = Resolution(distance_km=gc_km, method="great_circle")
            ttl = self.cache_ttl_s
        else:
            routed = await self._route(origin, dest)
            if routed is None:
                res = Resolution(distance_km=gc_km, method="great_circle", degraded=True)
                ttl = self.fallback_ttl_s
            else:
                if routed < gc_km:
                    logger.debug("routed_below_great_circle routed_km=%.3f gc_km=%.3f", routed, gc_km)
                res = Resolution(distance_km=max(routed, gc_km), method="routed")
                ttl = self.cache_ttl_s

        if self.cache is not None:
            await self.cache.set(
                key,
                {"distance_km": res.distance_km, "method": res.method, "degraded": res.degraded},
                ttl,
            )
        return res

    # ──────────────────────────────────────────────────────────
    # Batch
    # ──────────────────────────────────────────────────────────

    async def enrich(
        self,
        origin: LatLon,
        sites: Sequence[RecyclingSite],
        *,
        timeout_s: float,
        radius_m: Optional[int] = None,
    ) -> Tuple[List[EnrichedSite], bool]:
        """
        Resolve every site concurrently. Output order matches input order.
        Sites still unresolved at the deadline get the great-circle value.
        Returns (enriched, degraded).
        """
        if not sites:
            return [], False

        t0 = time.monotonic()
        max_km = radius_m / 1000.0 if radius_m is not None else None
        tasks = [asyncio.create_task(self.resolve(origin, s.location, max_km=max_km)) for s in sites]
        _done, pending = await asyncio.wait(tasks, timeout=max(0.0, timeout_s))

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("enrich_deadline pending=%d of=%d timeout_s=%.2f", len(pending), len(tasks), timeout_s)

        degraded = False
        out: List[EnrichedSite] = []
        for site, task in zip(sites, tasks):
            res: Optional[Resolution] = None
            if not task.cancelled():
                err = task.exception()
                if err is None:
                    res = task.result()
                else:
                    logger.warning("distance_failed site=%s err=%r", site.id, err)
            if res is None:
                res = Resolution(distance_km=self.great_circle(origin, site.location), method="great_circle", degraded=True)
            degraded = degraded or res.degraded
            out.append(EnrichedSite(
                **site.model_dump(),
                distance_km=res.distance_km,
                distance_method=res.method,
            ))

        logger.info(
            "enrich_done count=%d routed=%d degraded=%s elapsed_s=%.2f",
            len(out), sum(1 for s in out if s.distance_method == "routed"), degraded, time.monotonic() - t0,
        )
        return out, degraded


async def resolve_distance(enricher: DistanceEnricher, origin: LatLon, destination: LatLon) -> DistanceResult:
    res = await enricher.resolve(origin, destination)
    return DistanceResult(
        origin=origin,
        destination=destination,
        distance_km=round(res.distance_km, 3),
        distance_method=res.method,
        degraded=res.degraded,
    )
