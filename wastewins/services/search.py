"""
Search pipeline: classify → fetch + merge → distance enrichment → rank.

One overall deadline is split between the two fan-out phases:
  - fetch gets `fetch_share` of it (each source additionally capped at
    `source_timeout_s`)
  - enrichment gets what is left, minus `rank_headroom_s` for the
    synchronous rank step
Partial data is always preferred to an error. SearchTimeout is raised only
when every source ran out of time and nothing was collected. With the
default wiring the in-process curated source always answers, so the 504
path is only reachable when curated is disabled or not classified for the
origin.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List

from wastewins.core.contracts import LatLon, SearchQuery, SearchResult, SourceId, SourceReport
from wastewins.core.errors import InvalidQuery, SearchTimeout
from wastewins.core.geo import is_valid_coord
from wastewins.core.region_registry import classify
from wastewins.core.time import utc_now_iso
from wastewins.services.aggregator import SourceAggregator
from wastewins.services.distance import DistanceEnricher
from wastewins.services.ranking import rank

logger = logging.getLogger(__name__)


def validate_query(query: SearchQuery) -> None:
    if not is_valid_coord(query.origin.lat, query.origin.lon):
        raise InvalidQuery(f"origin out of range: lat={query.origin.lat} lon={query.origin.lon}")
    if query.radius_meters <= 0:
        raise InvalidQuery(f"radius_meters must be positive, got {query.radius_meters}")


class SiteSearch:
    def __init__(
        self,
        *,
        aggregator: SourceAggregator,
        enricher: DistanceEnricher,
        classifier: Callable[[LatLon], List[SourceId]] = classify,
        deadline_s: float = 12.0,
        fetch_share: float = 0.6,
        rank_headroom_s: float = 0.25,
        source_timeout_s: float = 10.0,
        max_results: int = 20,
    ):
        self.aggregator = aggregator
        self.enricher = enricher
        self.classifier = classifier
        self.deadline_s = float(deadline_s)
        self.fetch_share = min(1.0, max(0.0, float(fetch_share)))
        self.rank_headroom_s = float(rank_headroom_s)
        self.source_timeout_s = float(source_timeout_s)
        self.max_results = int(max_results)

    async def search(self, query: SearchQuery) -> SearchResult:
        validate_query(query)

        t0 = time.monotonic()
        deadline = t0 + self.deadline_s
        warnings: List[str] = []

        # ──────────────────────────────────────────────────────
        # Fetch + merge
        # ──────────────────────────────────────────────────────
        sources = self.classifier(query.origin)
        fetch_budget = min(self.source_timeout_s, self.deadline_s * self.fetch_share)
        merged, outcomes = await self.aggregator.gather(
            sources, query.origin, query.radius_meters, timeout_s=fetch_budget,
        )

        reports = [
            SourceReport(source=o.source, status=o.status, count=len(o.sites), error=o.error)
            for o in outcomes
        ]
        degraded = False
        for o in outcomes:
            if o.status != "ok":
                degraded = True
                warnings.append(f"source {o.source} {o.status}: {o.error or 'no detail'}")

        if outcomes and all(o.status == "timeout" for o in outcomes):
            logger.warning("search_timeout sources=%s", [o.source for o in outcomes])
            raise SearchTimeout(f"no source responded within {fetch_budget:.1f}s")

        # ──────────────────────────────────────────────────────
        # Distance enrichment
        # ──────────────────────────────────────────────────────
        enrich_budget = deadline - time.monotonic() - self.rank_headroom_s
        enriched, enrich_degraded = await self.enricher.enrich(
            query.origin, merged, timeout_s=enrich_budget, radius_m=query.radius_meters,
        )
        if enrich_degraded:
            degraded = True
            warnings.append("some distances are great-circle estimates")

        # ──────────────────────────────────────────────────────
        # Rank
        # ──────────────────────────────────────────────────────
        ranked = rank(
            enriched,
            radius_m=query.radius_meters,
            text_filter=query.text_filter,
            category_filter=query.category_filter,
            sort_by=query.sort_by,
            limit=self.max_results,
        )

        logger.info(
            "search_done origin=%.4f,%.4f radius_m=%d merged=%d returned=%d degraded=%s elapsed_s=%.2f",
            query.origin.lat, query.origin.lon, query.radius_meters,
            len(merged), len(ranked), degraded, time.monotonic() - t0,
        )
        return SearchResult(
            sites=ranked,
            result_count=len(ranked),
            degraded=degraded,
            sources=reports,
            warnings=warnings,
            created_at=utc_now_iso(),
        )
