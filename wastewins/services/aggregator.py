"""
Concurrent fan-out over the applicable source fetchers, then a
deterministic merge.

Merge precedence is explicit: when two sites share an id, the one whose
source_tag ranks higher in SOURCE_PRECEDENCE wins, whatever order the
fetches completed in.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from wastewins.core.contracts import FetchOutcome, LatLon, RecyclingSite, SourceId, SourceTag
from wastewins.services.sources import SourceFetcher

logger = logging.getLogger(__name__)

SOURCE_PRECEDENCE: Dict[SourceTag, int] = {
    "community_map": 0,
    "region_specialized": 1,
    "curated": 2,
}


def merge_sites(batches: Iterable[Tuple[SourceTag, List[RecyclingSite]]]) -> List[RecyclingSite]:
    """
    Merge per-source batches by id in precedence order (low → high), so a
    higher-precedence record overwrites a lower one on collision. Within a
    batch a repeated id keeps its last occurrence.
    """
    ordered = sorted(batches, key=lambda b: SOURCE_PRECEDENCE[b[0]])
    merged: Dict[str, RecyclingSite] = {}
    collisions = 0
    for _tag, sites in ordered:
        for site in sites:
            if site.id in merged and merged[site.id].source_tag != site.source_tag:
                collisions += 1
            merged[site.id] = site
    if collisions:
        logger.info("merge_collisions count=%d", collisions)
    return list(merged.values())


class SourceAggregator:
    def __init__(self, fetchers: Mapping[SourceId, SourceFetcher]):
        self.fetchers = dict(fetchers)

    async def gather(
        self,
        sources: Sequence[SourceId],
        center: LatLon,
        radius_m: int,
        *,
        timeout_s: float,
    ) -> Tuple[List[RecyclingSite], List[FetchOutcome]]:
        active: List[SourceFetcher] = []
        for sid in sources:
            fetcher = self.fetchers.get(sid)
            if fetcher is None:
                logger.debug("source_not_configured source=%s", sid)
                continue
            active.append(fetcher)

        if not active:
            return [], []

        t0 = time.monotonic()
        tasks = {
            asyncio.create_task(f.fetch(center, radius_m, timeout_s), name=f"fetch:{f.source_id}"): f
            for f in active
        }
        # Fetchers enforce their own deadline; this wait is the backstop.
        done, pending = await asyncio.wait(tasks.keys(), timeout=timeout_s + 0.1)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes: List[FetchOutcome] = []
        for task, fetcher in tasks.items():
            if task in done and not task.cancelled() and task.exception() is None:
                outcomes.append(task.result())
                continue
            if task in done and not task.cancelled():
                err = task.exception()
                logger.warning("source_crashed source=%s err=%r", fetcher.source_id, err)
                outcomes.append(FetchOutcome(
                    source=fetcher.source_id,
                    source_tag=fetcher.source_tag,
                    status="error",
                    error=str(err) or type(err).__name__,
                ))
                continue
            logger.warning("source_cancelled source=%s", fetcher.source_id)
            outcomes.append(FetchOutcome(
                source=fetcher.source_id,
                source_tag=fetcher.source_tag,
                status="timeout",
                error="cancelled at search deadline",
                elapsed_s=round(time.monotonic() - t0, 3),
            ))

        sites = merge_sites((o.source_tag, o.sites) for o in outcomes if o.status == "ok")
        logger.info(
            "aggregate_done sources=%s merged=%d elapsed_s=%.2f",
            ",".join(f"{o.source}:{o.status}:{len(o.sites)}" for o in outcomes),
            len(sites),
            time.monotonic() - t0,
        )
        return sites, outcomes
