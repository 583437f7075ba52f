# wastewins/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware

# Load <repo>/.env (main.py is <repo>/wastewins/main.py)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

import httpx

from wastewins.api import api_router
from wastewins.api import sites as sites_api
from wastewins.core.cache import SqliteDurableLayer, TTLCache
from wastewins.core.settings import Settings, settings as default_settings
from wastewins.core.storage import connect_sqlite
from wastewins.services.aggregator import SourceAggregator
from wastewins.services.curated import CuratedFetcher
from wastewins.services.distance import DistanceEnricher
from wastewins.services.geocoding import NominatimGeocoding
from wastewins.services.overpass import CommunityMapFetcher, IndiaRecyclingFetcher
from wastewins.services.routing import build_providers
from wastewins.services.search import SiteSearch
from wastewins.services.sources import SourceFetcher

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────────────────
# Service wiring
# ──────────────────────────────────────────────────────────────

def build_cache(cfg: Settings) -> TTLCache:
    durable = None
    if cfg.cache_durable_enabled:
        try:
            durable = SqliteDurableLayer(connect_sqlite(cfg.cache_db_path))
        except Exception as e:
            # Memory-only still works; the durable layer is an optimization
            logger.warning("cache_durable_unavailable path=%s err=%r", cfg.cache_db_path, e)
    return TTLCache(
        durable=durable,
        durable_timeout_s=cfg.cache_durable_timeout_s,
        max_entries=cfg.cache_memory_max_entries,
    )


def build_fetchers(cfg: Settings, *, client: httpx.AsyncClient, cache: TTLCache) -> Dict[str, SourceFetcher]:
    common = dict(cache=cache, cache_ttl_s=cfg.source_cache_ttl_s, key_precision=cfg.source_key_precision)
    overpass = dict(
        client=client,
        retries=cfg.overpass_retries,
        retry_base_s=cfg.overpass_retry_base_s,
        result_limit=cfg.overpass_result_limit,
    )
    fetchers: Dict[str, SourceFetcher] = {
        "osm": CommunityMapFetcher(url=cfg.overpass_url, **overpass, **common),
        "osm_india": IndiaRecyclingFetcher(url=cfg.overpass_india_url, **overpass, **common),
    }
    if cfg.curated_enabled:
        fetchers["curated"] = CuratedFetcher(path=cfg.curated_path, **common)
    return fetchers


def build_enricher(cfg: Settings, *, client: httpx.AsyncClient, cache: TTLCache) -> DistanceEnricher:
    providers = build_providers(
        client=client,
        mapbox_token=cfg.mapbox_token,
        mapbox_directions_url=cfg.mapbox_directions_url,
        osrm_base_url=cfg.osrm_base_url,
        osrm_profile=cfg.osrm_profile,
        timeout_s=cfg.routing_timeout_s,
    )
    return DistanceEnricher(
        cache=cache,
        providers=providers,
        cache_ttl_s=cfg.distance_cache_ttl_s,
        fallback_ttl_s=cfg.distance_fallback_ttl_s,
        key_precision=cfg.distance_key_precision,
        concurrency=cfg.routing_concurrency,
    )


# ──────────────────────────────────────────────────────────────
# App factory
# ──────────────────────────────────────────────────────────────

def create_app(cfg: Settings | None = None) -> FastAPI:
    cfg = cfg or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        client = httpx.AsyncClient(
            headers={"User-Agent": cfg.http_user_agent},
            follow_redirects=True,
            transport=httpx.AsyncHTTPTransport(retries=1),
        )
        cache = build_cache(cfg)

        enricher = build_enricher(cfg, client=client, cache=cache)
        search = SiteSearch(
            aggregator=SourceAggregator(build_fetchers(cfg, client=client, cache=cache)),
            enricher=enricher,
            deadline_s=cfg.search_deadline_s,
            fetch_share=cfg.search_fetch_share,
            rank_headroom_s=cfg.search_rank_headroom_s,
            source_timeout_s=cfg.source_timeout_s,
            max_results=cfg.max_results_display,
        )
        geocoder = NominatimGeocoding(
            client=client,
            url=cfg.nominatim_url,
            user_agent=cfg.http_user_agent,
            timeout_s=cfg.geocode_timeout_s,
            cache=cache,
            cache_ttl_s=cfg.source_cache_ttl_s,
        )

        app.dependency_overrides.setdefault(sites_api.get_search_service, lambda: search)
        app.dependency_overrides.setdefault(sites_api.get_distance_enricher, lambda: enricher)
        app.dependency_overrides.setdefault(sites_api.get_geocoder, lambda: geocoder)

        logger.info("[app] started sources=%s", sorted(search.aggregator.fetchers))
        try:
            yield
        finally:
            logger.info("[app] shutting down, closing connections")
            await client.aclose()
            cache.close()

    app = FastAPI(title="WasteWins Sites", version="1.0.0", lifespan=lifespan)

    # ── Compression (must be added before CORS) ──
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            # Local web dev
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    return app


logging.basicConfig(
    level=getattr(logging, default_settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()
