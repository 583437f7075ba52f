from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    # ──────────────────────────────────────────────────────────────
    # TTL cache (memory + SQLite durable layer)
    # ──────────────────────────────────────────────────────────────

    cache_db_path: str = Field(default="wastewins/data/wastewins_cache.db", alias="CACHE_DB_PATH")
    cache_durable_enabled: bool = Field(default=True, alias="CACHE_DURABLE_ENABLED")
    # Upper bound on how long a caller waits on the durable layer
    cache_durable_timeout_s: float = Field(default=0.05, alias="CACHE_DURABLE_TIMEOUT_S")
    cache_memory_max_entries: int = Field(default=20000, alias="CACHE_MEMORY_MAX_ENTRIES")

    # ──────────────────────────────────────────────────────────────
    # Sources (Overpass + curated dataset)
    # ──────────────────────────────────────────────────────────────

    overpass_url: str = Field(default="https://overpass-api.de/api/interpreter", alias="OVERPASS_URL")
    overpass_india_url: str = Field(
        default="https://overpass.kumi.systems/api/interpreter",
        alias="OVERPASS_INDIA_URL",
    )
    overpass_retries: int = Field(default=2, alias="OVERPASS_RETRIES")
    overpass_retry_base_s: float = Field(default=0.5, alias="OVERPASS_RETRY_BASE_S")
    overpass_result_limit: int = Field(default=100, alias="OVERPASS_RESULT_LIMIT")

    source_timeout_s: float = Field(default=10.0, alias="SOURCE_TIMEOUT_S")
    source_cache_ttl_s: int = Field(default=60 * 60, alias="SOURCE_CACHE_TTL_S")  # 1h
    source_key_precision: int = Field(default=2, alias="SOURCE_KEY_PRECISION")

    curated_enabled: bool = Field(default=True, alias="CURATED_ENABLED")
    curated_path: str | None = Field(default=None, alias="CURATED_PATH")

    # ──────────────────────────────────────────────────────────────
    # Routing providers (Mapbox premium → OSRM → great-circle)
    # ──────────────────────────────────────────────────────────────

    mapbox_token: str = Field(default="", alias="WASTEWINS_MAPBOX_TOKEN")
    mapbox_directions_url: str = Field(
        default="https://api.mapbox.com/directions/v5/mapbox/driving",
        alias="MAPBOX_DIRECTIONS_URL",
    )
    osrm_base_url: str = Field(default="", alias="OSRM_BASE_URL")
    osrm_profile: str = Field(default="driving", alias="OSRM_PROFILE")

    routing_timeout_s: float = Field(default=2.5, alias="ROUTING_TIMEOUT_S")
    routing_concurrency: int = Field(default=8, alias="ROUTING_CONCURRENCY")

    distance_cache_ttl_s: int = Field(default=60 * 60 * 6, alias="DISTANCE_CACHE_TTL_S")  # 6h
    distance_fallback_ttl_s: int = Field(default=300, alias="DISTANCE_FALLBACK_TTL_S")
    distance_key_precision: int = Field(default=3, alias="DISTANCE_KEY_PRECISION")

    # ──────────────────────────────────────────────────────────────
    # Search pipeline
    # ──────────────────────────────────────────────────────────────

    search_deadline_s: float = Field(default=12.0, alias="SEARCH_DEADLINE_S")
    search_fetch_share: float = Field(default=0.6, alias="SEARCH_FETCH_SHARE")
    search_rank_headroom_s: float = Field(default=0.25, alias="SEARCH_RANK_HEADROOM_S")
    max_results_display: int = Field(default=20, alias="MAX_RESULTS_DISPLAY")

    # ──────────────────────────────────────────────────────────────
    # Geocoding (Nominatim)
    # ──────────────────────────────────────────────────────────────

    nominatim_url: str = Field(default="https://nominatim.openstreetmap.org/search", alias="NOMINATIM_URL")
    geocode_timeout_s: float = Field(default=5.0, alias="GEOCODE_TIMEOUT_S")

    # Misc
    http_user_agent: str = Field(default="wastewins-sites/1.0", alias="HTTP_USER_AGENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


settings = Settings()
