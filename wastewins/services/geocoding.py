"""
Nominatim forward geocoding: free-text address → one coordinate.

Docs: https://nominatim.org/release-docs/latest/api/Search/

Used by clients that let the user type a place instead of sharing their
location. Nominatim's usage policy requires an identifying User-Agent.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from wastewins.core.cache import TTLCache
from wastewins.core.contracts import GeocodeResult
from wastewins.core.errors import InvalidQuery, SourceUnavailable
from wastewins.core.geo import is_valid_coord
from wastewins.core.keying import geocode_key

logger = logging.getLogger(__name__)


def _hit_to_result(hit: Dict[str, Any]) -> Optional[GeocodeResult]:
    # Nominatim returns coordinates as strings
    try:
        lat = float(hit.get("lat"))
        lon = float(hit.get("lon"))
    except (TypeError, ValueError):
        return None
    if not is_valid_coord(lat, lon):
        return None
    return GeocodeResult(lat=lat, lon=lon, display_name=str(hit.get("display_name") or ""))


class NominatimGeocoding:
    """Thin wrapper around Nominatim /search with a read-through cache."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        url: str,
        user_agent: str,
        timeout_s: float = 5.0,
        cache: Optional[TTLCache] = None,
        cache_ttl_s: float = 3600,
    ):
        self.client = client
        self.url = url
        self.user_agent = user_agent
        self.timeout_s = float(timeout_s)
        self.cache = cache
        self.cache_ttl_s = float(cache_ttl_s)

    async def geocode(self, address: str) -> Optional[GeocodeResult]:
        query = (address or "").strip()
        if not query:
            raise InvalidQuery("address is required")

        key = geocode_key(query)
        if self.cache is not None:
            value, found = await self.cache.get(key)
            if found:
                return GeocodeResult.model_validate(value) if value else None

        logger.info("nominatim_geocode query=%r", query)
        try:
            resp = await self.client.get(
                self.url,
                params={"q": query, "format": "json", "limit": "1"},
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout_s,
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.error("nominatim_http_error status=%d", exc.response.status_code)
            raise SourceUnavailable("nominatim", f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("nominatim_failed err=%r", exc)
            raise SourceUnavailable("nominatim", type(exc).__name__) from exc
        except ValueError as exc:
            raise SourceUnavailable("nominatim", "invalid JSON") from exc

        result = None
        if isinstance(data, list) and data and isinstance(data[0], dict):
            result = _hit_to_result(data[0])

        if self.cache is not None:
            # Misses are cached too, as an empty value
            await self.cache.set(key, result.model_dump() if result else None, self.cache_ttl_s)
        return result
