from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List

import httpx

from wastewins.core.contracts import LatLon
from wastewins.core.errors import ProviderUnavailable

logger = logging.getLogger(__name__)


def _coords_path(a: LatLon, b: LatLon) -> str:
    # Both Mapbox and OSRM take lon,lat pairs separated by ';'
    return f"{a.lon},{a.lat};{b.lon},{b.lat}"


def _first_route_metres(provider: str, data: Any) -> float:
    if not isinstance(data, dict):
        raise ProviderUnavailable(provider, "unexpected payload")
    code = data.get("code")
    if code is not None and code != "Ok":
        raise ProviderUnavailable(provider, f"code={code}")
    routes = data.get("routes") or []
    if not routes or not isinstance(routes[0], dict):
        raise ProviderUnavailable(provider, "no route")
    dist = routes[0].get("distance")
    if not isinstance(dist, (int, float)) or isinstance(dist, bool) or dist < 0:
        raise ProviderUnavailable(provider, f"bad distance {dist!r}")
    return float(dist)


class RoutingProvider(ABC):
    """Point-to-point road distance. Raises ProviderUnavailable on any failure."""

    name: str = "routing"

    def __init__(self, *, client: httpx.AsyncClient, timeout_s: float = 2.5):
        self.client = client
        self.timeout_s = float(timeout_s)

    @abstractmethod
    def _url(self, origin: LatLon, dest: LatLon) -> str:
        ...

    def _params(self) -> Dict[str, str]:
        return {"overview": "false"}

    async def route_km(self, origin: LatLon, dest: LatLon) -> float:
        try:
            r = await self.client.get(self._url(origin, dest), params=self._params(), timeout=self.timeout_s)
            r.raise_for_status()
            data = r.json()
        except httpx.HTTPStatusError as e:
            raise ProviderUnavailable(self.name, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ProviderUnavailable(self.name, f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise ProviderUnavailable(self.name, "invalid JSON") from e
        return _first_route_metres(self.name, data) / 1000.0


class MapboxRouting(RoutingProvider):
    name = "mapbox"

    def __init__(self, *, token: str, directions_url: str, **kwargs: Any):
        super().__init__(**kwargs)
        self.token = token
        self.directions_url = directions_url.rstrip("/")

    def _url(self, origin: LatLon, dest: LatLon) -> str:
        return f"{self.directions_url}/{_coords_path(origin, dest)}"

    def _params(self) -> Dict[str, str]:
        return {"access_token": self.token, "overview": "false"}


class OsrmRouting(RoutingProvider):
    name = "osrm"

    def __init__(self, *, base_url: str, profile: str = "driving", **kwargs: Any):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")
        self.profile = profile

    def _url(self, origin: LatLon, dest: LatLon) -> str:
        return f"{self.base_url}/route/v1/{self.profile}/{_coords_path(origin, dest)}"


def build_providers(
    *,
    client: httpx.AsyncClient,
    mapbox_token: str = "",
    mapbox_directions_url: str = "",
    osrm_base_url: str = "",
    osrm_profile: str = "driving",
    timeout_s: float = 2.5,
) -> List[RoutingProvider]:
    """Configured providers in preference order. Empty means great-circle only."""
    out: List[RoutingProvider] = []
    if mapbox_token and mapbox_directions_url:
        out.append(MapboxRouting(
            client=client, token=mapbox_token, directions_url=mapbox_directions_url, timeout_s=timeout_s,
        ))
    if osrm_base_url:
        out.append(OsrmRouting(client=client, base_url=osrm_base_url, profile=osrm_profile, timeout_s=timeout_s))
    logger.info("routing_providers configured=%s", [p.name for p in out] or ["great_circle"])
    return out
