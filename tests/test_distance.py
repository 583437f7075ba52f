import asyncio

import httpx
import pytest

from conftest import make_site
from wastewins.core.contracts import LatLon
from wastewins.core.errors import ProviderUnavailable
from wastewins.core.geo import great_circle_km
from wastewins.services.distance import DistanceEnricher, resolve_distance
from wastewins.services.routing import MapboxRouting, OsrmRouting, RoutingProvider, build_providers

ORIGIN = LatLon(lat=28.6139, lon=77.2090)
DEST = LatLon(lat=28.5921, lon=77.0460)


class CountingGreatCircle:
    def __init__(self):
        self.calls = 0

    def __call__(self, a, b):
        self.calls += 1
        return great_circle_km(a, b)


class FakeProvider(RoutingProvider):
    name = "fake"

    def __init__(self, km=None, *, error=False, delay=0.0, timeout_s=1.0):
        self.client = None
        self.timeout_s = timeout_s
        self.km = km
        self.error = error
        self.delay = delay
        self.calls = 0

    def _url(self, origin, dest):
        return ""

    async def route_km(self, origin, dest):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise ProviderUnavailable(self.name, "boom")
        if self.km is None:
            return great_circle_km(origin, dest) * 1.3
        return self.km


# ──────────────────────────────────────────────────────────────
# Single pair
# ──────────────────────────────────────────────────────────────

async def test_routed_distance_is_used_when_available(cache):
    provider = FakeProvider()
    enricher = DistanceEnricher(cache=cache, providers=[provider])
    res = await enricher.resolve(ORIGIN, DEST)
    assert res.method == "routed"
    assert res.distance_km >= great_circle_km(ORIGIN, DEST)
    assert res.degraded is False


async def test_routed_below_great_circle_is_clamped(cache):
    enricher = DistanceEnricher(cache=cache, providers=[FakeProvider(km=0.5)])
    res = await enricher.resolve(ORIGIN, DEST)
    assert res.method == "routed"
    assert res.distance_km == pytest.approx(great_circle_km(ORIGIN, DEST))


async def test_cache_hit_avoids_recomputation(cache):
    gc = CountingGreatCircle()
    provider = FakeProvider()
    enricher = DistanceEnricher(cache=cache, providers=[provider], great_circle=gc)

    first = await enricher.resolve(ORIGIN, DEST)
    # Same pair after rounding to 3 decimals
    second = await enricher.resolve(LatLon(lat=28.61391, lon=77.20902), DEST)

    assert second.distance_km == first.distance_km
    assert provider.calls == 1
    assert gc.calls == 1


async def test_no_provider_falls_back_without_degrading(cache, clock):
    gc = CountingGreatCircle()
    enricher = DistanceEnricher(cache=cache, great_circle=gc, cache_ttl_s=3600)
    res = await enricher.resolve(ORIGIN, DEST)
    assert res.method == "great_circle"
    assert res.degraded is False

    clock.advance(3000)
    await enricher.resolve(ORIGIN, DEST)
    assert gc.calls == 1


async def test_provider_chain_falls_through_to_next(cache):
    broken = FakeProvider(error=True)
    working = FakeProvider(km=99.0)
    enricher = DistanceEnricher(cache=cache, providers=[broken, working])
    res = await enricher.resolve(ORIGIN, DEST)
    assert res.method == "routed"
    assert res.distance_km == 99.0
    assert broken.calls == 1 and working.calls == 1


async def test_provider_failure_degrades_and_is_cached_briefly(cache, clock):
    provider = FakeProvider(error=True)
    enricher = DistanceEnricher(cache=cache, providers=[provider], fallback_ttl_s=300, cache_ttl_s=3600)

    res = await enricher.resolve(ORIGIN, DEST)
    assert res.method == "great_circle"
    assert res.degraded is True

    clock.advance(200)
    cached = await enricher.resolve(ORIGIN, DEST)
    assert provider.calls == 1
    assert cached.method == "great_circle"
    assert cached.degraded is True

    clock.advance(200)
    await enricher.resolve(ORIGIN, DEST)
    assert provider.calls == 2


async def test_slow_provider_times_out_to_great_circle(cache):
    enricher = DistanceEnricher(cache=cache, providers=[FakeProvider(delay=1.0, timeout_s=0.05)])
    res = await enricher.resolve(ORIGIN, DEST)
    assert res.method == "great_circle"
    assert res.degraded is True


async def test_pair_beyond_radius_skips_routing_and_cache(cache):
    provider = FakeProvider()
    enricher = DistanceEnricher(cache=cache, providers=[provider])
    res = await enricher.resolve(ORIGIN, DEST, max_km=1.0)
    assert res.method == "great_circle"
    assert provider.calls == 0
    assert len(cache) == 0


async def test_resolve_distance_result(cache):
    enricher = DistanceEnricher(cache=cache)
    out = await resolve_distance(enricher, ORIGIN, DEST)
    assert out.origin == ORIGIN and out.destination == DEST
    assert out.distance_method == "great_circle"
    assert out.distance_km == round(great_circle_km(ORIGIN, DEST), 3)


# ──────────────────────────────────────────────────────────────
# Batch
# ──────────────────────────────────────────────────────────────

async def test_enrich_preserves_input_order(cache):
    sites = [
        make_site("far", 28.70, 77.30),
        make_site("near", 28.6140, 77.2091),
        make_site("mid", 28.65, 77.25),
    ]
    enricher = DistanceEnricher(cache=cache, providers=[FakeProvider()])
    enriched, degraded = await enricher.enrich(ORIGIN, sites, timeout_s=1.0)
    assert [s.id for s in enriched] == ["far", "near", "mid"]
    assert all(s.distance_method == "routed" for s in enriched)
    assert degraded is False


async def test_one_failing_site_does_not_abort_batch(cache):
    class PickyProvider(FakeProvider):
        async def route_km(self, origin, dest):
            if dest.lat > 28.69:
                raise ProviderUnavailable("picky", "no road")
            return await super().route_km(origin, dest)

    sites = [make_site("a", 28.70, 77.30), make_site("b", 28.62, 77.21)]
    enricher = DistanceEnricher(cache=cache, providers=[PickyProvider()])
    enriched, degraded = await enricher.enrich(ORIGIN, sites, timeout_s=1.0)

    assert [s.distance_method for s in enriched] == ["great_circle", "routed"]
    assert degraded is True


async def test_enrich_deadline_falls_back_for_pending_sites(cache):
    enricher = DistanceEnricher(cache=cache, providers=[FakeProvider(delay=5.0, timeout_s=10.0)])
    sites = [make_site("a", 28.62, 77.21), make_site("b", 28.63, 77.22)]
    enriched, degraded = await enricher.enrich(ORIGIN, sites, timeout_s=0.05)

    assert [s.id for s in enriched] == ["a", "b"]
    assert all(s.distance_method == "great_circle" for s in enriched)
    assert degraded is True


async def test_enrich_empty():
    enricher = DistanceEnricher()
    assert await enricher.enrich(ORIGIN, [], timeout_s=1.0) == ([], False)


# ──────────────────────────────────────────────────────────────
# HTTP providers
# ──────────────────────────────────────────────────────────────

async def test_osrm_request_and_parse():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"code": "Ok", "routes": [{"distance": 12345.0}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        osrm = OsrmRouting(client=client, base_url="https://osrm.test/", profile="driving")
        km = await osrm.route_km(ORIGIN, DEST)

    assert km == pytest.approx(12.345)
    assert seen[0].url.path == "/route/v1/driving/77.209,28.6139;77.046,28.5921"
    assert seen[0].url.params["overview"] == "false"


async def test_mapbox_sends_token():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"code": "Ok", "routes": [{"distance": 1000}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        mapbox = MapboxRouting(client=client, token="pk.test", directions_url="https://api.mapbox.test/directions/v5/mapbox/driving")
        km = await mapbox.route_km(ORIGIN, DEST)

    assert km == 1.0
    assert seen[0].url.params["access_token"] == "pk.test"


@pytest.mark.parametrize(
    "status, body",
    [
        (500, {}),
        (200, {"code": "NoRoute", "routes": []}),
        (200, {"code": "Ok", "routes": []}),
        (200, {"code": "Ok", "routes": [{"distance": -1}]}),
        (200, ["not", "a", "dict"]),
    ],
)
async def test_provider_failures_raise_provider_unavailable(status, body):
    def handler(request):
        return httpx.Response(status, json=body)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        osrm = OsrmRouting(client=client, base_url="https://osrm.test")
        with pytest.raises(ProviderUnavailable):
            await osrm.route_km(ORIGIN, DEST)


async def test_build_providers_order():
    async with httpx.AsyncClient() as client:
        assert build_providers(client=client) == []
        providers = build_providers(
            client=client,
            mapbox_token="pk.x",
            mapbox_directions_url="https://api.mapbox.test",
            osrm_base_url="https://osrm.test",
        )
    assert [p.name for p in providers] == ["mapbox", "osrm"]
