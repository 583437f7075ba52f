import httpx
import pytest

from conftest import StaticFetcher, make_site
from wastewins.api import sites as sites_api
from wastewins.core.contracts import GeocodeResult
from wastewins.core.errors import InvalidQuery, SourceUnavailable
from wastewins.main import create_app
from wastewins.services.aggregator import SourceAggregator
from wastewins.services.distance import DistanceEnricher
from wastewins.services.search import SiteSearch


class FakeGeocoder:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    async def geocode(self, address):
        if not address.strip():
            raise InvalidQuery("address is required")
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def app():
    app = create_app()
    search = SiteSearch(
        aggregator=SourceAggregator({
            "osm": StaticFetcher("osm", "community_map", [
                make_site("osm:node:1", 28.6200, 77.2100, name="Janpath Bins", capabilities={"plastic", "paper"}),
            ]),
            "curated": StaticFetcher("curated", "curated", hang=True),
        }),
        enricher=DistanceEnricher(),
        deadline_s=1.0,
        fetch_share=0.3,
    )
    app.dependency_overrides[sites_api.get_search_service] = lambda: search
    app.dependency_overrides[sites_api.get_distance_enricher] = lambda: DistanceEnricher()
    app.dependency_overrides[sites_api.get_geocoder] = lambda: FakeGeocoder()
    return app


@pytest.fixture
async def client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def test_health(client):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


async def test_search_returns_degraded_partial_result(client):
    r = await client.post("/sites/search", json={
        "origin": {"lat": 28.6139, "lon": 77.2090},
        "radius_meters": 5000,
    })
    assert r.status_code == 200
    body = r.json()
    assert body["result_count"] == 1
    assert body["degraded"] is True
    site = body["sites"][0]
    assert site["id"] == "osm:node:1"
    assert site["capabilities"] == ["paper", "plastic"]
    assert site["distance_method"] == "great_circle"
    assert {s["source"]: s["status"] for s in body["sources"]} == {"osm": "ok", "curated": "timeout"}


async def test_search_invalid_radius_is_400(client):
    r = await client.post("/sites/search", json={
        "origin": {"lat": 28.6139, "lon": 77.2090},
        "radius_meters": 0,
    })
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "invalid_query"


async def test_search_timeout_is_504(app, client):
    search = SiteSearch(
        aggregator=SourceAggregator({"osm": StaticFetcher("osm", "community_map", hang=True)}),
        enricher=DistanceEnricher(),
        deadline_s=0.2,
        fetch_share=0.5,
    )
    app.dependency_overrides[sites_api.get_search_service] = lambda: search
    r = await client.post("/sites/search", json={
        "origin": {"lat": 40.7128, "lon": -74.0060},
        "radius_meters": 5000,
    })
    assert r.status_code == 504
    assert r.json()["detail"]["code"] == "search_timeout"


async def test_distance_endpoint(client):
    r = await client.post("/sites/distance", json={
        "origin": {"lat": 28.6139, "lon": 77.2090},
        "destination": {"lat": 19.0760, "lon": 72.8777},
    })
    assert r.status_code == 200
    body = r.json()
    assert body["distance_method"] == "great_circle"
    assert 1150.0 <= body["distance_km"] <= 1165.0


async def test_distance_endpoint_rejects_bad_coordinates(client):
    r = await client.post("/sites/distance", json={
        "origin": {"lat": 128.0, "lon": 77.2090},
        "destination": {"lat": 19.0760, "lon": 72.8777},
    })
    assert r.status_code == 400


async def test_geocode_statuses(app, client):
    r = await client.post("/sites/geocode", json={"address": "   "})
    assert r.status_code == 400

    r = await client.post("/sites/geocode", json={"address": "Nowhere"})
    assert r.status_code == 404

    app.dependency_overrides[sites_api.get_geocoder] = lambda: FakeGeocoder(
        result=GeocodeResult(lat=19.076, lon=72.8777, display_name="Mumbai, Maharashtra, India"),
    )
    r = await client.post("/sites/geocode", json={"address": "Mumbai"})
    assert r.status_code == 200
    assert r.json()["display_name"].startswith("Mumbai")

    app.dependency_overrides[sites_api.get_geocoder] = lambda: FakeGeocoder(
        error=SourceUnavailable("nominatim", "HTTP 503"),
    )
    r = await client.post("/sites/geocode", json={"address": "Mumbai"})
    assert r.status_code == 503
