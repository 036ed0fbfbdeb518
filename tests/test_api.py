from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from pickup_engine.main import create_app
from pickup_engine.models.domain import PickupRecord
from pickup_engine.persistence import PickupStore
from pickup_engine.services.index import LocationIndex
from pickup_engine.services.resolver import PickupResolver

MARRIOTT = PickupRecord(location_name="Brisbane Marriott Hotel", address="1 Howard St")
STAR = PickupRecord(location_name="The Star Casino", address="1 Casino Dr, Broadbeach")


@pytest.fixture
def fetcher(make_fetcher):
    return make_fetcher({"PH1FEA": [MARRIOTT], "GC1": [STAR]}, failures={"DOWN"})


@pytest.fixture
def api_client(tmp_path: Path, clock, fetcher):
    def factory() -> PickupResolver:
        store = PickupStore(tmp_path / "pickups", clock=clock, retry_delay=0.0)
        store.save("INDEXED", [MARRIOTT])
        index = LocationIndex(store, clock=clock)
        return PickupResolver(store, index, fetcher, live_fetch_enabled=True)

    app = create_app(resolver_factory=factory)
    with TestClient(app) as client:
        yield client


def test_health_reports_index_state(api_client: TestClient) -> None:
    response = api_client.get("/api/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["index_built"] is True
    assert body["indexed_products"] == 1
    assert body["live_fetch_enabled"] is True


def test_filter_endpoint_fetches_and_keeps_payload(api_client: TestClient, fetcher) -> None:
    response = api_client.post(
        "/api/pickups/filter",
        json={
            "products": [
                {"productCode": "PH1FEA", "name": "Brisbane city highlights", "advertisedPrice": 99},
                {"productCode": "GC1", "name": "Theme park transfer"},
                {"productCode": "INDEXED", "name": "Hotel shuttle"},
            ],
            "region": "Brisbane",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert [item["productCode"] for item in body["products"]] == ["PH1FEA", "INDEXED"]
    assert body["products"][0]["advertisedPrice"] == 99
    assert body["stats"]["index_resolved"] == 1
    assert body["stats"]["live_fetch_resolved"] == 2
    assert body["stats"]["accuracy"] == "high"
    assert body["stats"]["data_source"] == "upstream_api"
    assert sorted(fetcher.calls) == ["GC1", "PH1FEA"]


def test_filter_all_returns_every_product(api_client: TestClient, fetcher) -> None:
    response = api_client.post(
        "/api/pickups/filter",
        json={"products": [{"productCode": "A"}, {"productCode": "B"}], "region": "all"},
    )

    assert response.status_code == 200
    assert [item["productCode"] for item in response.json()["products"]] == ["A", "B"]
    assert fetcher.calls == []


def test_filter_returns_products_exactly_as_sent(api_client: TestClient) -> None:
    products = [
        {"productCode": "A", "description": None, "advertisedPrice": None, "tags": []},
        {"productCode": "B", "name": "Hotel shuttle", "locationAddress": {"city": "Brisbane", "postCode": None}},
    ]

    response = api_client.post("/api/pickups/filter", json={"products": products, "region": "all"})

    assert response.status_code == 200
    assert response.json()["products"] == products


def test_filter_rejects_products_without_code(api_client: TestClient) -> None:
    response = api_client.post("/api/pickups/filter", json={"products": [{"name": "No code"}], "region": "Brisbane"})

    assert response.status_code == 422


def test_check_endpoint(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/pickups/check",
        json={"product": {"productCode": "INDEXED"}, "location": "brisbane city"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "product_code": "INDEXED",
        "location": "brisbane city",
        "has_pickup": True,
        "method": "index",
        "confidence": "high",
    }


def test_preload_endpoint(api_client: TestClient) -> None:
    response = api_client.post("/api/pickups/preload", json={"product_codes": ["INDEXED", "GC1", "DOWN"]})

    assert response.status_code == 200
    assert response.json() == {"successful": ["GC1"], "failed": ["DOWN"], "skipped": ["INDEXED"]}


def test_product_pickups_endpoint(api_client: TestClient, fetcher) -> None:
    response = api_client.get("/api/pickups/INDEXED")

    assert response.status_code == 200
    body = response.json()
    assert body["pickup_count"] == 1
    assert body["pickups"][0]["locationName"] == "Brisbane Marriott Hotel"
    assert fetcher.calls == []

    assert api_client.get("/api/pickups/DOWN").status_code == 502


def test_stats_endpoints(api_client: TestClient) -> None:
    store_stats = api_client.get("/api/pickups/stats/store").json()
    index_stats = api_client.get("/api/pickups/stats/index").json()
    cache_stats = api_client.get("/api/pickups/stats/cache").json()

    assert store_stats["total_files"] == 1
    assert store_stats["files"][0]["product_code"] == "INDEXED"
    assert store_stats["files"][0]["freshness"] == "fresh"
    assert index_stats["is_built"] is True
    assert index_stats["location_counts"]["Brisbane"] == 1
    assert cache_stats["fresh"] == 1
    assert cache_stats["pending_refreshes"] == 0


def test_rebuild_index_endpoint(api_client: TestClient) -> None:
    response = api_client.post("/api/pickups/index/rebuild")

    assert response.status_code == 200
    assert response.json()["total_products"] == 1
    assert response.json()["regions_present"] == ["Brisbane"]
