"""HTTP tests for the units search API."""
import logging

import pytest
from fastapi.testclient import TestClient

import main
from healthunits.geocoding.client import AddressNotFound, GeocodeResult, GeocodingError

SE = {"lat": -23.5505, "lng": -46.6333}


class _FakeGeocoder:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    def geocode(self, address):
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def client(units_db, tmp_path):
    """TestClient with the units/locations DBs pointed at temp files."""
    main.UNITS_DB = units_db
    main.LOCATIONS_DB = tmp_path / "locations.db"
    main.app.state.geocoding_client = _FakeGeocoder(
        GeocodeResult(lat=SE["lat"], lng=SE["lng"], formatted_address="Praca da Se, Sao Paulo")
    )
    return TestClient(main.app)


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_nearby_sorted_with_distances(client):
    r = client.get("/units/nearby", params={**SE, "radius_m": 5000})
    assert r.status_code == 200
    data = r.json()
    assert data["center"] == SE
    assert data["radius_m"] == 5000
    assert data["count"] == 3
    assert [u["unit_id"] for u in data["units"]] == ["SE", "PA", "VM"]
    distances = [u["distance_m"] for u in data["units"]]
    assert distances == sorted(distances)
    assert all(d <= 5000 for d in distances)
    assert data["units"][0]["name"] == "UBS Se"


def test_nearby_default_radius(client):
    r = client.get("/units/nearby", params=SE)
    assert r.status_code == 200
    assert [u["unit_id"] for u in r.json()["units"]] == ["SE"]


def test_nearby_page(client):
    r = client.get("/units/nearby", params={**SE, "radius_m": 5000, "page": 2, "per_page": 2})
    assert r.status_code == 200
    data = r.json()
    assert data["page"] == 2
    assert data["per_page"] == 2
    assert [u["unit_id"] for u in data["units"]] == ["VM"]


def test_nearby_page_past_end_is_404(client):
    r = client.get("/units/nearby", params={**SE, "radius_m": 5000, "page": 3, "per_page": 2})
    assert r.status_code == 404
    assert "does not exist" in r.json()["detail"]


def test_nearby_no_matches_is_empty_list(client):
    r = client.get("/units/nearby", params={"lat": 10.0, "lng": 10.0, "radius_m": 1000})
    assert r.status_code == 200
    assert r.json()["units"] == []
    assert r.json()["count"] == 0


@pytest.mark.parametrize(
    "extra",
    [
        {"page": 1, "per_page": 0},
        {"page": 0, "per_page": 2},
        {"page": 2},
        {"per_page": 1000},
        {"radius_m": -5},
        {"radius_m": 10_000_000},
    ],
)
def test_nearby_invalid_params_400(client, extra):
    r = client.get("/units/nearby", params={**SE, **extra})
    assert r.status_code == 400


def test_nearby_lat_out_of_range_400(client):
    r = client.get("/units/nearby", params={"lat": 95.0, "lng": 0.0})
    assert r.status_code == 400
    assert "lat" in r.json()["detail"]


def test_nearby_missing_coordinates_422(client):
    r = client.get("/units/nearby")
    assert r.status_code == 422


def test_nearby_store_unavailable_503(client, tmp_path):
    main.UNITS_DB = tmp_path / "missing" / "units.db"
    r = client.get("/units/nearby", params=SE)
    assert r.status_code == 503


def test_unit_detail(client):
    r = client.get("/units/PA")
    assert r.status_code == 200
    data = r.json()
    assert data["name"] == "UBS Paraiso"
    assert data["distance_m"] is None
    assert client.get("/units/nope").status_code == 404


def test_search_by_address(client):
    r = client.get("/units/search", params={"address": "Praca da Se", "radius_m": 5000, "per_page": 2})
    assert r.status_code == 200
    data = r.json()
    assert data["formatted_address"] == "Praca da Se, Sao Paulo"
    assert data["center"] == SE
    assert [u["unit_id"] for u in data["units"]] == ["SE", "PA"]


def test_search_by_address_not_found_404(client):
    main.app.state.geocoding_client = _FakeGeocoder(error=AddressNotFound("No results."))
    r = client.get("/units/search", params={"address": "Lugar nenhum"})
    assert r.status_code == 404


def test_search_by_address_geocoder_down_502(client):
    main.app.state.geocoding_client = _FakeGeocoder(error=GeocodingError("down"))
    r = client.get("/units/search", params={"address": "Avenida Paulista"})
    assert r.status_code == 502


def test_search_by_address_too_short_400(client):
    r = client.get("/units/search", params={"address": "a"})
    assert r.status_code == 400


def test_geocode(client):
    r = client.get("/geocode", params={"q": "Praca da Se"})
    assert r.status_code == 200
    assert r.json() == {**SE, "formatted_address": "Praca da Se, Sao Paulo"}


def test_metrics_count_searches(client):
    before = client.get("/metrics").json()
    client.get("/units/nearby", params={**SE, "radius_m": 5000, "page": 9, "per_page": 2})
    after = client.get("/metrics").json()
    assert after["searches_total"] == before["searches_total"] + 1
    assert after["searches_no_such_page"] == before["searches_no_such_page"] + 1


def _request_log_lines(caplog):
    return [r.getMessage() for r in caplog.records if r.name == "healthunits.middleware.request_logging"]


def test_request_log_marks_missing_page(client, caplog):
    caplog.set_level(logging.INFO, logger="healthunits.middleware.request_logging")
    client.get("/units/nearby", params={**SE, "radius_m": 5000, "page": 5, "per_page": 2})
    client.get("/units/nearby", params={"lat": 10.0, "lng": 10.0, "radius_m": 1000, "page": 1, "per_page": 2})
    lines = _request_log_lines(caplog)
    assert any("status=404" in m and "search_outcome=no_such_page" in m for m in lines)
    # An empty page is a 200 with its own outcome
    assert any("status=200" in m and "search_outcome=empty" in m and "results=0" in m for m in lines)


def test_request_log_carries_result_count(client, caplog):
    caplog.set_level(logging.INFO, logger="healthunits.middleware.request_logging")
    client.get("/units/nearby", params={**SE, "radius_m": 5000})
    client.get("/health")
    lines = _request_log_lines(caplog)
    assert any("path=/units/nearby" in m and "search_outcome=ok" in m and "results=3" in m for m in lines)
    health_lines = [m for m in lines if "path=/health" in m]
    assert health_lines and all("search_outcome" not in m for m in health_lines)


def test_metrics_count_store_unavailable(client, tmp_path):
    main.UNITS_DB = tmp_path / "missing" / "units.db"
    before = client.get("/metrics").json()
    client.get("/units/nearby", params=SE)
    after = client.get("/metrics").json()
    assert after["searches_store_unavailable"] == before["searches_store_unavailable"] + 1


def test_geocode_locations_store_corrupt_503(client, tmp_path):
    corrupt = tmp_path / "corrupt.db"
    corrupt.write_bytes(b"this is not a sqlite database file" * 10)
    main.LOCATIONS_DB = corrupt
    r = client.get("/geocode", params={"q": "Praca da Se"})
    assert r.status_code == 503


def test_favicon_not_served(client):
    assert client.get("/favicon.ico").status_code == 404
