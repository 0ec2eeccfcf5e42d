"""Tests for search_units: the full filter-sort-page pipeline with injected stores."""
import math
from functools import partial

import pytest

from healthunits.data.geo import EARTH_RADIUS_KM, GeoPoint
from healthunits.data.units_repo import UnitRecord, find_candidates_near
from healthunits.search.errors import InvalidPagingParameter, InvalidSearchRequest, StoreUnavailable
from healthunits.search.service import search_units

CENTER = GeoPoint(0.0, 0.0)


def _units_at(distances):
    return [
        UnitRecord(
            unit_id=f"u{d}",
            name=f"UBS {d}",
            lat=math.degrees(d / (EARTH_RADIUS_KM * 1000.0)),
            lng=0.0,
        )
        for d in distances
    ]


class _FakeStore:
    def __init__(self, units):
        self.units = units
        self.calls = []

    def __call__(self, rounded_lat, rounded_lng):
        self.calls.append((rounded_lat, rounded_lng))
        return list(self.units)


def _store_must_not_be_called(rounded_lat, rounded_lng):
    raise AssertionError("store queried for an invalid request")


def test_seven_unit_example():
    store = _FakeStore(_units_at([70, 10, 60, 20, 50, 30, 40]))

    full = search_units(CENTER, 65, find_candidates=store)
    assert [u.unit_id for u in full] == ["u10", "u20", "u30", "u40", "u50", "u60"]

    page2 = search_units(CENTER, 65, page=2, per_page=2, find_candidates=store)
    assert [u.unit_id for u in page2] == ["u30", "u40"]
    assert [u.distance_m for u in page2] == [pytest.approx(30, abs=1e-6), pytest.approx(40, abs=1e-6)]

    assert search_units(CENTER, 65, page=4, per_page=2, find_candidates=store) is None


def test_store_queried_with_rounded_center():
    store = _FakeStore([])
    search_units(GeoPoint(-23.5505, -46.6333), 1000, find_candidates=store)
    assert store.calls == [(-24, -47)]


def test_empty_result_is_empty_list():
    store = _FakeStore(_units_at([5000]))
    assert search_units(CENTER, 100, find_candidates=store) == []


def test_idempotent():
    store = _FakeStore(_units_at([30, 10, 10, 20]))
    first = search_units(CENTER, 100, page=1, per_page=3, find_candidates=store)
    second = search_units(CENTER, 100, page=1, per_page=3, find_candidates=store)
    assert first == second


def test_per_page_zero_rejected_before_store_access():
    with pytest.raises(InvalidPagingParameter):
        search_units(CENTER, 100, page=1, per_page=0, find_candidates=_store_must_not_be_called)


def test_non_positive_page_rejected_before_store_access():
    with pytest.raises(InvalidPagingParameter):
        search_units(CENTER, 100, page=0, per_page=5, find_candidates=_store_must_not_be_called)


@pytest.mark.parametrize(
    "center,radius",
    [(GeoPoint(91.0, 0.0), 10), (GeoPoint(0.0, 181.0), 10), (GeoPoint(0.0, 0.0), -1)],
)
def test_invalid_center_or_radius_rejected(center, radius):
    with pytest.raises(InvalidSearchRequest):
        search_units(center, radius, find_candidates=_store_must_not_be_called)


def test_store_errors_propagate():
    def broken_store(rounded_lat, rounded_lng):
        raise StoreUnavailable("down")

    with pytest.raises(StoreUnavailable):
        search_units(CENTER, 100, find_candidates=broken_store)


def test_against_sqlite_store(units_db):
    # Praca da Se
    center = GeoPoint(-23.5505, -46.6333)
    results = search_units(center, 5000, find_candidates=partial(find_candidates_near, units_db))
    assert [u.unit_id for u in results] == ["SE", "PA", "VM"]
    assert all(u.distance_m <= 5000 for u in results)


def test_sqlite_store_misses_neighbouring_cell_without_widening(units_db):
    # Itaquera lies in the next longitude cell; only a widened query finds it
    center = GeoPoint(-23.5400, -46.5100)
    narrow = search_units(center, 10_000, find_candidates=partial(find_candidates_near, units_db))
    assert "EAST" not in [u.unit_id for u in narrow]
    wide = search_units(center, 10_000, find_candidates=partial(find_candidates_near, units_db, cell_span=1))
    assert "EAST" in [u.unit_id for u in wide]


def test_nan_radius_rejected():
    with pytest.raises(InvalidSearchRequest):
        search_units(CENTER, float("nan"), find_candidates=_store_must_not_be_called)


def test_unit_at_cell_edge_found_from_its_own_location(tmp_path):
    from healthunits.data.units_repo import init_db, upsert_units

    db = tmp_path / "units.db"
    init_db(db)
    x = 0.49999999999999994
    upsert_units(db, [UnitRecord(unit_id="A", name="Edge", lat=x, lng=10.0)])
    results = search_units(GeoPoint(x, 10.0), 0, find_candidates=partial(find_candidates_near, db))
    assert [u.unit_id for u in results] == ["A"]
