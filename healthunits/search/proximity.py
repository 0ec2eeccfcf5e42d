"""
Exact proximity filter over coarse candidates.

Distances come from data.geo.distance_m for both the radius test and the sort
key, so a unit that passes the filter always sorts by the same number.
"""
from typing import Iterable

from healthunits.data.geo import GeoPoint, distance_m
from healthunits.data.units_repo import UnitRecord


def unit_distance_m(unit: UnitRecord, center: GeoPoint) -> float:
    return distance_m(center, GeoPoint(unit.lat, unit.lng))


def is_within(unit: UnitRecord, center: GeoPoint, radius_m: float) -> bool:
    return unit_distance_m(unit, center) <= radius_m


def filter_by_proximity(
    candidates: Iterable[UnitRecord],
    center: GeoPoint,
    radius_m: float,
) -> list[UnitRecord]:
    """
    Return copies of the candidates within radius_m of center, annotated with
    distance_m and sorted nearest first. Equal distances keep candidate order.
    """
    with_dist: list[UnitRecord] = []
    for unit in candidates:
        d = unit_distance_m(unit, center)
        if d <= radius_m:
            with_dist.append(unit._replace(distance_m=d))
    # list.sort is stable
    with_dist.sort(key=lambda u: u.distance_m)
    return with_dist
