"""
Nearby health unit search: coarse store query, exact Haversine filter, sort, page.
The store is injected as a callable so the pipeline stays free of I/O details.
"""
import logging
from typing import Callable

from healthunits.data.geo import GeoPoint, is_valid_point
from healthunits.data.units_repo import UnitRecord, round_degree
from healthunits.search.errors import InvalidSearchRequest
from healthunits.search.pagination import paginate, validate_paging
from healthunits.search.proximity import filter_by_proximity

logger = logging.getLogger(__name__)

FindCandidates = Callable[[int, int], list[UnitRecord]]


def validate_search(center: GeoPoint, radius_m: float, page: int | None, per_page: int | None) -> None:
    if not is_valid_point(center):
        raise InvalidSearchRequest("lat must be between -90 and 90 and lng between -180 and 180")
    if not radius_m >= 0:
        raise InvalidSearchRequest("radius_m must be a non-negative number")
    validate_paging(page, per_page)


def search_units(
    center: GeoPoint,
    radius_m: float,
    page: int | None = None,
    per_page: int | None = None,
    *,
    find_candidates: FindCandidates,
) -> list[UnitRecord] | None:
    """
    Return units within radius_m meters of center, nearest first, each carrying
    distance_m. With page/per_page, return only that page, or None when the
    page does not exist. Store errors propagate unchanged.
    """
    validate_search(center, radius_m, page, per_page)

    candidates = find_candidates(round_degree(center.lat), round_degree(center.lng))
    nearby = filter_by_proximity(candidates, center, radius_m)
    logger.info(
        "telemetry units_search candidates=%s within_radius=%s radius_m=%s",
        len(candidates),
        len(nearby),
        radius_m,
    )
    return paginate(nearby, page, per_page)
