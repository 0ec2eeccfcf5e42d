import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from settings import get_settings
from healthunits.data.geo import LAT_MAX, LAT_MIN, LNG_MAX, LNG_MIN, GeoPoint
from healthunits.data.locations_repo import init_locations_db, resolve_address
from healthunits.data.units_repo import UnitRecord, cell_span_for_radius, find_candidates_near, get_unit
from healthunits.geocoding.client import AddressNotFound, GeocodingClient, GeocodingError
from healthunits.middleware import (
    SEARCH_OUTCOME_EMPTY,
    SEARCH_OUTCOME_INVALID,
    SEARCH_OUTCOME_NO_SUCH_PAGE,
    SEARCH_OUTCOME_OK,
    SEARCH_OUTCOME_STORE_UNAVAILABLE,
    RequestLoggingMiddleware,
    set_search_outcome,
)
from healthunits.monitoring import get_metrics
from healthunits.search.errors import InvalidSearchRequest, StoreUnavailable
from healthunits.search.models import Center, GeocodeResponse, NearbyUnitsResponse, UnitInfo
from healthunits.search.service import search_units

settings = get_settings()
PROJECT_ROOT = Path(__file__).resolve().parent
UNITS_DB = PROJECT_ROOT / settings.units_db_path
LOCATIONS_DB = PROJECT_ROOT / settings.locations_db_path

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])

ADDRESS_MIN_LEN, ADDRESS_MAX_LEN = 3, 200


def _new_geocoding_client() -> GeocodingClient:
    return GeocodingClient(
        base_url=settings.geocoding_base_url,
        user_agent=settings.geocoding_user_agent,
        timeout_s=settings.geocoding_timeout_seconds,
        cache_ttl_seconds=settings.geocoding_cache_ttl_seconds,
        min_interval_s=settings.geocoding_min_interval_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_locations_db(LOCATIONS_DB)
    app.state.geocoding_client = _new_geocoding_client()
    yield
    app.state.geocoding_client = None


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception):
    """Return consistent JSON error for unhandled exceptions (500). Skip validation/HTTP errors."""
    from fastapi.exceptions import RequestValidationError
    if isinstance(exc, (HTTPException, RequestValidationError)):
        raise exc
    logger.exception("telemetry unhandled_exception path=%s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again later."},
    )


app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)


def _geocoding_client() -> GeocodingClient:
    client: GeocodingClient | None = getattr(app.state, "geocoding_client", None)
    if client is None:
        client = _new_geocoding_client()
        app.state.geocoding_client = client
    return client


def _validate_lat_lng(lat: float, lng: float) -> None:
    if not (LAT_MIN <= lat <= LAT_MAX):
        raise HTTPException(status_code=400, detail=f"lat must be between {LAT_MIN} and {LAT_MAX}")
    if not (LNG_MIN <= lng <= LNG_MAX):
        raise HTTPException(status_code=400, detail=f"lng must be between {LNG_MIN} and {LNG_MAX}")


def _resolve_radius(radius_m: float | None) -> float:
    if radius_m is None:
        return settings.default_radius_m
    if not (0 <= radius_m <= settings.max_radius_m):
        raise HTTPException(
            status_code=400,
            detail=f"radius_m must be between 0 and {settings.max_radius_m:g}",
        )
    return radius_m


def _validate_per_page(per_page: int | None) -> None:
    if per_page is not None and per_page > settings.max_per_page:
        raise HTTPException(status_code=400, detail=f"per_page must be at most {settings.max_per_page}")


def _unit_info(u: UnitRecord) -> UnitInfo:
    return UnitInfo(
        unit_id=u.unit_id,
        name=u.name,
        address=u.address,
        city=u.city,
        phone=u.phone,
        lat=u.lat,
        lng=u.lng,
        distance_m=round(u.distance_m, 1) if u.distance_m is not None else None,
    )


def _run_search(
    request: Request,
    center: GeoPoint,
    radius_m: float,
    page: int | None,
    per_page: int | None,
) -> list[UnitRecord]:
    """
    Run the unit search and translate its errors to HTTP status codes.
    The outcome is left on request.state for the request log line.
    """
    cell_span = cell_span_for_radius(radius_m) if settings.widen_cells_for_radius else 0

    def find_candidates(rounded_lat: int, rounded_lng: int) -> list[UnitRecord]:
        return find_candidates_near(
            UNITS_DB,
            rounded_lat,
            rounded_lng,
            cell_span=cell_span,
            timeout_s=settings.store_timeout_seconds,
        )

    try:
        units = search_units(center, radius_m, page, per_page, find_candidates=find_candidates)
    except InvalidSearchRequest as e:
        set_search_outcome(request, SEARCH_OUTCOME_INVALID)
        raise HTTPException(status_code=400, detail=str(e)) from e
    except StoreUnavailable as e:
        set_search_outcome(request, SEARCH_OUTCOME_STORE_UNAVAILABLE)
        logger.warning("telemetry units_store_unavailable error=%s", str(e))
        raise HTTPException(status_code=503, detail="Health units store unavailable. Try again.") from e

    if units is None:
        set_search_outcome(request, SEARCH_OUTCOME_NO_SUCH_PAGE)
        raise HTTPException(status_code=404, detail=f"Page {page} does not exist.")
    set_search_outcome(request, SEARCH_OUTCOME_OK if units else SEARCH_OUTCOME_EMPTY, len(units))
    return units


@app.get("/health")
@limiter.exempt
def health(request: Request):
    logger.info("telemetry route=health")
    return {"status": "ok"}


@app.get("/metrics")
@limiter.exempt
def metrics(request: Request):
    return get_metrics()


@app.get("/units/nearby", response_model=NearbyUnitsResponse)
def units_nearby(
    request: Request,
    lat: float,
    lng: float,
    radius_m: float | None = None,
    page: int | None = None,
    per_page: int | None = None,
):
    """
    Health units within radius_m meters of (lat, lng), nearest first.
    With page/per_page returns a single page; 404 when the page does not exist.
    """
    _validate_lat_lng(lat, lng)
    radius = _resolve_radius(radius_m)
    _validate_per_page(per_page)
    logger.info("telemetry route=units_nearby radius_m=%s page=%s per_page=%s", radius, page, per_page)
    units = _run_search(request, GeoPoint(lat, lng), radius, page, per_page)
    return NearbyUnitsResponse(
        center=Center(lat=lat, lng=lng),
        radius_m=radius,
        page=page,
        per_page=per_page,
        count=len(units),
        units=[_unit_info(u) for u in units],
    )


@app.get("/units/search", response_model=NearbyUnitsResponse)
def units_search(
    request: Request,
    address: str = "",
    radius_m: float | None = None,
    page: int | None = None,
    per_page: int | None = None,
):
    """
    Resolve a free-text address to coordinates (saved locations first, then the
    geocoder) and return health units near it. The resolved center is part of
    the response.
    """
    query = (address or "").strip()
    if not (ADDRESS_MIN_LEN <= len(query) <= ADDRESS_MAX_LEN):
        raise HTTPException(
            status_code=400,
            detail=f"address must be between {ADDRESS_MIN_LEN} and {ADDRESS_MAX_LEN} characters",
        )
    radius = _resolve_radius(radius_m)
    _validate_per_page(per_page)
    logger.info("telemetry route=units_search radius_m=%s page=%s per_page=%s", radius, page, per_page)
    location = _geocode_or_http_error(query)
    units = _run_search(request, GeoPoint(location.lat, location.lng), radius, page, per_page)
    return NearbyUnitsResponse(
        center=Center(lat=location.lat, lng=location.lng),
        radius_m=radius,
        page=page,
        per_page=per_page,
        count=len(units),
        units=[_unit_info(u) for u in units],
        formatted_address=location.formatted_address,
    )


@app.get("/units/{unit_id}", response_model=UnitInfo)
def unit_detail(request: Request, unit_id: str):
    try:
        unit = get_unit(UNITS_DB, unit_id, timeout_s=settings.store_timeout_seconds)
    except StoreUnavailable as e:
        logger.warning("telemetry units_store_unavailable error=%s", str(e))
        raise HTTPException(status_code=503, detail="Health units store unavailable. Try again.") from e
    if unit is None:
        raise HTTPException(status_code=404, detail="Health unit not found.")
    return _unit_info(unit)


def _geocode_or_http_error(query: str):
    try:
        return resolve_address(LOCATIONS_DB, _geocoding_client(), query)
    except AddressNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except GeocodingError as e:
        logger.warning("telemetry geocode_error q=%s error=%s", query[:50], str(e))
        raise HTTPException(status_code=502, detail="Geocoding service unavailable. Try again.") from e
    except StoreUnavailable as e:
        logger.warning("telemetry locations_store_unavailable error=%s", str(e))
        raise HTTPException(status_code=503, detail="Saved locations store unavailable. Try again.") from e


@app.get("/geocode", response_model=GeocodeResponse)
def geocode(request: Request, q: str = ""):
    """Resolve an address to { lat, lng, formatted_address } or 404 if none."""
    query = (q or "").strip()
    if not (ADDRESS_MIN_LEN <= len(query) <= ADDRESS_MAX_LEN):
        raise HTTPException(
            status_code=400,
            detail=f"q must be between {ADDRESS_MIN_LEN} and {ADDRESS_MAX_LEN} characters",
        )
    result = _geocode_or_http_error(query)
    return GeocodeResponse(lat=result.lat, lng=result.lng, formatted_address=result.formatted_address)
