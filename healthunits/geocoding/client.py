"""
Address geocoding client (OpenStreetMap Nominatim-compatible /search endpoint).
Includes timeouts, retry with exponential backoff and a per-client TTL cache.
"""
import logging
import threading
import time
from typing import Any, NamedTuple

import httpx

logger = logging.getLogger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org"
GEOCODE_USER_AGENT = "HealthUnits-API/1.0"
GEOCODE_CACHE_TTL_SECONDS = 86400  # 24 hours
GEOCODE_CACHE_MAX = 1000
GEOCODE_REQUEST_TIMEOUT_SECONDS = 10.0
GEOCODE_RETRY_ATTEMPTS = 3
GEOCODE_RETRY_BASE_DELAY_SECONDS = 1.0
GEOCODE_RETRY_MAX_DELAY_SECONDS = 8.0
# Nominatim usage policy: at most one request per second
GEOCODE_MIN_INTERVAL_SECONDS = 1.0


class GeocodingError(RuntimeError):
    """Geocoding provider unreachable or returned an unusable payload."""


class AddressNotFound(LookupError):
    """Geocoding provider returned no match for the address."""


class GeocodeResult(NamedTuple):
    lat: float
    lng: float
    formatted_address: str


class _TTLCache:
    """In-memory TTL cache with a size cap. Safe to share between request threads."""

    def __init__(self, ttl_seconds: int = GEOCODE_CACHE_TTL_SECONDS, max_entries: int = GEOCODE_CACHE_MAX):
        self._ttl = ttl_seconds
        self._max = max_entries
        self._store: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if time.monotonic() >= expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            if key not in self._store and len(self._store) >= self._max:
                # Evict the entry closest to expiry
                oldest_key = min(self._store, key=lambda k: self._store[k][1])
                self._store.pop(oldest_key, None)
            self._store[key] = (value, time.monotonic() + self._ttl)


class _RequestThrottle:
    """Spaces outgoing requests at least min_interval_s apart across threads."""

    def __init__(self, min_interval_s: float = GEOCODE_MIN_INTERVAL_SECONDS):
        self._interval = min_interval_s
        self._last: float | None = None
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            now = time.monotonic()
            if self._last is not None:
                delay = self._last + self._interval - now
                if delay > 0:
                    time.sleep(delay)
                    now += delay
            self._last = now


def normalize_query(address: str) -> str:
    """Trim, collapse whitespace and lower-case an address for cache/store keys."""
    return " ".join((address or "").split()).lower()


def _parse_result(data: Any) -> GeocodeResult | None:
    """Return the first usable result from a Nominatim JSON list, or None if empty."""
    if not isinstance(data, list):
        raise ValueError("unexpected geocoder payload")
    if not data:
        return None
    first = data[0]
    if not isinstance(first, dict):
        raise ValueError("unexpected geocoder payload")
    return GeocodeResult(
        lat=float(first["lat"]),
        lng=float(first["lon"]),
        formatted_address=str(first.get("display_name") or ""),
    )


class GeocodingClient:
    """Resolves free-text addresses to coordinates, caching results per client instance."""

    def __init__(
        self,
        base_url: str = NOMINATIM_URL,
        user_agent: str = GEOCODE_USER_AGENT,
        timeout_s: float = GEOCODE_REQUEST_TIMEOUT_SECONDS,
        cache_ttl_seconds: int = GEOCODE_CACHE_TTL_SECONDS,
        min_interval_s: float = GEOCODE_MIN_INTERVAL_SECONDS,
    ):
        self._base = base_url.rstrip("/")
        self._user_agent = user_agent
        self._timeout = timeout_s
        self._cache = _TTLCache(ttl_seconds=cache_ttl_seconds)
        self._throttle = _RequestThrottle(min_interval_s)

    def geocode(self, address: str) -> GeocodeResult:
        """
        Resolve address to (lat, lng, formatted_address).
        Raises AddressNotFound when the provider has no match and GeocodingError
        when the provider fails after retries.
        """
        key = normalize_query(address)
        if not key:
            raise AddressNotFound("Empty address.")
        cached = self._cache.get(key)
        if cached is not None:
            logger.info("telemetry geocode_served cache_hit=true")
            return cached

        url = f"{self._base}/search"
        params = {"q": address.strip(), "format": "json", "limit": 1}
        headers = {"User-Agent": self._user_agent}
        last_error: Exception | None = None
        for attempt in range(GEOCODE_RETRY_ATTEMPTS):
            self._throttle.wait()
            try:
                with httpx.Client(timeout=self._timeout, headers=headers) as client:
                    resp = client.get(url, params=params)
                    resp.raise_for_status()
            except httpx.TimeoutException as e:
                last_error = e
                logger.warning("telemetry geocode_timeout attempt=%s", attempt + 1)
            except httpx.HTTPError as e:
                last_error = e
                logger.warning("telemetry geocode_api_error attempt=%s error=%s", attempt + 1, str(e))
            else:
                return self._handle_response(key, address, resp)
            if attempt < GEOCODE_RETRY_ATTEMPTS - 1:
                delay = min(
                    GEOCODE_RETRY_BASE_DELAY_SECONDS * (2**attempt),
                    GEOCODE_RETRY_MAX_DELAY_SECONDS,
                )
                time.sleep(delay)
        msg = "Geocoding service unavailable (timeout or error after retries)."
        if last_error:
            raise GeocodingError(msg) from last_error
        raise GeocodingError(msg)

    def _handle_response(self, key: str, address: str, resp: httpx.Response) -> GeocodeResult:
        # Payload errors are not retried
        try:
            result = _parse_result(resp.json())
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("telemetry geocode_bad_payload error=%s", str(e))
            raise GeocodingError("Geocoding service returned an unexpected response.") from e
        if result is None:
            raise AddressNotFound(f'No results for "{address[:80]}".')
        self._cache.set(key, result)
        logger.info("telemetry geocode_served cache_hit=false")
        return result
