"""
Saved searched locations: once an address has been geocoded it is stored, so
later searches for the same address skip the external geocoder.
"""
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import NamedTuple

from healthunits.geocoding.client import GeocodeResult, GeocodingClient, normalize_query
from healthunits.search.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class LocationRecord(NamedTuple):
    query: str
    formatted_address: str
    lat: float
    lng: float
    searched_at: str


def init_locations_db(db_path: str | Path) -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS locations (
                query TEXT PRIMARY KEY,
                formatted_address TEXT NOT NULL,
                lat REAL NOT NULL,
                lng REAL NOT NULL,
                searched_at TEXT NOT NULL
            )
            """
        )
        conn.commit()


def find_location(db_path: str | Path, query: str) -> LocationRecord | None:
    db_path = Path(db_path)
    key = normalize_query(query)
    if not db_path.exists() or not key:
        return None
    try:
        with sqlite3.connect(db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT query, formatted_address, lat, lng, searched_at FROM locations WHERE query = ?",
                (key,),
            ).fetchone()
    except sqlite3.Error as e:
        logger.warning("telemetry locations_store_error db=%s error=%s", db_path, str(e))
        raise StoreUnavailable(f"Locations query failed: {e}") from e
    if row is None:
        return None
    return LocationRecord(
        query=row["query"],
        formatted_address=row["formatted_address"],
        lat=row["lat"],
        lng=row["lng"],
        searched_at=row["searched_at"],
    )


def save_location(
    db_path: str | Path,
    query: str,
    formatted_address: str,
    lat: float,
    lng: float,
    searched_at: datetime | None = None,
) -> LocationRecord:
    """Insert or refresh a searched location. searched_at defaults to now (UTC)."""
    if searched_at is None:
        searched_at = datetime.now(timezone.utc)
    rec = LocationRecord(
        query=normalize_query(query),
        formatted_address=formatted_address,
        lat=lat,
        lng=lng,
        searched_at=searched_at.isoformat(),
    )
    init_locations_db(db_path)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO locations (query, formatted_address, lat, lng, searched_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            rec,
        )
        conn.commit()
    return rec


def resolve_address(db_path: str | Path, client: GeocodingClient, address: str) -> GeocodeResult:
    """
    Saved location first; otherwise geocode and remember the result.
    Raises StoreUnavailable when the saved locations cannot be read.
    """
    saved = find_location(db_path, address)
    if saved is not None:
        logger.info("telemetry location_served saved=true")
        return GeocodeResult(lat=saved.lat, lng=saved.lng, formatted_address=saved.formatted_address)
    result = client.geocode(address)
    try:
        save_location(db_path, address, result.formatted_address, result.lat, result.lng)
    except sqlite3.Error as e:
        logger.warning("telemetry location_save_error error=%s", str(e))
    return result
