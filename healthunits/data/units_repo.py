"""
Health units repository: SQLite-backed coarse candidate selection.

Candidates are units whose coordinates round (half-up) to the same integer
degree as the search center. One degree of latitude is roughly 112 km, so the
cell is a cheap superset for neighborhood-scale searches; exact distance
filtering happens afterwards in memory.
"""
import logging
import math
import sqlite3
from pathlib import Path
from typing import Iterable, NamedTuple

from healthunits.data.geo import KM_PER_DEGREE
from healthunits.search.errors import StoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_STORE_TIMEOUT_SECONDS = 5.0

_UNIT_COLUMNS = "unit_id, name, address, city, phone, lat, lng"


class UnitRecord(NamedTuple):
    unit_id: str
    name: str
    lat: float
    lng: float
    address: str = ""
    city: str = ""
    phone: str = ""
    # Set only on the copies returned by the proximity filter
    distance_m: float | None = None


def round_degree(value: float) -> int:
    """Round a coordinate half-up to the nearest integer degree.

    value - floor(value) is exact, so the result agrees with the
    r - 0.5 <= value < r + 0.5 range used by find_candidates_near.
    """
    f = math.floor(value)
    return f + 1 if value - f >= 0.5 else f


def cell_span_for_radius(radius_m: float) -> int:
    """Number of extra degree cells needed in each direction to cover radius_m."""
    if radius_m <= 0:
        return 0
    return int(math.ceil(radius_m / (KM_PER_DEGREE * 1000.0)))


def _row_to_unit(r: sqlite3.Row) -> UnitRecord:
    return UnitRecord(
        unit_id=r["unit_id"],
        name=r["name"],
        lat=r["lat"],
        lng=r["lng"],
        address=r["address"] or "",
        city=r["city"] or "",
        phone=r["phone"] or "",
    )


def _connect(db_path: Path, timeout_s: float) -> sqlite3.Connection:
    if not db_path.exists():
        raise StoreUnavailable(f"Units database not found: {db_path}")
    try:
        conn = sqlite3.connect(db_path, timeout=timeout_s)
    except sqlite3.Error as e:
        raise StoreUnavailable(f"Could not open units database: {e}") from e
    conn.row_factory = sqlite3.Row
    return conn


def find_candidates_near(
    db_path: str | Path,
    rounded_lat: int,
    rounded_lng: int,
    *,
    cell_span: int = 0,
    timeout_s: float = DEFAULT_STORE_TIMEOUT_SECONDS,
) -> list[UnitRecord]:
    """
    Return units whose half-up rounded (lat, lng) fall within cell_span cells of
    (rounded_lat, rounded_lng). cell_span=0 means the same 1x1 degree cell.

    round_degree(x) == r  <=>  r - 0.5 <= x < r + 0.5, so the cell test is a
    half-open range on the indexed columns.
    """
    db_path = Path(db_path)
    lat_lo, lat_hi = rounded_lat - cell_span - 0.5, rounded_lat + cell_span + 0.5
    lng_lo, lng_hi = rounded_lng - cell_span - 0.5, rounded_lng + cell_span + 0.5

    conn = _connect(db_path, timeout_s)
    try:
        with conn:
            rows = conn.execute(
                f"""
                SELECT {_UNIT_COLUMNS}
                FROM units
                WHERE lat >= ? AND lat < ? AND lng >= ? AND lng < ?
                ORDER BY rowid
                """,
                (lat_lo, lat_hi, lng_lo, lng_hi),
            ).fetchall()
    except sqlite3.Error as e:
        logger.warning("telemetry units_store_error db=%s error=%s", db_path, str(e))
        raise StoreUnavailable(f"Units query failed: {e}") from e
    finally:
        conn.close()

    logger.debug(
        "telemetry units_candidates cell=%s,%s span=%s count=%s",
        rounded_lat,
        rounded_lng,
        cell_span,
        len(rows),
    )
    return [_row_to_unit(r) for r in rows]


def get_unit(db_path: str | Path, unit_id: str, *, timeout_s: float = DEFAULT_STORE_TIMEOUT_SECONDS) -> UnitRecord | None:
    db_path = Path(db_path)
    conn = _connect(db_path, timeout_s)
    try:
        with conn:
            row = conn.execute(
                f"SELECT {_UNIT_COLUMNS} FROM units WHERE unit_id = ?",
                (unit_id,),
            ).fetchone()
    except sqlite3.Error as e:
        raise StoreUnavailable(f"Units query failed: {e}") from e
    finally:
        conn.close()
    return _row_to_unit(row) if row is not None else None


def count_units(db_path: str | Path) -> int:
    db_path = Path(db_path)
    conn = _connect(db_path, DEFAULT_STORE_TIMEOUT_SECONDS)
    try:
        with conn:
            return conn.execute("SELECT COUNT(*) FROM units").fetchone()[0]
    except sqlite3.Error as e:
        raise StoreUnavailable(f"Units query failed: {e}") from e
    finally:
        conn.close()


def upsert_units(db_path: str | Path, units: Iterable[UnitRecord]) -> int:
    """Insert or replace units. Returns number of rows written."""
    rows = [(u.unit_id, u.name, u.address, u.city, u.phone, u.lat, u.lng) for u in units]
    with sqlite3.connect(db_path) as conn:
        conn.executemany(
            f"INSERT OR REPLACE INTO units ({_UNIT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            rows,
        )
        conn.commit()
    return len(rows)


def init_db(db_path: str | Path) -> None:
    """Create units table and index if they do not exist."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS units (
                unit_id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                address TEXT NOT NULL DEFAULT '',
                city TEXT NOT NULL DEFAULT '',
                phone TEXT NOT NULL DEFAULT '',
                lat REAL NOT NULL,
                lng REAL NOT NULL
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_units_lat_lng ON units(lat, lng)"
        )
        conn.commit()
