#!/usr/bin/env python3
"""
Load health units from a CSV file into the local SQLite DB.

CSV must have columns: unit_id, name, lat, lng
Optional columns: address, city, phone
(Header row expected.)

Run: python scripts/load_units.py --csv data/units_sample.csv
"""
import argparse
import csv
import sys
from pathlib import Path

# Add project root to path
root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(root))

from healthunits.data.geo import GeoPoint, is_valid_point
from healthunits.data.units_repo import UnitRecord, init_db, upsert_units

REQUIRED_COLUMNS = ("unit_id", "name", "lat", "lng")


def _normalize_header(h: str) -> str:
    # Strip BOM / spaces
    return h.strip().lower().lstrip("\ufeff")


def read_units_csv(csv_path: Path) -> tuple[list[UnitRecord], int]:
    """Parse units from csv_path. Returns (units, skipped_row_count)."""
    units: list[UnitRecord] = []
    skipped = 0
    with open(csv_path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        if not reader.fieldnames:
            raise ValueError("empty CSV")
        fieldnames = [_normalize_header(h) for h in reader.fieldnames]
        missing = [c for c in REQUIRED_COLUMNS if c not in fieldnames]
        if missing:
            raise ValueError(f"CSV is missing columns {missing}. Got: {fieldnames}")
        for row in reader:
            row = {_normalize_header(k): (v or "").strip() for k, v in row.items() if k is not None}
            try:
                lat = float(row["lat"])
                lng = float(row["lng"])
            except (TypeError, ValueError):
                skipped += 1
                continue
            if not row["unit_id"] or not is_valid_point(GeoPoint(lat, lng)):
                skipped += 1
                continue
            units.append(
                UnitRecord(
                    unit_id=row["unit_id"],
                    name=row["name"],
                    lat=lat,
                    lng=lng,
                    address=row.get("address", ""),
                    city=row.get("city", ""),
                    phone=row.get("phone", ""),
                )
            )
    return units, skipped


def main() -> int:
    parser = argparse.ArgumentParser(description="Load health units CSV into SQLite")
    parser.add_argument(
        "--csv",
        default=root / "data" / "units_sample.csv",
        type=Path,
        help="Path to CSV (unit_id, name, lat, lng[, address, city, phone])",
    )
    parser.add_argument(
        "--db",
        default=root / "data" / "units.db",
        type=Path,
        help="Path to SQLite DB file",
    )
    args = parser.parse_args()

    if not args.csv.exists():
        print(f"Error: CSV not found: {args.csv}", file=sys.stderr)
        return 1

    try:
        units, skipped = read_units_csv(args.csv)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    init_db(args.db)
    count = upsert_units(args.db, units)
    print(f"Loaded {count} units into {args.db} (skipped {skipped} rows)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
