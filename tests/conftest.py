"""Pytest configuration and fixtures."""
import sqlite3
import sys
from pathlib import Path

import pytest

# Ensure project root is on path when running pytest from elsewhere
root = Path(__file__).resolve().parent.parent
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

from healthunits.data.units_repo import init_db  # noqa: E402

SAO_PAULO_UNITS = [
    ("VM", "UBS Vila Mariana", "Rua Domingos de Morais 1200", "Sao Paulo", "1150841200", -23.5893, -46.6349),
    ("PA", "UBS Paraiso", "Rua Tomas Carvalhal 680", "Sao Paulo", "1138841300", -23.5750, -46.6456),
    ("SE", "UBS Se", "Rua Frederico Alvarenga 259", "Sao Paulo", "1131057200", -23.5520, -46.6298),
    # Same metro area, but rounds to the -46 longitude cell
    ("EAST", "UBS Itaquera", "Rua Gregorio Ramalho 263", "Sao Paulo", "", -23.5400, -46.4560),
    ("CPS", "UBS Campinas Centro", "Rua Dr Quirino 1500", "Campinas", "1932367000", -22.9050, -47.0590),
]


@pytest.fixture
def units_db(tmp_path):
    """Temporary units DB seeded with a handful of Sao Paulo / Campinas units."""
    db = tmp_path / "units.db"
    init_db(db)
    with sqlite3.connect(db) as conn:
        conn.executemany(
            "INSERT INTO units (unit_id, name, address, city, phone, lat, lng) VALUES (?, ?, ?, ?, ?, ?, ?)",
            SAO_PAULO_UNITS,
        )
        conn.commit()
    return db
