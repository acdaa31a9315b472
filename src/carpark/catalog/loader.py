"""
Car park information loader.

The catalog source is a CSV file (by default the first `*.csv` under `data/`) with
SVY21 coordinates. Each row is parsed into a typed `CarParkLocation`; rows that do
not validate (missing number/address, coordinates out of range) are dropped so
downstream code can assume every location is complete.
"""

from __future__ import annotations

import csv
import logging
import re
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from carpark.core.env import resolve_project_path
from carpark.core.errors import CatalogLoadError
from carpark.core.geo import svy21_to_wgs84
from carpark.domain.models import CarParkLocation

logger = logging.getLogger(__name__)

CSV_FIELDS = (
    "car_park_no",
    "address",
    "x_coord",
    "y_coord",
    "car_park_type",
    "type_of_parking_system",
    "short_term_parking",
    "free_parking",
    "night_parking",
    "car_park_decks",
    "gantry_height",
    "car_park_basement",
)

_FLOAT_PREFIX = re.compile(r"\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_INT_PREFIX = re.compile(r"\s*[+-]?\d+")


def parse_float(value: Any) -> float | None:
    """Parse the leading number of `value`; None when there is none."""
    if not isinstance(value, str):
        return None
    m = _FLOAT_PREFIX.match(value)
    return float(m.group()) if m else None


def parse_integer(value: Any) -> int:
    """Parse the leading integer of `value`; 0 when there is none."""
    if not isinstance(value, str):
        return 0
    m = _INT_PREFIX.match(value)
    return int(m.group()) if m else 0


def resolve_source(*, data_dir: str | Path, path: str | Path | None = None) -> Path:
    """Return the CSV file to load: `path` if given, else the first CSV in `data_dir`."""
    if path:
        resolved = resolve_project_path(path)
        if not resolved.is_file():
            raise CatalogLoadError(f"Catalog file not found: {resolved}")
        return resolved

    folder = resolve_project_path(data_dir)
    if not folder.is_dir():
        raise CatalogLoadError(f"Cannot read {folder} directory")
    csv_files = sorted(p for p in folder.iterdir() if p.suffix == ".csv" and p.is_file())
    if not csv_files:
        raise CatalogLoadError(f"No CSV files found in {folder} directory")
    return csv_files[0]


def parse_row(row: dict[str, Any]) -> CarParkLocation | None:
    """Turn one CSV row into a validated location, or None if the row is unusable."""
    x = parse_float(row.get("x_coord"))
    y = parse_float(row.get("y_coord"))
    if x is None or y is None:
        return None
    latitude, longitude = svy21_to_wgs84(x, y)

    try:
        return CarParkLocation(
            key=row.get("car_park_no"),
            address=row.get("address"),
            latitude=latitude,
            longitude=longitude,
            car_park_type=row.get("car_park_type"),
            type_of_parking_system=row.get("type_of_parking_system"),
            short_term_parking=row.get("short_term_parking"),
            free_parking=row.get("free_parking"),
            night_parking=row.get("night_parking"),
            car_park_decks=parse_integer(row.get("car_park_decks")),
            gantry_height=parse_float(row.get("gantry_height")),
            car_park_basement=row.get("car_park_basement"),
        )
    except ValidationError:
        return None


def load_locations(path: str | Path) -> list[CarParkLocation]:
    """Read every row of the CSV at `path` and keep the valid locations (source order)."""
    resolved = resolve_project_path(path)
    locations: list[CarParkLocation] = []
    dropped = 0
    try:
        with resolved.open("r", encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f)
            for raw in reader:
                loc = parse_row(raw)
                if loc is None:
                    dropped += 1
                    continue
                locations.append(loc)
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise CatalogLoadError(f"Failed to read car park locations from {resolved}: {e}") from e

    if dropped:
        logger.info("Dropped %d invalid car park rows from %s", dropped, resolved.name)
    return locations


def load_catalog_source(*, data_dir: str | Path, path: str | Path | None = None) -> list[CarParkLocation]:
    """Resolve the configured CSV and load it."""
    return load_locations(resolve_source(data_dir=data_dir, path=path))
