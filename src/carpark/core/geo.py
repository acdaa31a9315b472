from __future__ import annotations
from math import asin, cos, radians, sin, sqrt

"""
Geospatial helpers.

A tiny geometry layer so the catalog and query service can convert projected
coordinates and compute distances without pulling in heavier GIS dependencies.
"""

EARTH_RADIUS_KM = 6371.0

# SVY21 projection anchor (1°22'N, 103°50'E) and false origin offsets.
SVY21_ORIGIN_LAT = 1.3666666666666667
SVY21_ORIGIN_LON = 103.83333333333333
SVY21_FALSE_EASTING = 28_001.642
SVY21_FALSE_NORTHING = 38_744.572
METERS_PER_DEGREE = 111_320.0

_LON_METERS_PER_DEGREE = METERS_PER_DEGREE * cos(radians(SVY21_ORIGIN_LAT))


def svy21_to_wgs84(x: float, y: float) -> tuple[float, float]:
    """Convert SVY21 easting/northing (meters) to WGS84 `(latitude, longitude)`.

    Linear approximation around the projection origin; accurate to a few meters
    across Singapore. Out-of-range inputs give out-of-range outputs, which the
    catalog then rejects.
    """
    latitude = SVY21_ORIGIN_LAT + (y - SVY21_FALSE_NORTHING) / METERS_PER_DEGREE
    longitude = SVY21_ORIGIN_LON + (x - SVY21_FALSE_EASTING) / _LON_METERS_PER_DEGREE
    return latitude, longitude


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute great-circle distance in kilometers between two points."""
    phi1 = radians(lat1)
    phi2 = radians(lat2)
    dlat = phi2 - phi1
    dlon = radians(lon2) - radians(lon1)

    h = sin(dlat / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlon / 2) ** 2
    # Rounding can push h a hair above 1 for antipodal points.
    return 2 * EARTH_RADIUS_KM * asin(sqrt(min(h, 1.0)))
