from __future__ import annotations

# Nearest-car-park query orchestration.
#
# It wires together:
# - the location catalog (one snapshot per request)
# - the availability lookup (one bulk call per request)
# - distance ranking, availability filtering and pagination
#
# Ordering contract: sort the whole catalog by distance first, then filter and
# slice, so page N is always a window over the globally nearest-first list.

import logging
import math
from dataclasses import dataclass

from carpark.catalog.cache import LocationCatalog
from carpark.core.geo import haversine_km
from carpark.storage.availability import AvailabilityLookup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResultEntry:
    address: str
    latitude: float
    longitude: float
    total_capacity: int
    available_capacity: int
    distance_km: float


@dataclass(frozen=True)
class QueryResult:
    entries: list[ResultEntry]
    total_count: int
    page: int
    per_page: int
    total_pages: int


class NearestQueryService:
    def __init__(self, catalog: LocationCatalog, availability: AvailabilityLookup):
        self._catalog = catalog
        self._availability = availability

    def find_nearest(self, latitude: float, longitude: float, page: int, per_page: int) -> QueryResult:
        """Return one page of car parks with free lots, nearest first.

        `page` and `per_page` must already be validated as positive integers.
        """
        locations = self._catalog.snapshot().locations
        availability = self._availability.bulk_latest({loc.key for loc in locations})

        # sorted() is stable, so equal distances keep catalog order.
        ranked = sorted(
            ((haversine_km(latitude, longitude, loc.latitude, loc.longitude), loc) for loc in locations),
            key=lambda pair: pair[0],
        )

        available: list[ResultEntry] = []
        for distance, loc in ranked:
            record = availability.get(loc.key)
            total = record.total_capacity if record is not None else 0
            free = record.available_capacity if record is not None else 0
            if free <= 0:
                continue
            available.append(
                ResultEntry(
                    address=loc.address,
                    latitude=loc.latitude,
                    longitude=loc.longitude,
                    total_capacity=total,
                    available_capacity=free,
                    distance_km=distance,
                )
            )

        total_count = len(available)
        total_pages = math.ceil(total_count / per_page)
        offset = (page - 1) * per_page
        entries = available[offset : offset + per_page]

        logger.debug(
            "Nearest query lat=%.5f lon=%.5f page=%d/%d matched=%d of %d",
            latitude,
            longitude,
            page,
            total_pages,
            total_count,
            len(locations),
        )
        return QueryResult(
            entries=entries,
            total_count=total_count,
            page=page,
            per_page=per_page,
            total_pages=total_pages,
        )
