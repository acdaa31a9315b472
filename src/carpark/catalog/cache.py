"""
In-memory car park location catalog.

The catalog holds one immutable `CatalogSnapshot`. Readers grab the current
snapshot reference and use it for the whole request; `reload()` builds a new
snapshot off to the side and swaps the reference in one assignment, so a reader
never sees a half-built catalog and never waits on a reload.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

from carpark.catalog.loader import load_catalog_source
from carpark.config.settings import Settings
from carpark.core.errors import CatalogLoadError
from carpark.core.time import utcnow
from carpark.domain.models import CarParkLocation

logger = logging.getLogger(__name__)

LocationSource = Callable[[], Sequence[CarParkLocation]]


@dataclass(frozen=True)
class CatalogSnapshot:
    """Point-in-time copy of every known location, in source order."""

    locations: tuple[CarParkLocation, ...] = ()
    loaded_at: datetime | None = None
    _by_key: dict[str, CarParkLocation] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def build(cls, locations: Sequence[CarParkLocation], *, loaded_at: datetime | None) -> "CatalogSnapshot":
        by_key: dict[str, CarParkLocation] = {}
        for loc in locations:
            by_key.setdefault(loc.key, loc)
        return cls(locations=tuple(locations), loaded_at=loaded_at, _by_key=by_key)

    def get(self, key: str) -> CarParkLocation | None:
        return self._by_key.get(key)


@dataclass(frozen=True)
class CatalogStats:
    count: int
    loaded_at: datetime | None


class LocationCatalog:
    """Owns the current snapshot and the source it is (re)built from."""

    def __init__(self, source: LocationSource):
        self._source = source
        self._snapshot = CatalogSnapshot()
        self._swap_lock = threading.Lock()

    @classmethod
    def start(cls, source: LocationSource) -> "LocationCatalog":
        """Create a catalog and perform the initial load.

        A failed initial load is logged and leaves the catalog empty; the service
        still starts and `reload()` can recover later.
        """
        catalog = cls(source)
        logger.info("Initializing car park location catalog...")
        try:
            catalog.reload()
        except CatalogLoadError:
            # Already logged by reload(); keep the empty snapshot.
            pass
        return catalog

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocationCatalog":
        cfg = settings.catalog
        return cls.start(lambda: load_catalog_source(data_dir=cfg.data_dir, path=cfg.path))

    def load(self) -> CatalogSnapshot:
        """Build a fresh snapshot from the source without installing it."""
        locations = self._source()
        return CatalogSnapshot.build(locations, loaded_at=utcnow())

    def reload(self) -> int:
        """Rebuild from the source and swap it in; returns the new location count.

        Raises:
            CatalogLoadError: The source is unreadable. The previous snapshot stays active.
        """
        try:
            snapshot = self.load()
        except CatalogLoadError as e:
            logger.error("Failed to load car park locations: %s", e)
            raise
        with self._swap_lock:
            self._snapshot = snapshot
        logger.info("Loaded %d car park locations into catalog", len(snapshot.locations))
        return len(snapshot.locations)

    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    def get_all(self) -> tuple[CarParkLocation, ...]:
        return self._snapshot.locations

    def get_by_key(self, key: str) -> CarParkLocation | None:
        return self._snapshot.get(key)

    def stats(self) -> CatalogStats:
        snapshot = self._snapshot
        return CatalogStats(count=len(snapshot.locations), loaded_at=snapshot.loaded_at)
