"""
Car park availability ingestion client.

This module is responsible only for:
- fetching the public car park availability feed,
- parsing it into `AvailabilityRecord`s,
- handing those to the availability store (`refresh_availability`).

Scheduling repeated refreshes is left to whatever runs the CLI.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from carpark.config.settings import Settings
from carpark.core.errors import AvailabilityPayloadError
from carpark.core.http import get_json
from carpark.core.time import parse_datetime
from carpark.domain.models import AvailabilityRecord
from carpark.storage.availability import AvailabilityStore

logger = logging.getLogger(__name__)


class AvailabilityApiClient:
    """Fetches the availability feed and turns it into typed records."""

    def __init__(self, settings: Settings):
        self._settings = settings

    def fetch(self) -> Any:
        url = self._settings.ingestion.availability_url
        logger.info("Fetching car park availability from %s", url)
        return get_json(url, timeout_seconds=self._settings.app.http_timeout_seconds)

    def parse_response(self, payload: Any) -> list[AvailabilityRecord]:
        """Flatten `items[0].carpark_data[*].carpark_info[*]` into records.

        One record per lot type. Entries with bad numbers/timestamps or impossible
        counts are skipped.
        """
        try:
            carparks = payload["items"][0]["carpark_data"]
        except (KeyError, IndexError, TypeError) as e:
            raise AvailabilityPayloadError("Invalid availability response format") from e
        if not isinstance(carparks, list):
            raise AvailabilityPayloadError("Invalid availability response format")

        tz = self._settings.app.timezone
        records: list[AvailabilityRecord] = []
        skipped = 0
        for carpark in carparks:
            if not isinstance(carpark, dict):
                skipped += 1
                continue
            number = str(carpark.get("carpark_number") or "").strip()
            try:
                observed_at = parse_datetime(str(carpark.get("update_datetime") or ""), tz)
            except ValueError:
                skipped += 1
                continue

            for info in carpark.get("carpark_info") or []:
                try:
                    records.append(
                        AvailabilityRecord(
                            key=number,
                            total_capacity=int(info["total_lots"]),
                            available_capacity=int(info["lots_available"]),
                            observed_at=observed_at,
                        )
                    )
                except (KeyError, TypeError, ValueError, ValidationError):
                    skipped += 1

        if skipped:
            logger.warning("Skipped %d malformed availability entries", skipped)
        return records


def refresh_availability(client: AvailabilityApiClient, store: AvailabilityStore) -> int:
    """Fetch, parse and persist one snapshot of the feed; returns readings written."""
    try:
        records = client.parse_response(client.fetch())
        count = store.upsert(records)
    except Exception as e:
        logger.error("Failed to fetch and store car park availability: %s", e)
        raise
    logger.info("Stored %d car park availability readings", count)
    return count
