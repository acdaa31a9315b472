"""
Availability persistence.

`AvailabilityStore` keeps every lot-count reading and answers the one question the
query path needs: "what is the latest reading for each of these car parks?"
(`bulk_latest`). That lookup is one grouped query and fails open: a storage error
is logged and reported as "no availability known" rather than raised, and a
stored row that no longer validates is skipped.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Protocol

from pydantic import ValidationError
from sqlalchemy import and_, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from carpark.domain.models import AvailabilityRecord
from carpark.storage.models import Base, CarParkAvailability

logger = logging.getLogger(__name__)


class AvailabilityLookup(Protocol):
    def bulk_latest(self, keys: Iterable[str]) -> dict[str, AvailabilityRecord]: ...


def _to_utc(dt: datetime) -> datetime:
    # SQLite drops offsets on write, so everything is normalized to naive UTC first.
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _to_record(row: CarParkAvailability) -> AvailabilityRecord:
    return AvailabilityRecord(
        key=row.carpark_number,
        total_capacity=row.total_lots,
        available_capacity=row.available_lots,
        observed_at=_from_db(row.update_datetime),
    )


def latest_per_key(records: Iterable[AvailabilityRecord]) -> dict[str, AvailabilityRecord]:
    """Keep, per key, the record with the greatest `observed_at` (in-process reduction)."""
    out: dict[str, AvailabilityRecord] = {}
    for rec in records:
        current = out.get(rec.key)
        if current is None or rec.observed_at > current.observed_at:
            out[rec.key] = rec
    return out


class AvailabilityStore:
    """SQLAlchemy-backed store of availability readings."""

    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def create_schema(self) -> None:
        Base.metadata.create_all(bind=self._engine)

    def bulk_latest(self, keys: Iterable[str]) -> dict[str, AvailabilityRecord]:
        """Return the latest reading for each key that has one (single query).

        Keys without readings are simply absent. Any storage failure yields `{}`.
        """
        wanted = sorted({k for k in keys if k})
        if not wanted:
            return {}

        latest = (
            select(
                CarParkAvailability.carpark_number.label("carpark_number"),
                func.max(CarParkAvailability.update_datetime).label("max_datetime"),
            )
            .where(CarParkAvailability.carpark_number.in_(wanted))
            .group_by(CarParkAvailability.carpark_number)
            .subquery()
        )
        stmt = select(CarParkAvailability).join(
            latest,
            and_(
                CarParkAvailability.carpark_number == latest.c.carpark_number,
                CarParkAvailability.update_datetime == latest.c.max_datetime,
            ),
        )

        records: list[AvailabilityRecord] = []
        skipped = 0
        try:
            with self._session_factory() as session:
                for row in session.execute(stmt).scalars():
                    try:
                        records.append(_to_record(row))
                    except ValidationError:
                        skipped += 1
        except SQLAlchemyError as e:
            logger.error("Bulk availability lookup failed; treating all car parks as unknown: %s", e)
            return {}

        if skipped:
            logger.warning("Skipped %d invalid availability rows during bulk lookup", skipped)
        return latest_per_key(records)

    def latest(self, key: str) -> AvailabilityRecord | None:
        stmt = (
            select(CarParkAvailability)
            .where(CarParkAvailability.carpark_number == key)
            .order_by(CarParkAvailability.update_datetime.desc())
            .limit(1)
        )
        with self._session_factory() as session:
            row = session.execute(stmt).scalars().first()
        return _to_record(row) if row is not None else None

    def history(
        self, key: str, *, start: datetime | None = None, end: datetime | None = None
    ) -> list[AvailabilityRecord]:
        """Readings for one car park, oldest first, optionally bounded (inclusive)."""
        stmt = select(CarParkAvailability).where(CarParkAvailability.carpark_number == key)
        if start is not None:
            stmt = stmt.where(CarParkAvailability.update_datetime >= _to_utc(start))
        if end is not None:
            stmt = stmt.where(CarParkAvailability.update_datetime <= _to_utc(end))
        stmt = stmt.order_by(CarParkAvailability.update_datetime.asc())
        with self._session_factory() as session:
            rows = session.execute(stmt).scalars().all()
        return [_to_record(row) for row in rows]

    def upsert(self, records: Iterable[AvailabilityRecord]) -> int:
        """Insert readings, updating lot counts of any existing (car park, time) pair.

        Duplicates within `records` collapse to their last occurrence. Returns the
        number of distinct readings written.
        """
        deduped: dict[tuple[str, datetime], AvailabilityRecord] = {}
        for rec in records:
            deduped[(rec.key, _to_utc(rec.observed_at))] = rec
        if not deduped:
            return 0

        keys = {k for k, _ in deduped}
        stamps = {dt for _, dt in deduped}

        try:
            with self._session_factory() as session:
                existing_rows = (
                    session.execute(
                        select(CarParkAvailability).where(
                            CarParkAvailability.carpark_number.in_(sorted(keys)),
                            CarParkAvailability.update_datetime.in_(sorted(stamps)),
                        )
                    )
                    .scalars()
                    .all()
                )
                existing = {(row.carpark_number, _to_utc(row.update_datetime)): row for row in existing_rows}

                for (key, stamp), rec in deduped.items():
                    row = existing.get((key, stamp))
                    if row is not None:
                        row.total_lots = rec.total_capacity
                        row.available_lots = rec.available_capacity
                        continue
                    session.add(
                        CarParkAvailability(
                            carpark_number=key,
                            total_lots=rec.total_capacity,
                            available_lots=rec.available_capacity,
                            update_datetime=stamp,
                        )
                    )
                session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to upsert availability readings: %s", e)
            raise

        logger.info("Upserted %d availability readings", len(deduped))
        return len(deduped)
