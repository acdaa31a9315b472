from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import event, text
from sqlalchemy.exc import IntegrityError

from carpark.domain.models import AvailabilityRecord
from carpark.storage.availability import AvailabilityStore, latest_per_key
from carpark.storage.db import build_engine

T0 = datetime(2025, 7, 28, 7, 25, 17, tzinfo=timezone.utc)


def _rec(key: str, available: int, at: datetime, total: int = 100) -> AvailabilityRecord:
    return AvailabilityRecord(key=key, total_capacity=total, available_capacity=available, observed_at=at)


@pytest.fixture()
def store():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    s = AvailabilityStore(engine)
    s.create_schema()
    yield s
    engine.dispose()


def test_bulk_latest_empty_keys_does_not_touch_storage(store, monkeypatch):
    def explode():
        raise AssertionError("bulk_latest queried storage for an empty key set")

    monkeypatch.setattr(store, "_session_factory", explode)
    assert store.bulk_latest(set()) == {}
    assert store.bulk_latest([]) == {}


def test_bulk_latest_returns_most_recent_record_per_key(store):
    store.upsert(
        [
            _rec("A1", 10, T0),
            _rec("A1", 25, T0 + timedelta(minutes=5)),
            _rec("A1", 5, T0 - timedelta(minutes=5)),
            _rec("B2", 7, T0),
        ]
    )

    latest = store.bulk_latest({"A1", "B2"})

    assert set(latest) == {"A1", "B2"}
    assert latest["A1"].available_capacity == 25
    assert latest["A1"].observed_at == T0 + timedelta(minutes=5)
    assert latest["B2"].available_capacity == 7


def test_bulk_latest_omits_keys_without_records(store):
    store.upsert([_rec("A1", 10, T0)])

    latest = store.bulk_latest({"A1", "NOPE"})

    assert list(latest) == ["A1"]


def test_bulk_latest_uses_single_query(store):
    store.upsert([_rec(f"K{i}", i, T0) for i in range(1, 30)])
    statements: list[str] = []
    engine = store._engine

    def before_execute(conn, cursor, statement, parameters, context, executemany):  # noqa: ARG001
        statements.append(statement)

    event.listen(engine, "before_cursor_execute", before_execute)
    try:
        latest = store.bulk_latest({f"K{i}" for i in range(1, 30)})
    finally:
        event.remove(engine, "before_cursor_execute", before_execute)

    assert len(latest) == 29
    assert len([s for s in statements if s.lstrip().upper().startswith("SELECT")]) == 1


def test_bulk_latest_fails_open_on_storage_error(store):
    store.upsert([_rec("A1", 10, T0)])
    with store._engine.begin() as conn:
        conn.execute(text("DROP TABLE car_park_availability"))

    assert store.bulk_latest({"A1"}) == {}


_RAW_INSERT = text(
    "INSERT INTO car_park_availability "
    "(carpark_number, total_lots, available_lots, update_datetime, created_at, updated_at) "
    "VALUES (:key, :total, :available, :at, :at, :at)"
)


def test_bulk_latest_skips_rows_that_no_longer_validate(store):
    store.upsert([_rec("B2", 7, T0)])
    with store._engine.begin() as conn:
        # Rows written around the table constraints (older schema, other writers).
        conn.execute(text("PRAGMA ignore_check_constraints = ON"))
        conn.execute(_RAW_INSERT, {"key": "A1", "total": 10, "available": 12, "at": "2025-07-28 07:25:17.000000"})
        conn.execute(_RAW_INSERT, {"key": "C3", "total": -1, "available": 0, "at": "2025-07-28 07:25:17.000000"})
        conn.execute(text("PRAGMA ignore_check_constraints = OFF"))

    latest = store.bulk_latest({"A1", "B2", "C3"})

    assert list(latest) == ["B2"]
    assert latest["B2"].available_capacity == 7


@pytest.mark.parametrize(
    ("total", "available"),
    [(10, 12), (-1, 0), (10, -1)],
)
def test_table_rejects_impossible_lot_counts(store, total, available):
    with pytest.raises(IntegrityError):
        with store._engine.begin() as conn:
            conn.execute(
                _RAW_INSERT,
                {"key": "A1", "total": total, "available": available, "at": "2025-07-28 07:25:17.000000"},
            )


def test_timestamps_round_trip_as_utc(store):
    sgt = timezone(timedelta(hours=8))
    store.upsert([_rec("A1", 3, datetime(2025, 7, 28, 15, 25, 17, tzinfo=sgt))])

    rec = store.latest("A1")
    assert rec is not None
    assert rec.observed_at == T0
    assert rec.observed_at.tzinfo is not None


def test_upsert_is_idempotent_and_updates_counts(store):
    assert store.upsert([_rec("A1", 10, T0), _rec("A1", 12, T0)]) == 1
    assert store.upsert([_rec("A1", 40, T0)]) == 1

    history = store.history("A1")
    assert len(history) == 1
    assert history[0].available_capacity == 40


def test_upsert_empty_is_noop(store):
    assert store.upsert([]) == 0


def test_latest_and_history(store):
    store.upsert([_rec("A1", i, T0 + timedelta(minutes=i)) for i in range(5)])

    assert store.latest("A1").available_capacity == 4
    assert store.latest("missing") is None

    window = store.history("A1", start=T0 + timedelta(minutes=1), end=T0 + timedelta(minutes=3))
    assert [r.available_capacity for r in window] == [1, 2, 3]
    assert [r.available_capacity for r in store.history("A1")] == [0, 1, 2, 3, 4]


def test_in_process_reduction_matches_grouped_query(store):
    records = [
        _rec("A1", 1, T0),
        _rec("A1", 2, T0 + timedelta(hours=1)),
        _rec("B2", 3, T0 + timedelta(hours=2)),
        _rec("B2", 4, T0 + timedelta(hours=1)),
        _rec("C3", 5, T0),
    ]
    store.upsert(records)

    assert store.bulk_latest({"A1", "B2", "C3"}) == latest_per_key(records)


def test_record_rejects_available_above_total():
    with pytest.raises(ValueError):
        _rec("A1", 101, T0, total=100)
