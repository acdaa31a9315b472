import csv
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

import pytest

from carpark import cli
from carpark.catalog.loader import CSV_FIELDS
from carpark.config.settings import get_logging_config, get_settings
from carpark.core.env import get_project_root
from carpark.core.geo import SVY21_FALSE_EASTING, SVY21_FALSE_NORTHING
from carpark.core.logging import configure_logging
from carpark.domain.models import AvailabilityRecord
from carpark.storage.availability import AvailabilityStore
from carpark.storage.db import build_engine


@pytest.fixture()
def fresh_settings():
    get_settings.cache_clear()
    get_project_root.cache_clear()
    yield
    get_settings.cache_clear()
    get_project_root.cache_clear()


def test_packaged_defaults(fresh_settings):
    settings = get_settings()

    assert settings.app.timezone == "Asia/Singapore"
    assert settings.catalog.data_dir == "data"
    assert settings.catalog.path is None
    assert settings.query.default_page == 1
    assert settings.query.default_per_page == 10


def test_env_overrides(fresh_settings, monkeypatch, tmp_path):
    monkeypatch.setenv("CARPARK_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("CARPARK_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("CARPARK_DATABASE_URL", "sqlite+pysqlite:///:memory:")
    monkeypatch.setenv("CARPARK_AVAILABILITY_URL", "https://example.test/availability")

    settings = get_settings()

    assert settings.app.log_level == "DEBUG"
    assert settings.catalog.data_dir == str(tmp_path)
    assert settings.database.url == "sqlite+pysqlite:///:memory:"
    assert settings.ingestion.availability_url == "https://example.test/availability"


def test_external_config_file(fresh_settings, monkeypatch, tmp_path):
    config = tmp_path / "carpark.yaml"
    config.write_text("query:\n  default_per_page: 25\n", encoding="utf-8")
    monkeypatch.setenv("CARPARK_CONFIG_PATH", str(config))

    settings = get_settings()

    assert settings.query.default_per_page == 25
    assert settings.app.timezone == "Asia/Singapore"


def test_relative_sqlite_path_resolves_against_project_root(fresh_settings, monkeypatch, tmp_path):
    monkeypatch.setenv("CARPARK_PROJECT_ROOT", str(tmp_path))

    engine = build_engine("sqlite+pysqlite:///var/carpark.db")

    assert Path(engine.url.database) == (tmp_path / "var" / "carpark.db").resolve()
    assert (tmp_path / "var").is_dir()
    engine.dispose()


def test_cli_nearest_json(fresh_settings, monkeypatch, tmp_path, capsys):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    with (data_dir / "carparks.csv").open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(CSV_FIELDS))
        writer.writeheader()
        writer.writerow(
            {"car_park_no": "ORG", "address": "ORIGIN CAR PARK", "x_coord": str(SVY21_FALSE_EASTING), "y_coord": str(SVY21_FALSE_NORTHING)}
        )
        writer.writerow({"car_park_no": "EAST", "address": "EAST CAR PARK", "x_coord": "30000", "y_coord": "38744.572"})

    db_url = f"sqlite+pysqlite:///{tmp_path / 'availability.db'}"
    engine = build_engine(db_url)
    store = AvailabilityStore(engine)
    store.create_schema()
    observed = datetime(2025, 7, 28, 7, 25, 17, tzinfo=timezone.utc)
    store.upsert(
        [
            AvailabilityRecord(key="ORG", total_capacity=10, available_capacity=2, observed_at=observed),
            AvailabilityRecord(key="EAST", total_capacity=10, available_capacity=7, observed_at=observed),
        ]
    )
    engine.dispose()

    monkeypatch.setenv("CARPARK_DATA_DIR", str(data_dir))
    monkeypatch.setenv("CARPARK_DATABASE_URL", db_url)

    code = cli.main(["nearest", "--latitude", "1.3667", "--longitude", "103.8333", "--json"])

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert [d["address"] for d in payload["data"]] == ["ORIGIN CAR PARK", "EAST CAR PARK"]
    assert payload["pagination"] == {"total_count": 2, "page": 1, "per_page": 10, "total_pages": 1}


def test_cli_rejects_non_positive_page():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["nearest", "--latitude", "1.3", "--longitude", "103.8", "--page", "0"])


@pytest.mark.parametrize("value", ["nan", "inf", "-inf", "1e400", "north"])
def test_cli_rejects_non_finite_coordinates(value):
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["nearest", "--latitude", value, "--longitude", "103.8"])
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["nearest", "--latitude", "1.3", "--longitude", value])


def test_configure_logging_applies_level_to_app_logger(fresh_settings, monkeypatch):
    monkeypatch.setenv("CARPARK_LOG_LEVEL", "debug")

    configure_logging()

    assert logging.getLogger(get_settings().app.name).level == logging.DEBUG
    assert logging.getLogger().level == logging.DEBUG
    # The packaged config stays untouched for the next caller.
    assert get_logging_config()["root"]["level"] == "INFO"
    assert "carpark" not in get_logging_config().get("loggers", {})

    monkeypatch.delenv("CARPARK_LOG_LEVEL")
    get_settings.cache_clear()
    configure_logging()
    assert logging.getLogger("carpark").level == logging.INFO
