# src/carpark/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/carpark/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `CARPARK_DATABASE_URL`, `CARPARK_DATA_DIR`)
- an external YAML file via `CARPARK_CONFIG_PATH`

Design rule:
- Tuning knobs live in YAML, not hard-coded in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any
from carpark.core.env import load_dotenv_if_present

import yaml
from pydantic import BaseModel, Field


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `carpark.config`."""
    text = resources.files("carpark.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "carpark"
    timezone: str = "Asia/Singapore"
    http_timeout_seconds: float = 15
    log_level: str = "INFO"


class CatalogSettings(BaseModel):
    data_dir: str = "data"
    # Explicit CSV file; when unset the first `*.csv` in `data_dir` is used.
    path: str | None = None


class DatabaseSettings(BaseModel):
    url: str = "sqlite+pysqlite:///data/carpark.db"
    echo: bool = False


class IngestionSettings(BaseModel):
    availability_url: str = "https://api.data.gov.sg/v1/transport/carpark-availability"


class QuerySettings(BaseModel):
    default_page: int = Field(1, ge=1)
    default_per_page: int = Field(10, ge=1)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    query: QuerySettings = Field(default_factory=QuerySettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small to avoid exposing unsafe overrides.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("CARPARK_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    data_dir = os.getenv("CARPARK_DATA_DIR")
    if data_dir:
        data.setdefault("catalog", {})["data_dir"] = data_dir

    catalog_path = os.getenv("CARPARK_CATALOG_PATH")
    if catalog_path:
        data.setdefault("catalog", {})["path"] = catalog_path

    database_url = os.getenv("CARPARK_DATABASE_URL")
    if database_url:
        data.setdefault("database", {})["url"] = database_url

    availability_url = os.getenv("CARPARK_AVAILABILITY_URL")
    if availability_url:
        data.setdefault("ingestion", {})["availability_url"] = availability_url

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("CARPARK_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
