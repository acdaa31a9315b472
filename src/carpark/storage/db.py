"""
Database engine wiring.

The availability store works against any SQLAlchemy URL. Relative SQLite paths are
resolved against the project root (same rule as the catalog data directory), and
in-memory SQLite gets a single shared connection so every thread sees the same data.
"""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool

from carpark.config.settings import Settings
from carpark.core.env import resolve_project_path


def build_engine(url: str, *, echo: bool = False) -> Engine:
    parsed = make_url(url)
    if not parsed.drivername.startswith("sqlite"):
        return create_engine(parsed, echo=echo, pool_pre_ping=True)

    if not parsed.database or parsed.database == ":memory:":
        return create_engine(
            parsed,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    db_path = resolve_project_path(parsed.database)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        parsed.set(database=str(db_path)),
        echo=echo,
        connect_args={"check_same_thread": False},
    )


def engine_from_settings(settings: Settings) -> Engine:
    return build_engine(settings.database.url, echo=settings.database.echo)
