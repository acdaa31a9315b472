"""
Carpark CLI entrypoint.

This CLI is intended for local runs and operational chores:
- `nearest`: run a nearest-car-park query against the local catalog + database
- `ingest`: fetch the availability feed once and store it
- `catalog-stats`: load the catalog and report what was found
- `init-db`: create the availability tables
- `serve`: run the HTTP API with uvicorn
"""

from __future__ import annotations

import argparse
import json
import math
from typing import Any

from carpark.catalog.cache import LocationCatalog
from carpark.config.settings import get_settings
from carpark.core.logging import configure_logging
from carpark.ingestion.availability_client import AvailabilityApiClient, refresh_availability
from carpark.services.nearest import NearestQueryService
from carpark.storage.availability import AvailabilityStore
from carpark.storage.db import engine_from_settings


def _finite_float(value: str) -> float:
    try:
        x = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number, got {value}") from None
    if not math.isfinite(x):
        raise argparse.ArgumentTypeError(f"expected a finite number, got {value}")
    return x


def _positive_int(value: str) -> int:
    n = int(value)
    if n < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return n


def _build_store() -> AvailabilityStore:
    store = AvailabilityStore(engine_from_settings(get_settings()))
    store.create_schema()
    return store


def _cmd_nearest(args: argparse.Namespace) -> int:
    """Handle the `nearest` subcommand."""
    settings = get_settings()
    catalog = LocationCatalog.from_settings(settings)
    service = NearestQueryService(catalog, _build_store())

    page = args.page if args.page is not None else settings.query.default_page
    per_page = args.per_page if args.per_page is not None else settings.query.default_per_page
    result = service.find_nearest(args.latitude, args.longitude, page, per_page)

    if args.json:
        payload = {
            "data": [
                {
                    "address": e.address,
                    "latitude": e.latitude,
                    "longitude": e.longitude,
                    "total_lots": e.total_capacity,
                    "available_lots": e.available_capacity,
                }
                for e in result.entries
            ],
            "pagination": {
                "total_count": result.total_count,
                "page": result.page,
                "per_page": result.per_page,
                "total_pages": result.total_pages,
            },
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    print(f"Page {result.page}/{result.total_pages} ({result.total_count} car parks with free lots)")
    start = (result.page - 1) * result.per_page
    for i, e in enumerate(result.entries, start=start + 1):
        print(f"{i:>3}. {e.address}  {e.available_capacity}/{e.total_capacity} free  ~{e.distance_km:.2f} km")
    return 0


def _cmd_ingest(_: argparse.Namespace) -> int:
    count = refresh_availability(AvailabilityApiClient(get_settings()), _build_store())
    print(f"Stored {count} availability readings")
    return 0


def _cmd_catalog_stats(_: argparse.Namespace) -> int:
    stats = LocationCatalog.from_settings(get_settings()).stats()
    print(
        json.dumps(
            {"count": stats.count, "loaded_at": stats.loaded_at.isoformat() if stats.loaded_at else None},
            indent=2,
        )
    )
    return 0 if stats.loaded_at else 1


def _cmd_init_db(_: argparse.Namespace) -> int:
    _build_store()
    print("Database schema is up to date")
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("carpark.api.app:app", host=args.host, port=int(args.port), log_config=None)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the carpark CLI."""
    parser = argparse.ArgumentParser(prog="carpark")
    sub = parser.add_subparsers(dest="command", required=True)

    near = sub.add_parser("nearest", help="List the nearest car parks with free lots.")
    near.add_argument("--latitude", required=True, type=_finite_float)
    near.add_argument("--longitude", required=True, type=_finite_float)
    near.add_argument("--page", type=_positive_int, default=None)
    near.add_argument("--per-page", dest="per_page", type=_positive_int, default=None)
    near.add_argument("--json", action="store_true", help="Output machine-readable JSON")
    near.set_defaults(func=_cmd_nearest)

    ing = sub.add_parser("ingest", help="Fetch the availability feed once and store it.")
    ing.set_defaults(func=_cmd_ingest)

    stats = sub.add_parser("catalog-stats", help="Load the location catalog and print its size.")
    stats.set_defaults(func=_cmd_catalog_stats)

    init = sub.add_parser("init-db", help="Create the availability tables if missing.")
    init.set_defaults(func=_cmd_init_db)

    serve = sub.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", type=str, default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=_cmd_serve)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m carpark.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())
