# src/carpark/api/app.py
"""
FastAPI application wiring.

`create_app()` builds the app and, in its lifespan, the long-lived collaborators:
the location catalog (loaded once at startup), the availability store and the
nearest-query service. Tests pass their own collaborators instead.
Business logic lives in `carpark.services` and `carpark.catalog`.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from carpark.catalog.cache import LocationCatalog
from carpark.config.settings import get_settings
from carpark.core.logging import configure_logging
from carpark.services.nearest import NearestQueryService
from carpark.storage.availability import AvailabilityLookup, AvailabilityStore
from carpark.storage.db import engine_from_settings

from .routes import router


def create_app(
    *,
    catalog: LocationCatalog | None = None,
    availability: AvailabilityLookup | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings = get_settings()
        engine = None
        lookup = availability
        if lookup is None:
            engine = engine_from_settings(settings)
            store = AvailabilityStore(engine)
            store.create_schema()
            lookup = store

        app.state.catalog = catalog if catalog is not None else LocationCatalog.from_settings(settings)
        app.state.availability = lookup
        app.state.nearest = NearestQueryService(app.state.catalog, lookup)
        try:
            yield
        finally:
            if engine is not None:
                engine.dispose()

    app = FastAPI(title="Carpark API", version="0.1.0", lifespan=lifespan)

    # Configure via env:
    # - CARPARK_CORS_ORIGINS="http://localhost:3000,http://127.0.0.1:3000"
    cors_origins = [s.strip() for s in os.getenv("CARPARK_CORS_ORIGINS", "").split(",") if s.strip()]
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=False,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    app.include_router(router)
    return app


configure_logging()

app = create_app()
