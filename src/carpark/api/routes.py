"""
API routes.

Endpoints:
- GET  `/health`: liveness check.
- GET  `/carparks/nearest`: nearest car parks with free lots (paginated).
- GET  `/carparks/catalog`: location catalog stats.
- POST `/carparks/catalog/reload`: re-read the catalog CSV and swap it in.

Collaborators (catalog, query service) are created once by the app lifespan and
read from `request.app.state`.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from carpark.catalog.cache import LocationCatalog
from carpark.config.settings import get_settings
from carpark.core.errors import CatalogLoadError
from carpark.core.time import utcnow
from carpark.domain.models import (
    CatalogStatsResponse,
    NearestCarPark,
    NearestQuery,
    NearestResponse,
    Pagination,
)
from carpark.services.nearest import NearestQueryService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_catalog(request: Request) -> LocationCatalog:
    return request.app.state.catalog


def get_nearest_service(request: Request) -> NearestQueryService:
    return request.app.state.nearest


def _parse_nearest_query(
    latitude: str | None,
    longitude: str | None,
    page: str | None,
    per_page: str | None,
) -> NearestQuery:
    settings = get_settings()
    raw = {
        "latitude": latitude,
        "longitude": longitude,
        "page": page if page is not None else settings.query.default_page,
        "per_page": per_page if per_page is not None else settings.query.default_per_page,
    }
    try:
        return NearestQuery.model_validate(raw)
    except ValidationError as e:
        fields = ", ".join(sorted({str(err["loc"][0]) for err in e.errors()}))
        raise HTTPException(
            status_code=400,
            detail={"code": "VALIDATION_ERROR", "message": f"Invalid parameters: {fields}"},
        ) from e


@router.get("/health")
def get_health() -> dict:
    return {"status": "healthy", "timestamp": utcnow().isoformat(), "service": "carpark"}


@router.get("/carparks/nearest", response_model=NearestResponse)
def get_nearest_carparks(
    latitude: str | None = None,
    longitude: str | None = None,
    page: str | None = None,
    per_page: str | None = None,
    service: NearestQueryService = Depends(get_nearest_service),
) -> NearestResponse:
    """Find the nearest car parks that currently have free lots."""
    query = _parse_nearest_query(latitude, longitude, page, per_page)
    result = service.find_nearest(query.latitude, query.longitude, query.page, query.per_page)
    return NearestResponse(
        data=[
            NearestCarPark(
                address=e.address,
                latitude=e.latitude,
                longitude=e.longitude,
                total_lots=e.total_capacity,
                available_lots=e.available_capacity,
            )
            for e in result.entries
        ],
        pagination=Pagination(
            total_count=result.total_count,
            page=result.page,
            per_page=result.per_page,
            total_pages=result.total_pages,
        ),
        timestamp=utcnow(),
    )


@router.get("/carparks/catalog", response_model=CatalogStatsResponse)
def get_catalog_stats(catalog: LocationCatalog = Depends(get_catalog)) -> CatalogStatsResponse:
    stats = catalog.stats()
    return CatalogStatsResponse(count=stats.count, loaded_at=stats.loaded_at)


@router.post("/carparks/catalog/reload", response_model=CatalogStatsResponse)
def post_catalog_reload(catalog: LocationCatalog = Depends(get_catalog)) -> CatalogStatsResponse:
    """Reload the catalog; on failure the previous catalog keeps serving."""
    try:
        catalog.reload()
    except CatalogLoadError as e:
        raise HTTPException(
            status_code=503,
            detail={"code": "CATALOG_LOAD_ERROR", "message": str(e)},
        ) from e
    stats = catalog.stats()
    return CatalogStatsResponse(count=stats.count, loaded_at=stats.loaded_at)
