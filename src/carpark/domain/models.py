"""
Domain models (Pydantic).

These types represent the stable "contract" between layers:
- catalog entities (`CarParkLocation`)
- availability readings (`AvailabilityRecord`)
- API/CLI inputs (`NearestQuery`)
- rendered output (`NearestResponse`, `CatalogStatsResponse`)

Validation lives here so a location or reading that exists at all is a valid one.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CarParkLocation(BaseModel):
    """One car park from the information CSV, with WGS84 coordinates."""

    model_config = ConfigDict(frozen=True)

    key: str
    address: str
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)

    car_park_type: str | None = None
    type_of_parking_system: str | None = None
    short_term_parking: str | None = None
    free_parking: str | None = None
    night_parking: str | None = None
    car_park_decks: int = 0
    gantry_height: float | None = None
    car_park_basement: str | None = None

    @field_validator("key", "address")
    @classmethod
    def _require_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must be a non-empty string")
        return value


class AvailabilityRecord(BaseModel):
    """Lot counts reported for one car park at one point in time."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1)
    total_capacity: int = Field(..., ge=0)
    available_capacity: int = Field(..., ge=0)
    observed_at: datetime

    @model_validator(mode="after")
    def _validate_capacity(self) -> "AvailabilityRecord":
        if self.available_capacity > self.total_capacity:
            raise ValueError("available_capacity cannot be greater than total_capacity")
        return self


class NearestQuery(BaseModel):
    """Validated query parameters for a nearest-car-park lookup."""

    latitude: float = Field(..., allow_inf_nan=False)
    longitude: float = Field(..., allow_inf_nan=False)
    page: int = Field(1, ge=1)
    per_page: int = Field(10, ge=1)


class NearestCarPark(BaseModel):
    address: str
    latitude: float
    longitude: float
    total_lots: int
    available_lots: int


class Pagination(BaseModel):
    total_count: int
    page: int
    per_page: int
    total_pages: int


class NearestResponse(BaseModel):
    """Response body for `GET /carparks/nearest`."""

    data: list[NearestCarPark]
    pagination: Pagination
    timestamp: datetime


class CatalogStatsResponse(BaseModel):
    count: int
    loaded_at: datetime | None = None
