from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from carpark.core.time import utcnow


class Base(DeclarativeBase):
    pass


class CarParkAvailability(Base):
    """One lot-count reading for a car park; many per car park over time."""

    __tablename__ = "car_park_availability"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    carpark_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    total_lots: Mapped[int] = mapped_column(Integer, nullable=False)
    available_lots: Mapped[int] = mapped_column(Integer, nullable=False)

    # Stored as UTC.
    update_datetime: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("carpark_number", "update_datetime", name="uq_availability_carpark_datetime"),
        CheckConstraint("total_lots >= 0", name="ck_availability_total_lots_non_negative"),
        CheckConstraint("available_lots >= 0", name="ck_availability_available_lots_non_negative"),
        CheckConstraint("available_lots <= total_lots", name="ck_availability_available_within_total"),
    )
