"""SQLAlchemy ORM models for persistent tables."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class FlightLegRow(Base):
    """One canonical flight leg. Never deleted; stale rows age out of the window."""

    __tablename__ = "flight_legs"
    __table_args__ = (
        UniqueConstraint("ident", "anchor_utc", "dep_code", name="uq_flight_legs_natural_key"),
        Index("ix_flight_legs_arr_sta", "arr_code", "scheduled_arrival_utc"),
        Index("ix_flight_legs_dep_std", "dep_code", "scheduled_departure_utc"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # natural key
    ident: Mapped[str] = mapped_column(String(80))
    anchor_utc: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    dep_code: Mapped[str] = mapped_column(String(8), default="")

    flight_number: Mapped[str | None] = mapped_column(String(16), nullable=True)
    callsign: Mapped[str | None] = mapped_column(String(16), nullable=True)
    operating_code: Mapped[str | None] = mapped_column(String(16), nullable=True)
    operating_flight_number: Mapped[str | None] = mapped_column(String(16), nullable=True)
    airline: Mapped[str | None] = mapped_column(String(128), nullable=True)
    aircraft_reg: Mapped[str | None] = mapped_column(String(16), nullable=True)
    aircraft_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    arr_code: Mapped[str | None] = mapped_column(String(8), nullable=True)
    actual_arr_code: Mapped[str | None] = mapped_column(String(8), nullable=True)

    scheduled_departure_utc: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_departure_utc: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_departure_utc: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scheduled_arrival_utc: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_arrival_utc: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_arrival_utc: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delay_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(String(16), default="scheduled")
    status_source: Mapped[str] = mapped_column(String(16), default="provider")
    source: Mapped[str] = mapped_column(String(32), default="")
    codeshares_json: Mapped[str] = mapped_column(Text, default="[]")
    is_codeshare: Mapped[bool] = mapped_column(Boolean, default=False)
    raw_hash: Mapped[str] = mapped_column(String(64), default="")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
