"""Pydantic v2 models for live telemetry and the served board."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from flightboard.models.legs import FlightLeg


class LivePosition(BaseModel):
    """One aircraft currently tracked by the live-position feed."""

    flight: Optional[str] = None
    callsign: Optional[str] = None
    origin_code: Optional[str] = None
    destination_code: Optional[str] = None
    eta_utc: Optional[datetime] = None
    registration: Optional[str] = None
    aircraft_type: Optional[str] = None
    airline_name: Optional[str] = None

    @property
    def codes(self) -> set[str]:
        return {c for c in (self.flight, self.callsign) if c}


class FlightSummary(BaseModel):
    """Flight-summary history entry: takeoff/landing as actually flown."""

    flight: str
    takeoff_utc: Optional[datetime] = None
    landed_utc: Optional[datetime] = None
    planned_destination: Optional[str] = None
    actual_destination: Optional[str] = None


class ServedLeg(FlightLeg):
    """A leg as shown on the board: persisted schedule plus live overlay."""

    id: Optional[int] = None  # DB primary key; None for ephemeral rows
    display_destination: Optional[str] = None
    is_ephemeral: bool = False


class Board(BaseModel):
    """Serving-query result for one airport and time window."""

    airport: str
    direction: str
    window_start: datetime
    window_end: datetime
    generated_at: datetime
    rows: list[ServedLeg] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
