"""Pydantic v2 models for flight legs (intermediate and canonical records)."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class FlightStatus(str, Enum):
    SCHEDULED = "scheduled"
    DELAYED = "delayed"
    TAXI = "taxi"
    ACTIVE = "active"
    EN_ROUTE = "en-route"
    INCIDENT = "incident"
    DIVERTED = "diverted"
    LANDED = "landed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class Direction(str, Enum):
    ARRIVAL = "arrival"
    DEPARTURE = "departure"
    BOTH = "both"


class StatusSource(str, Enum):
    """Provenance of a leg's status."""

    PROVIDER = "provider"  # reported by a schedule feed
    TELEMETRY = "telemetry"  # confirmed by a live or flight-summary feed
    INFERRED = "inferred"  # time-based guess, may be wrong


class Provider(str, Enum):
    TIMETABLE = "timetable"
    FLIGHT_SEARCH = "flight_search"
    LIVE = "live"
    FLIGHT_SUMMARY = "flight_summary"


STATUS_PRIORITY: dict[FlightStatus, int] = {
    FlightStatus.LANDED: 6,
    FlightStatus.DIVERTED: 5,
    FlightStatus.INCIDENT: 4,
    FlightStatus.ACTIVE: 3,
    FlightStatus.EN_ROUTE: 3,
    FlightStatus.TAXI: 2,
    FlightStatus.DELAYED: 1,
    FlightStatus.SCHEDULED: 1,
    FlightStatus.CANCELLED: 0,
    FlightStatus.UNKNOWN: 0,
}

TERMINAL_STATUSES = frozenset({
    FlightStatus.LANDED,
    FlightStatus.DIVERTED,
    FlightStatus.CANCELLED,
    FlightStatus.INCIDENT,
})

_STATUS_VOCABULARY: dict[str, FlightStatus] = {
    "active": FlightStatus.ACTIVE,
    "airborne": FlightStatus.EN_ROUTE,
    "enroute": FlightStatus.EN_ROUTE,
    "en-route": FlightStatus.EN_ROUTE,
    "landed": FlightStatus.LANDED,
    "arrived": FlightStatus.LANDED,
    "diverted": FlightStatus.DIVERTED,
    "alternate": FlightStatus.DIVERTED,
    "rerouted": FlightStatus.DIVERTED,
    "cancelled": FlightStatus.CANCELLED,
    "canceled": FlightStatus.CANCELLED,
    "cncl": FlightStatus.CANCELLED,
    "cancld": FlightStatus.CANCELLED,
    "delayed": FlightStatus.DELAYED,
    "delay": FlightStatus.DELAYED,
    "taxi": FlightStatus.TAXI,
    "scheduled": FlightStatus.SCHEDULED,
    "sched": FlightStatus.SCHEDULED,
    "incident": FlightStatus.INCIDENT,
    "unknown": FlightStatus.UNKNOWN,
}


def normalize_status(raw: object) -> FlightStatus:
    """Map a provider status string onto FlightStatus.

    Empty means the provider has nothing to say beyond the schedule;
    unrecognised values become UNKNOWN rather than guessing.
    """
    text = str(raw or "").strip().lower()
    if not text:
        return FlightStatus.SCHEDULED
    return _STATUS_VOCABULARY.get(text, FlightStatus.UNKNOWN)


def status_priority(status: FlightStatus) -> int:
    return STATUS_PRIORITY.get(status, 0)


def clean_code(value: object) -> str | None:
    """Upper-case and trim a flight/airport code; empty becomes None."""
    if value is None:
        return None
    text = str(value).strip().upper()
    return text or None


class LegRecord(BaseModel):
    """One provider's view of a flight leg, after field mapping and UTC conversion."""

    source: Provider
    flight_number: Optional[str] = None  # IATA-style, e.g. AM180
    callsign: Optional[str] = None  # ICAO-style, e.g. AMX180
    operating_code: Optional[str] = None  # operating flight given by a codeshare row, ICAO preferred
    operating_flight_number: Optional[str] = None  # same flight, IATA-style
    airline_name: Optional[str] = None
    aircraft_registration: Optional[str] = None
    aircraft_type: Optional[str] = None
    departure_code: Optional[str] = None
    arrival_code: Optional[str] = None
    actual_arrival_code: Optional[str] = None  # where it really went, display only
    scheduled_departure_utc: Optional[datetime] = None
    estimated_departure_utc: Optional[datetime] = None
    actual_departure_utc: Optional[datetime] = None
    scheduled_arrival_utc: Optional[datetime] = None
    estimated_arrival_utc: Optional[datetime] = None
    actual_arrival_utc: Optional[datetime] = None
    delay_minutes: Optional[int] = None  # estimated - scheduled
    status: FlightStatus = FlightStatus.SCHEDULED
    status_source: StatusSource = StatusSource.PROVIDER
    codeshares: set[str] = Field(default_factory=set)
    is_codeshare: bool = False
    raw_hash: str = ""

    @property
    def own_codes(self) -> set[str]:
        """Codes this record is itself reported under."""
        return {c for c in (self.flight_number, self.callsign) if c}

    @property
    def operating_codes(self) -> set[str]:
        """Codes of the operating flight a codeshare row points at."""
        return {c for c in (self.operating_code, self.operating_flight_number) if c}

    @property
    def display_code(self) -> str | None:
        return self.flight_number or self.callsign


class FlightLeg(LegRecord):
    """Canonical record for one physical leg, produced by the merger."""

    leg_key: str

    @model_validator(mode="after")
    def _strip_own_codes(self) -> FlightLeg:
        own = self.own_codes | self.operating_codes
        if self.codeshares & own:
            self.codeshares = self.codeshares - own
        return self
