"""Flightradar24 API adapters: live positions and flight summaries.

Both feed live enrichment at serving time and are never persisted, so
neither is registered as a schedule provider.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from flightboard.config import AirportConfig, Settings
from flightboard.fetch import FetchResult, HttpClient
from flightboard.models import Direction, FlightSummary, LivePosition, clean_code
from flightboard.times import to_utc

logger = logging.getLogger(__name__)

LIVE_ENDPOINT = "/live/flight-positions/full"
SUMMARY_ENDPOINT = "/flight-summary/full"
SUMMARY_LIMIT = 2000


def _airports_filter(airport: AirportConfig, direction: Direction) -> str:
    if direction == Direction.DEPARTURE:
        return f"outbound:{airport.iata}"
    if direction == Direction.BOTH:
        return f"both:{airport.iata}"
    return f"inbound:{airport.iata}"


class _Fr24Adapter:
    name = ""

    def __init__(self, settings: Settings, client: HttpClient | None = None):
        self.settings = settings
        self.client = client or HttpClient(self.name, timeout=settings.fetch.timeout_s)

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.settings.fr24_api_token}",
            "Accept": "application/json",
            "Accept-Version": self.settings.fr24_api_version,
        }

    def _get(self, endpoint: str, params: dict, label: str) -> FetchResult:
        if not self.settings.fr24_api_token:
            logger.warning("%s: FR24_API_TOKEN not set, skipping %s", self.name, label)
            return FetchResult(errors=[self.client.error(label, "missing_credentials")])

        url = f"{self.settings.fr24_api_base.rstrip('/')}{endpoint}"
        data, err = self.client.get_json(url, params=params, headers=self.headers, label=label)
        if err:
            return FetchResult(errors=[err], pages=1)
        rows = data.get("data") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            return FetchResult(errors=[self.client.error(label, "malformed_page")], pages=1)
        return FetchResult(rows=[r for r in rows if isinstance(r, dict)], pages=1)


class LiveAdapter(_Fr24Adapter):
    """Aircraft currently airborne to/from the airport."""

    name = "live"

    def fetch(self, airport: AirportConfig, day: date, direction: Direction) -> FetchResult:
        params = {"airports": _airports_filter(airport, direction)}
        return self._get(LIVE_ENDPOINT, params, day.isoformat())

    def position(self, row: dict) -> LivePosition | None:
        flight = clean_code(row.get("flight"))
        callsign = clean_code(row.get("callsign"))
        if not (flight or callsign):
            return None
        return LivePosition(
            flight=flight,
            callsign=callsign,
            origin_code=clean_code(row.get("orig_iata")) or clean_code(row.get("orig_icao")),
            destination_code=clean_code(row.get("dest_iata")) or clean_code(row.get("dest_icao")),
            eta_utc=to_utc(row.get("eta"), None),
            registration=clean_code(row.get("reg")),
            aircraft_type=clean_code(row.get("type")),
            airline_name=clean_code(row.get("operating_as")) or clean_code(row.get("painted_as")),
        )

    def positions(
        self, airport: AirportConfig, today: date, direction: Direction
    ) -> tuple[list[LivePosition], list[str]]:
        result = self.fetch(airport, today, direction)
        found = [p for p in (self.position(r) for r in result.rows) if p is not None]
        return found, result.errors


class FlightSummaryAdapter(_Fr24Adapter):
    """Takeoff/landing history for flights in a time window."""

    name = "flight_summary"

    def fetch_window(
        self, airport: AirportConfig, start: datetime, end: datetime, direction: Direction
    ) -> FetchResult:
        params = {
            "airports": _airports_filter(airport, direction),
            "flight_datetime_from": start.strftime("%Y-%m-%dT%H:%M:00"),
            "flight_datetime_to": end.strftime("%Y-%m-%dT%H:%M:00"),
            "limit": SUMMARY_LIMIT,
            "sort": "asc",
        }
        return self._get(SUMMARY_ENDPOINT, params, start.date().isoformat())

    def summary(self, row: dict) -> FlightSummary | None:
        flight = clean_code(row.get("flight")) or clean_code(row.get("callsign"))
        if not flight:
            return None
        return FlightSummary(
            flight=flight,
            takeoff_utc=to_utc(row.get("datetime_takeoff"), None),
            landed_utc=to_utc(row.get("datetime_landed"), None),
            planned_destination=clean_code(row.get("dest_iata")) or clean_code(row.get("dest_icao")),
            actual_destination=(
                clean_code(row.get("dest_iata_actual")) or clean_code(row.get("dest_icao_actual"))
            ),
        )

    def summaries(
        self, airport: AirportConfig, start: datetime, end: datetime, direction: Direction
    ) -> tuple[list[FlightSummary], list[str]]:
        result = self.fetch_window(airport, start, end, direction)
        found = [s for s in (self.summary(r) for r in result.rows) if s is not None]
        return found, result.errors
