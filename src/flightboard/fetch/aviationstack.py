"""AviationStack adapters: ``timetable`` (today) and ``flights`` (by flight_date).

The two endpoints describe the same flights with different key names, so each
adapter carries its own frozen ``FieldMap``. Normalization is shared.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta
from zoneinfo import ZoneInfo

from flightboard.config import AirportConfig, Settings
from flightboard.fetch import FetchResult, HttpClient, content_hash, dig, fetch_pages
from flightboard.fetch.registry import register
from flightboard.models import (
    Direction,
    FlightStatus,
    LegRecord,
    Provider,
    clean_code,
    normalize_status,
)
from flightboard.times import minutes_between, resolve_timezone, to_utc

logger = logging.getLogger(__name__)

Path = tuple[str, ...]


@dataclass(frozen=True)
class SegmentFields:
    """Key paths for one end (departure or arrival) of a leg."""

    iata: Path
    icao: Path
    scheduled: Path
    estimated: Path
    actual: Path
    delay: Path
    timezone: Path = ()


@dataclass(frozen=True)
class FieldMap:
    flight_iata: Path
    flight_icao: Path
    operating_iata: Path  # set only on codeshare (marketing) rows
    operating_icao: Path
    airline_name: Path
    status: Path
    registration: Path
    aircraft_type: tuple[Path, ...]
    departure: SegmentFields
    arrival: SegmentFields


TIMETABLE_FIELDS = FieldMap(
    flight_iata=("flight", "iataNumber"),
    flight_icao=("flight", "icaoNumber"),
    operating_iata=("codeshared", "flight", "iataNumber"),
    operating_icao=("codeshared", "flight", "icaoNumber"),
    airline_name=("airline", "name"),
    status=("status",),
    registration=(),
    aircraft_type=(),
    departure=SegmentFields(
        iata=("departure", "iataCode"),
        icao=("departure", "icaoCode"),
        scheduled=("departure", "scheduledTime"),
        estimated=("departure", "estimatedTime"),
        actual=("departure", "actualTime"),
        delay=("departure", "delay"),
    ),
    arrival=SegmentFields(
        iata=("arrival", "iataCode"),
        icao=("arrival", "icaoCode"),
        scheduled=("arrival", "scheduledTime"),
        estimated=("arrival", "estimatedTime"),
        actual=("arrival", "actualTime"),
        delay=("arrival", "delay"),
    ),
)

FLIGHTS_FIELDS = FieldMap(
    flight_iata=("flight", "iata"),
    flight_icao=("flight", "icao"),
    operating_iata=("flight", "codeshared", "flight_iata"),
    operating_icao=("flight", "codeshared", "flight_icao"),
    airline_name=("airline", "name"),
    status=("flight_status",),
    registration=("aircraft", "registration"),
    aircraft_type=(("aircraft", "icao"), ("aircraft", "iata")),
    departure=SegmentFields(
        iata=("departure", "iata"),
        icao=("departure", "icao"),
        scheduled=("departure", "scheduled"),
        estimated=("departure", "estimated"),
        actual=("departure", "actual"),
        delay=("departure", "delay"),
        timezone=("departure", "timezone"),
    ),
    arrival=SegmentFields(
        iata=("arrival", "iata"),
        icao=("arrival", "icao"),
        scheduled=("arrival", "scheduled"),
        estimated=("arrival", "estimated"),
        actual=("arrival", "actual"),
        delay=("arrival", "delay"),
        timezone=("arrival", "timezone"),
    ),
)


def _to_int(value: object) -> int | None:
    if value is None or isinstance(value, bool) or value == "":
        return None
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return None


def pick_code(iata: object, icao: object) -> str | None:
    """Prefer the IATA code, fall back to ICAO."""
    return clean_code(iata) or clean_code(icao)


class AviationStackAdapter:
    """Shared fetch/normalize for the AviationStack endpoints."""

    name = ""
    provider: Provider
    endpoint = ""
    fields: FieldMap

    def __init__(
        self,
        settings: Settings,
        client: HttpClient | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.client = client or HttpClient(self.name, timeout=settings.fetch.timeout_s)
        self.sleep = sleep

    # --- fetch ---

    def supports(self, day: date, today: date) -> bool:
        raise NotImplementedError

    def _params(self, airport: AirportConfig, day: date, direction: Direction) -> dict:
        raise NotImplementedError

    def fetch(self, airport: AirportConfig, day: date, direction: Direction) -> FetchResult:
        label = day.isoformat()
        if not self.settings.aviationstack_key:
            logger.warning("%s: AVIATIONSTACK_KEY not set, skipping %s", self.name, label)
            return FetchResult(errors=[self.client.error(label, "missing_credentials")])

        params = {"access_key": self.settings.aviationstack_key, **self._params(airport, day, direction)}
        url = f"{self.settings.aviationstack_base.rstrip('/')}/{self.endpoint}"
        fetch = self.settings.fetch
        result = fetch_pages(
            self.client, url, params,
            page_size=fetch.page_size,
            max_pages=fetch.max_pages,
            delay_s=fetch.page_delay_s,
            label=label,
            sleep=self.sleep,
        )
        logger.info(
            "%s %s %s: %d rows in %d page(s)",
            self.name, airport.iata, label, len(result.rows), result.pages,
        )
        return result

    # --- normalize ---

    def _zone(self, code: str | None, declared: object, airport: AirportConfig) -> ZoneInfo:
        if code and code in airport.codes:
            return airport.zone
        return resolve_timezone(declared) or self.settings.zone_for(code) or airport.zone

    def normalize(
        self, row: object, airport: AirportConfig, direction: Direction
    ) -> LegRecord | None:
        """Map one raw row onto a LegRecord; None when it has no flight identity."""
        if not isinstance(row, dict):
            return None
        f = self.fields
        flight_number = clean_code(dig(row, f.flight_iata))
        callsign = clean_code(dig(row, f.flight_icao))
        operating_iata = clean_code(dig(row, f.operating_iata))
        operating_code = clean_code(dig(row, f.operating_icao)) or operating_iata
        if not (flight_number or callsign or operating_code):
            return None

        dep_code = pick_code(dig(row, f.departure.iata), dig(row, f.departure.icao))
        arr_code = pick_code(dig(row, f.arrival.iata), dig(row, f.arrival.icao))
        actual_arr = None
        if direction == Direction.DEPARTURE:
            dep_code = airport.iata
        else:
            if arr_code and arr_code not in airport.codes:
                actual_arr = arr_code
            arr_code = airport.iata

        dep_tz = self._zone(dep_code, dig(row, f.departure.timezone), airport)
        arr_tz = self._zone(arr_code, dig(row, f.arrival.timezone), airport)

        std = to_utc(dig(row, f.departure.scheduled), dep_tz)
        etd = to_utc(dig(row, f.departure.estimated), dep_tz)
        atd = to_utc(dig(row, f.departure.actual), dep_tz)
        sta = to_utc(dig(row, f.arrival.scheduled), arr_tz)
        eta = to_utc(dig(row, f.arrival.estimated), arr_tz)
        ata = to_utc(dig(row, f.arrival.actual), arr_tz)

        if direction == Direction.DEPARTURE:
            delay = _to_int(dig(row, f.departure.delay))
            if delay is None:
                delay = minutes_between(etd, std)
            estimate = etd
        else:
            delay = _to_int(dig(row, f.arrival.delay))
            if delay is None:
                delay = minutes_between(eta, sta)
            if delay is None:
                delay = minutes_between(ata, sta)
            estimate = eta

        status = normalize_status(dig(row, f.status))
        if status in (FlightStatus.ACTIVE, FlightStatus.EN_ROUTE) and estimate is None:
            status = FlightStatus.TAXI

        aircraft_type = None
        for path in f.aircraft_type:
            aircraft_type = clean_code(dig(row, path))
            if aircraft_type:
                break

        airline = str(dig(row, f.airline_name) or "").strip() or None
        return LegRecord(
            source=self.provider,
            flight_number=flight_number,
            callsign=callsign,
            operating_code=operating_code,
            operating_flight_number=operating_iata,
            airline_name=airline,
            aircraft_registration=clean_code(dig(row, f.registration)),
            aircraft_type=aircraft_type,
            departure_code=dep_code,
            arrival_code=arr_code,
            actual_arrival_code=actual_arr,
            scheduled_departure_utc=std,
            estimated_departure_utc=etd,
            actual_departure_utc=atd,
            scheduled_arrival_utc=sta,
            estimated_arrival_utc=eta,
            actual_arrival_utc=ata,
            delay_minutes=delay,
            status=status,
            is_codeshare=operating_code is not None,
            raw_hash=content_hash(row),
        )


@register
class TimetableAdapter(AviationStackAdapter):
    """Real-time timetable for the airport's current local day."""

    name = "timetable"
    provider = Provider.TIMETABLE
    endpoint = "timetable"
    fields = TIMETABLE_FIELDS

    def supports(self, day: date, today: date) -> bool:
        return day == today

    def _params(self, airport: AirportConfig, day: date, direction: Direction) -> dict:
        kind = "departure" if direction == Direction.DEPARTURE else "arrival"
        return {"iataCode": airport.iata, "type": kind}


@register
class FlightSearchAdapter(AviationStackAdapter):
    """Flight search by ``flight_date``: past days and up to ``max_days`` ahead."""

    name = "flight_search"
    provider = Provider.FLIGHT_SEARCH
    endpoint = "flights"
    fields = FLIGHTS_FIELDS

    def supports(self, day: date, today: date) -> bool:
        return day - today <= timedelta(days=self.settings.max_days)

    def _params(self, airport: AirportConfig, day: date, direction: Direction) -> dict:
        key = "dep_iata" if direction == Direction.DEPARTURE else "arr_iata"
        return {key: airport.iata, "flight_date": day.isoformat()}
