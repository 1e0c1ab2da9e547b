"""Overlay live telemetry onto persisted legs for serving.

Pure function of its inputs; the caller supplies ``now``. Nothing here is
written back to the store.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from flightboard.config import AirportConfig
from flightboard.models import (
    TERMINAL_STATUSES,
    FlightLeg,
    FlightStatus,
    FlightSummary,
    LivePosition,
    Provider,
    ServedLeg,
    StatusSource,
    status_priority,
)
from flightboard.reconcile.identity import time_anchor
from flightboard.times import minutes_between

logger = logging.getLogger(__name__)

LANDED_GRACE = timedelta(hours=1)
# A summary whose takeoff is further than this from STD belongs to another day.
SUMMARY_MATCH_WINDOW = timedelta(hours=12)
# Likewise for a live position whose ETA is this far from the leg's anchor.
LIVE_MATCH_WINDOW = timedelta(hours=12)


def leg_codes(leg: FlightLeg) -> list[str]:
    """Every code a leg may appear under in a live feed, most specific first."""
    codes = [
        leg.callsign,
        leg.flight_number,
        leg.operating_code,
        leg.operating_flight_number,
        *sorted(leg.codeshares),
    ]
    seen: list[str] = []
    for code in codes:
        if code and code not in seen:
            seen.append(code)
    return seen


def assign_positions(
    legs: list[FlightLeg], positions: list[LivePosition], now: datetime
) -> dict[int, LivePosition]:
    """Attach each live position to at most one leg, by index into ``legs``.

    A daily flight can have several legs in a long window that all share its
    codes. The position goes to the leg whose time anchor is closest to the
    live ETA (or ``now`` without one), within LIVE_MATCH_WINDOW; the other legs
    are left to the grace-period rule.
    """
    pairs: list[tuple[timedelta, int, int, int]] = []
    for p, pos in enumerate(positions):
        pos_codes = {c for c in (pos.callsign, pos.flight) if c}
        reference = pos.eta_utc or now
        for i, leg in enumerate(legs):
            anchor = time_anchor(leg)
            if anchor is None:
                continue
            gap = abs(anchor - reference)
            if gap > LIVE_MATCH_WINDOW:
                continue
            codes = leg_codes(leg)
            specificity = next((n for n, c in enumerate(codes) if c in pos_codes), None)
            if specificity is not None:
                pairs.append((gap, specificity, p, i))

    assigned: dict[int, LivePosition] = {}
    used: set[int] = set()
    for _gap, _specificity, p, i in sorted(pairs):
        if p in used or i in assigned:
            continue
        assigned[i] = positions[p]
        used.add(p)
    return assigned


def _promote(leg: ServedLeg, status: FlightStatus, source: StatusSource) -> bool:
    """Set status unless it would revisit a terminal state without higher priority."""
    if leg.status in TERMINAL_STATUSES and status_priority(status) <= status_priority(leg.status):
        return False
    leg.status = status
    leg.status_source = source
    return True


def _closest_summary(
    codes: list[str],
    by_flight: dict[str, list[FlightSummary]],
    reference: datetime | None,
) -> FlightSummary | None:
    if reference is None:
        return None
    best: FlightSummary | None = None
    best_gap: timedelta | None = None
    for code in codes:
        for s in by_flight.get(code, []):
            if s.takeoff_utc is None:
                continue
            gap = abs(s.takeoff_utc - reference)
            if gap > SUMMARY_MATCH_WINDOW:
                continue
            if best_gap is None or gap < best_gap:
                best, best_gap = s, gap
    return best


def _expected_destinations(leg: FlightLeg, airport: AirportConfig) -> set[str]:
    if leg.arrival_code and leg.arrival_code in airport.codes:
        return airport.codes
    return {leg.arrival_code} if leg.arrival_code else set()


def _apply_summary(leg: ServedLeg, summary: FlightSummary) -> bool:
    diverted = (
        summary.actual_destination
        and summary.planned_destination
        and summary.actual_destination != summary.planned_destination
    )
    if summary.takeoff_utc and leg.actual_departure_utc is None:
        leg.actual_departure_utc = summary.takeoff_utc
    if diverted:
        leg.display_destination = summary.actual_destination
        return _promote(leg, FlightStatus.DIVERTED, StatusSource.TELEMETRY)
    if summary.landed_utc:
        if leg.actual_arrival_utc is None:
            leg.actual_arrival_utc = summary.landed_utc
        return _promote(leg, FlightStatus.LANDED, StatusSource.TELEMETRY)
    return False


def _apply_position(leg: ServedLeg, pos: LivePosition, airport: AirportConfig) -> None:
    expected = _expected_destinations(leg, airport)
    if pos.destination_code and expected and pos.destination_code not in expected:
        leg.display_destination = pos.destination_code
        _promote(leg, FlightStatus.DIVERTED, StatusSource.TELEMETRY)
        return

    if pos.eta_utc is None:
        _promote(leg, FlightStatus.TAXI, StatusSource.TELEMETRY)
        return
    if _promote(leg, FlightStatus.ACTIVE, StatusSource.TELEMETRY):
        leg.estimated_arrival_utc = pos.eta_utc
        delay = minutes_between(pos.eta_utc, leg.scheduled_arrival_utc)
        if delay is not None:
            leg.delay_minutes = delay
    if leg.aircraft_registration is None and pos.registration:
        leg.aircraft_registration = pos.registration


def _ephemeral(pos: LivePosition, airport: AirportConfig) -> ServedLeg:
    outbound = pos.origin_code in airport.codes if pos.origin_code else False
    code = pos.callsign or pos.flight
    return ServedLeg(
        leg_key=f"live|{code}",
        source=Provider.LIVE,
        flight_number=pos.flight,
        callsign=pos.callsign,
        airline_name=pos.airline_name,
        aircraft_registration=pos.registration,
        aircraft_type=pos.aircraft_type,
        departure_code=airport.iata if outbound else pos.origin_code,
        arrival_code=pos.destination_code if outbound else airport.iata,
        estimated_arrival_utc=pos.eta_utc,
        status=FlightStatus.ACTIVE if pos.eta_utc else FlightStatus.TAXI,
        status_source=StatusSource.TELEMETRY,
        display_destination=pos.destination_code,
        is_ephemeral=True,
    )


def enrich_legs(
    legs: list[FlightLeg],
    positions: list[LivePosition],
    summaries: list[FlightSummary],
    now: datetime,
    airport: AirportConfig,
    grace: timedelta = LANDED_GRACE,
) -> list[ServedLeg]:
    """Overlay positions and flight summaries onto scheduled legs.

    Per leg, the first matching rule wins:

    1. flight-summary evidence (closest takeoff to STD): landed or diverted
    2. live position: diverted on destination mismatch, else active (taxi
       without an ETA) with the delay recomputed from the live ETA
    3. no live match and the time anchor older than ``now - grace``:
       landed, tagged ``inferred``

    Live positions matching no leg are appended as ephemeral rows.
    """
    assigned = assign_positions(legs, positions, now)

    by_flight: dict[str, list[FlightSummary]] = {}
    for s in summaries:
        by_flight.setdefault(s.flight, []).append(s)

    matched: set[int] = set()
    served: list[ServedLeg] = []
    for i, leg in enumerate(legs):
        row = ServedLeg(**leg.model_dump())
        if row.display_destination is None:
            row.display_destination = row.actual_arrival_code or row.arrival_code
        codes = leg_codes(row)

        pos = assigned.get(i)
        if pos is not None:
            matched.add(id(pos))

        reference = row.scheduled_departure_utc or row.actual_departure_utc
        summary = _closest_summary(codes, by_flight, reference)
        confirmed = summary is not None and _apply_summary(row, summary)
        if not confirmed:
            if pos is not None:
                _apply_position(row, pos, airport)
            elif row.status not in TERMINAL_STATUSES:
                anchor = time_anchor(row)
                if anchor is not None and anchor < now - grace:
                    _promote(row, FlightStatus.LANDED, StatusSource.INFERRED)

        served.append(row)

    extras = [_ephemeral(p, airport) for p in positions if id(p) not in matched]
    if extras:
        logger.debug("%d live flight(s) with no scheduled leg", len(extras))
    return served + extras

