"""Flight leg storage: natural-key upsert and window queries."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flightboard.db.models import FlightLegRow
from flightboard.models import (
    TERMINAL_STATUSES,
    Direction,
    FlightLeg,
    FlightStatus,
    ServedLeg,
    status_priority,
)
from flightboard.reconcile.identity import HASH_PREFIX, format_key, match_codes, natural_key
from flightboard.times import ensure_utc

logger = logging.getLogger(__name__)


class UpsertOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"


# (FlightLeg attribute, row column) for fields refreshed on every sighting.
MUTABLE_COLUMNS = (
    ("airline_name", "airline"),
    ("aircraft_registration", "aircraft_reg"),
    ("aircraft_type", "aircraft_type"),
    ("arrival_code", "arr_code"),
    ("actual_arrival_code", "actual_arr_code"),
    ("scheduled_departure_utc", "scheduled_departure_utc"),
    ("estimated_departure_utc", "estimated_departure_utc"),
    ("actual_departure_utc", "actual_departure_utc"),
    ("scheduled_arrival_utc", "scheduled_arrival_utc"),
    ("estimated_arrival_utc", "estimated_arrival_utc"),
    ("actual_arrival_utc", "actual_arrival_utc"),
    ("delay_minutes", "delay_minutes"),
)

CODE_COLUMNS = (
    ("flight_number", "flight_number"),
    ("callsign", "callsign"),
    ("operating_code", "operating_code"),
    ("operating_flight_number", "operating_flight_number"),
)

# Columns that may hold a code the leg is known by.
ALIAS_COLUMNS = ("ident",) + tuple(col for _, col in CODE_COLUMNS)


# --- Conversion helpers ---


def _leg_to_row(leg: FlightLeg) -> FlightLegRow:
    ident, anchor, dep = natural_key(leg)
    row = FlightLegRow(ident=ident, anchor_utc=anchor, dep_code=dep)
    for attr, col in CODE_COLUMNS + MUTABLE_COLUMNS:
        setattr(row, col, getattr(leg, attr))
    row.status = leg.status.value
    row.status_source = leg.status_source.value
    row.source = leg.source.value
    row.codeshares_json = json.dumps(sorted(leg.codeshares))
    row.is_codeshare = leg.is_codeshare
    row.raw_hash = leg.raw_hash
    return row


def _row_to_leg(row: FlightLegRow) -> ServedLeg:
    anchor = ensure_utc(row.anchor_utc)
    values = {attr: getattr(row, col) for attr, col in CODE_COLUMNS + MUTABLE_COLUMNS}
    for name, value in values.items():
        if isinstance(value, datetime):
            values[name] = ensure_utc(value)
    return ServedLeg(
        id=row.id,
        leg_key=format_key(row.ident, anchor, row.dep_code),
        departure_code=row.dep_code or None,
        status=FlightStatus(row.status),
        status_source=row.status_source,
        source=row.source,
        codeshares=set(json.loads(row.codeshares_json or "[]")),
        is_codeshare=row.is_codeshare,
        raw_hash=row.raw_hash,
        **values,
    )


def _codeshares(row: FlightLegRow) -> set[str]:
    return set(json.loads(row.codeshares_json or "[]"))


# --- Upsert ---


def find_leg_row(
    session: Session,
    ident: str,
    anchor: datetime | None,
    dep_code: str,
    codes: Iterable[str] = (),
) -> FlightLegRow | None:
    """Row stored under the natural key, else one of the same leg under another code.

    An earlier cycle may have keyed the leg by a different code style (IATA
    number instead of ICAO callsign, or a codeshare's operating pointer), so a
    miss falls back to any row with the same anchor and departure that carries
    one of ``codes``.
    """
    anchor_clause = (
        FlightLegRow.anchor_utc.is_(None) if anchor is None else FlightLegRow.anchor_utc == anchor
    )
    stmt = select(FlightLegRow).where(
        FlightLegRow.ident == ident,
        FlightLegRow.dep_code == dep_code,
        anchor_clause,
    )
    row = session.scalars(stmt).first()
    codes = sorted(set(codes))
    if row is not None or not codes or ident.startswith(HASH_PREFIX):
        return row

    stmt = (
        select(FlightLegRow)
        .where(
            FlightLegRow.dep_code == dep_code,
            anchor_clause,
            or_(*(getattr(FlightLegRow, col).in_(codes) for col in ALIAS_COLUMNS)),
        )
        .order_by(FlightLegRow.is_codeshare, FlightLegRow.id)
    )
    return session.scalars(stmt).first()


def _update_row(row: FlightLegRow, leg: FlightLeg) -> None:
    """Refresh mutable fields without losing what is already known.

    Absent values never overwrite present ones, codeshares only grow, and a
    terminal status is only replaced by one of higher priority. A marketing
    row only fills gaps in an operating row and joins its codeshares.
    """
    row_display = row.flight_number or row.callsign
    marketing_only = leg.is_codeshare and (
        not row.is_codeshare or leg.display_code != row_display
    )

    for attr, col in MUTABLE_COLUMNS:
        value = getattr(leg, attr)
        if value is None:
            continue
        if marketing_only and (attr == "airline_name" or getattr(row, col) is not None):
            continue
        setattr(row, col, value)

    extra: set[str | None] = set()
    if row.is_codeshare and not leg.is_codeshare:
        # the operating record's codes win; the marketing code becomes a codeshare
        extra.add(row_display)
        for attr, col in CODE_COLUMNS:
            setattr(row, col, getattr(leg, attr))
        row.is_codeshare = False
    elif marketing_only:
        extra.add(leg.display_code)
    else:
        for attr, col in CODE_COLUMNS:
            value = getattr(leg, attr)
            if value is not None:
                setattr(row, col, value)

    own = {getattr(row, col) for _, col in CODE_COLUMNS if getattr(row, col)}
    merged = _codeshares(row) | leg.codeshares | {c for c in extra if c}
    row.codeshares_json = json.dumps(sorted(merged - own))

    current = FlightStatus(row.status)
    demotes = current in TERMINAL_STATUSES and status_priority(leg.status) <= status_priority(current)
    if leg.status != current and not demotes:
        row.status = leg.status.value
        row.status_source = leg.status_source.value
        row.source = leg.source.value
    if leg.raw_hash:
        row.raw_hash = leg.raw_hash
    row.updated_at = datetime.now(timezone.utc)


def upsert_leg(session: Session, leg: FlightLeg) -> UpsertOutcome:
    """Insert or update one leg under its natural key.

    An insert that collides with a concurrent writer's row is retried as an
    update of that row.
    """
    ident, anchor, dep = natural_key(leg)
    codes = match_codes(leg) | leg.codeshares
    row = find_leg_row(session, ident, anchor, dep, codes)
    if row is not None:
        _update_row(row, leg)
        session.flush()
        return UpsertOutcome.UPDATED

    try:
        with session.begin_nested():
            session.add(_leg_to_row(leg))
    except IntegrityError:
        row = find_leg_row(session, ident, anchor, dep, codes)
        if row is None:
            raise
        logger.info("Insert raced for %s, updating instead", leg.leg_key)
        _update_row(row, leg)
        session.flush()
        return UpsertOutcome.UPDATED
    return UpsertOutcome.INSERTED


# --- Queries ---


def _within(column, start: datetime, end: datetime):
    return and_(column >= start, column < end)


def load_legs(
    session: Session,
    codes: set[str],
    direction: Direction,
    start: datetime,
    end: datetime,
) -> list[ServedLeg]:
    """Persisted legs touching the airport within ``[start, end)``.

    Arrivals match on any of STA/ETA/ATA in the window, departures on any of
    STD/ETD/ATD.
    """
    arrivals = and_(
        FlightLegRow.arr_code.in_(codes),
        or_(
            _within(FlightLegRow.scheduled_arrival_utc, start, end),
            _within(FlightLegRow.estimated_arrival_utc, start, end),
            _within(FlightLegRow.actual_arrival_utc, start, end),
        ),
    )
    departures = and_(
        FlightLegRow.dep_code.in_(codes),
        or_(
            _within(FlightLegRow.scheduled_departure_utc, start, end),
            _within(FlightLegRow.estimated_departure_utc, start, end),
            _within(FlightLegRow.actual_departure_utc, start, end),
        ),
    )
    if direction == Direction.ARRIVAL:
        clause = arrivals
    elif direction == Direction.DEPARTURE:
        clause = departures
    else:
        clause = or_(arrivals, departures)

    rows = session.scalars(select(FlightLegRow).where(clause).order_by(FlightLegRow.id)).all()
    return [_row_to_leg(r) for r in rows]


def load_leg(session: Session, leg_id: int) -> ServedLeg | None:
    row = session.get(FlightLegRow, leg_id)
    return _row_to_leg(row) if row else None


def count_legs(session: Session) -> int:
    return session.scalar(select(func.count()).select_from(FlightLegRow)) or 0
