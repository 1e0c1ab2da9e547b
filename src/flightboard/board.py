"""Serving query: persisted legs for a window, overlaid with live telemetry."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from flightboard.clock import Clock, SystemClock
from flightboard.config import Settings
from flightboard.fetch.flightradar import FlightSummaryAdapter, LiveAdapter
from flightboard.models import Board, Direction, FlightStatus, ServedLeg
from flightboard.reconcile.identity import time_anchor
from flightboard.reconcile.live import enrich_legs
from flightboard.storage.legs import load_legs
from flightboard.times import local_date

logger = logging.getLogger(__name__)


def _board_time(row: ServedLeg, direction: Direction) -> datetime | None:
    if direction == Direction.DEPARTURE:
        return row.scheduled_departure_utc or row.estimated_departure_utc or time_anchor(row)
    return time_anchor(row)


def _sort_key(direction: Direction):
    def key(row: ServedLeg):
        t = _board_time(row, direction)
        stamp = t.timestamp() if t is not None else float("inf")
        return (row.is_ephemeral, stamp, row.display_code or "")
    return key


def build_board(
    session: Session,
    settings: Settings,
    direction: Direction,
    start: datetime,
    end: datetime,
    live_adapter: LiveAdapter | None = None,
    summary_adapter: FlightSummaryAdapter | None = None,
    clock: Clock | None = None,
    statuses: set[FlightStatus] | None = None,
) -> Board:
    """Best-effort board for ``[start, end)``.

    Provider failures only reduce what is overlaid; they are reported in
    ``Board.errors`` and never raised. Live positions are only requested when
    the window contains the current time.
    """
    clock = clock or SystemClock()
    now = clock.now()
    airport = settings.airport
    errors: list[str] = []

    legs = load_legs(session, airport.codes, direction, start, end)

    positions = []
    if live_adapter is not None and start <= now < end:
        positions, errs = live_adapter.positions(airport, local_date(now, airport.zone), direction)
        errors.extend(errs)

    summaries = []
    if summary_adapter is not None and start <= now:
        summaries, errs = summary_adapter.summaries(airport, start, min(end, now), direction)
        errors.extend(errs)

    rows = enrich_legs(
        legs, positions, summaries, now, airport,
        grace=timedelta(minutes=settings.landed_grace_minutes),
    )
    if statuses:
        rows = [r for r in rows if r.status in statuses]
    rows.sort(key=_sort_key(direction))

    logger.debug(
        "Board %s %s: %d persisted, %d live, %d summaries, %d rows",
        airport.iata, direction.value, len(legs), len(positions), len(summaries), len(rows),
    )
    return Board(
        airport=airport.iata,
        direction=direction.value,
        window_start=start,
        window_end=end,
        generated_at=now,
        rows=rows,
        errors=errors,
    )
