"""Ingestion cycle: shared by CLI and API.

Orchestrates: fetch → normalize → classify → merge → upsert.
Returns structured results without printing or exiting.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from flightboard.clock import Clock, SystemClock
from flightboard.config import Settings
from flightboard.db.engine import StoreUnavailableError, open_store
from flightboard.fetch import SourceAdapter, build_adapters
from flightboard.models import Direction, FlightLeg, LegRecord
from flightboard.reconcile.identity import time_anchor
from flightboard.reconcile.merge import merge_records
from flightboard.storage.legs import UpsertOutcome, upsert_leg
from flightboard.times import local_date, local_day_bounds

logger = logging.getLogger(__name__)


class SkipReason(str, Enum):
    NO_FLIGHT_IDENTITY = "no_flight_identity"
    NO_TIME_ANCHOR = "no_time_anchor"
    OUT_OF_DATE_RANGE = "out_of_date_range"
    CODESHARE_MERGED_AWAY = "codeshare_merged_away"


@dataclass
class CycleOptions:
    """Options controlling one ingestion cycle."""

    days: int = 1
    dry_run: bool = False
    use_cache: bool = True  # False sends Cache-Control: no-cache upstream
    direction: Direction = Direction.ARRIVAL


@dataclass
class DayStats:
    fetched: int = 0
    normalized: int = 0
    in_range: int = 0
    errors: int = 0


@dataclass
class CycleStats:
    """Per-cycle counters. Every fetched row ends up merged or under one skip reason."""

    airport: str = ""
    timezone: str = ""
    direction: str = Direction.ARRIVAL.value
    dates: list[str] = field(default_factory=list)
    fetched: int = 0
    normalized: int = 0
    candidates: int = 0
    merged: int = 0
    inserted: int = 0
    updated: int = 0
    write_errors: int = 0
    skipped: dict[str, int] = field(
        default_factory=lambda: {reason.value: 0 for reason in SkipReason}
    )
    per_date: dict[str, DayStats] = field(default_factory=dict)
    provider_errors: list[str] = field(default_factory=list)

    def skip(self, reason: SkipReason, n: int = 1) -> None:
        self.skipped[reason.value] += n

    def accounting_errors(self, persisted: bool = True) -> list[str]:
        """Counter identities that do not hold (empty when the books balance)."""
        s = self.skipped
        checks = [
            ("fetched", self.fetched, self.normalized + s[SkipReason.NO_FLIGHT_IDENTITY.value]),
            (
                "normalized",
                self.normalized,
                self.candidates
                + s[SkipReason.NO_TIME_ANCHOR.value]
                + s[SkipReason.OUT_OF_DATE_RANGE.value],
            ),
            ("candidates", self.candidates, self.merged + s[SkipReason.CODESHARE_MERGED_AWAY.value]),
        ]
        if persisted:
            checks.append(("merged", self.merged, self.inserted + self.updated + self.write_errors))
        return [f"{name}={lhs} expected {rhs}" for name, lhs, rhs in checks if lhs != rhs]

    def summary_line(self) -> str:
        if not self.dates:
            span = "-"
        elif len(self.dates) == 1:
            span = self.dates[0]
        else:
            span = f"{self.dates[0]}..{self.dates[-1]}"
        skipped = ",".join(f"{k}:{v}" for k, v in self.skipped.items())
        per_date = ";".join(
            f"{d}:{ds.fetched}/{ds.normalized}/{ds.in_range}" + (f"/e{ds.errors}" if ds.errors else "")
            for d, ds in self.per_date.items()
        )
        errors = ",".join(self.provider_errors) or "none"
        return (
            f"[ingest] airport={self.airport} tz={self.timezone} dir={self.direction} dates={span} "
            f"fetched={self.fetched} normalized={self.normalized} merged={self.merged} "
            f"inserted={self.inserted} updated={self.updated} write_errors={self.write_errors} "
            f"codeshare_merged={self.skipped[SkipReason.CODESHARE_MERGED_AWAY.value]} "
            f"skipped={skipped} per_date={per_date} errors={errors}"
        )


@dataclass
class CycleResult:
    stats: CycleStats
    legs: list[FlightLeg] = field(default_factory=list)
    dry_run: bool = False


def in_local_day(rec: LegRecord, start: datetime, end: datetime, direction: Direction) -> bool:
    """True if any scheduled/estimated/actual time on the airport's side falls in [start, end)."""
    if direction == Direction.DEPARTURE:
        times = (rec.scheduled_departure_utc, rec.estimated_departure_utc, rec.actual_departure_utc)
    else:
        times = (rec.scheduled_arrival_utc, rec.estimated_arrival_utc, rec.actual_arrival_utc)
    return any(t is not None and start <= t < end for t in times)


def _collect(
    settings: Settings,
    adapters: list[SourceAdapter],
    days: list[date],
    today: date,
    direction: Direction,
    stats: CycleStats,
) -> list[LegRecord]:
    airport = settings.airport
    candidates: list[LegRecord] = []
    for day in days:
        day_stats = stats.per_date.setdefault(day.isoformat(), DayStats())
        start, end = local_day_bounds(day, airport.zone)

        for adapter in adapters:
            if not adapter.supports(day, today):
                logger.debug("%s does not cover %s", adapter.name, day)
                continue
            result = adapter.fetch(airport, day, direction)
            stats.provider_errors.extend(result.errors)
            day_stats.errors += len(result.errors)

            for row in result.rows:
                stats.fetched += 1
                day_stats.fetched += 1
                rec = adapter.normalize(row, airport, direction)
                if rec is None:
                    stats.skip(SkipReason.NO_FLIGHT_IDENTITY)
                    logger.debug("%s %s: row without flight identity", adapter.name, day)
                    continue
                stats.normalized += 1
                day_stats.normalized += 1

                if time_anchor(rec) is None:
                    stats.skip(SkipReason.NO_TIME_ANCHOR)
                    logger.debug("%s %s: %s has no time anchor", adapter.name, day, rec.display_code)
                elif not in_local_day(rec, start, end, direction):
                    stats.skip(SkipReason.OUT_OF_DATE_RANGE)
                    logger.debug("%s %s: %s outside local day", adapter.name, day, rec.display_code)
                else:
                    day_stats.in_range += 1
                    candidates.append(rec)
    return candidates


def _persist(session: Session, legs: list[FlightLeg], stats: CycleStats) -> None:
    for leg in legs:
        try:
            with session.begin_nested():
                outcome = upsert_leg(session, leg)
        except SQLAlchemyError:
            stats.write_errors += 1
            logger.warning("Write failed for %s", leg.leg_key, exc_info=True)
            continue
        if outcome == UpsertOutcome.INSERTED:
            stats.inserted += 1
        else:
            stats.updated += 1
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise StoreUnavailableError(f"Commit failed: {exc}") from exc


def execute_cycle(
    settings: Settings,
    start_day: date | None = None,
    options: CycleOptions | None = None,
    session_factory: Callable[[], Session] | None = None,
    adapters: list[SourceAdapter] | None = None,
    clock: Clock | None = None,
) -> CycleResult:
    """Run one ingestion cycle over ``options.days`` local days from ``start_day``.

    This is the single entry point shared by CLI and API.
    Does not print, does not call sys.exit; returns structured results.

    Raises:
        StoreUnavailableError: the store cannot be opened or the final commit fails.
        SchemaError: the flight_legs table cannot be prepared.
    """
    options = options or CycleOptions()
    clock = clock or SystemClock()
    airport = settings.airport

    today = local_date(clock.now(), airport.zone)
    start_day = start_day or today
    n_days = max(1, min(options.days, settings.max_days))
    days = [start_day + timedelta(days=i) for i in range(n_days)]

    if adapters is None:
        adapters = build_adapters(settings, use_cache=options.use_cache)

    stats = CycleStats(
        airport=airport.iata,
        timezone=airport.timezone,
        direction=options.direction.value,
        dates=[d.isoformat() for d in days],
    )
    candidates = _collect(settings, adapters, days, today, options.direction, stats)
    stats.candidates = len(candidates)

    merged = merge_records(candidates)
    stats.merged = len(merged.legs)
    stats.skip(SkipReason.CODESHARE_MERGED_AWAY, merged.absorbed)

    if not options.dry_run:
        session_factory = session_factory or open_store()
        with session_factory() as session:
            _persist(session, merged.legs, stats)

    problems = stats.accounting_errors(persisted=not options.dry_run)
    if problems:
        logger.warning("Cycle counters do not balance: %s", "; ".join(problems))
    logger.info("%s", stats.summary_line())
    return CycleResult(stats=stats, legs=merged.legs, dry_run=options.dry_run)
