"""Tests for the ingestion cycle."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
import responses
from conftest import make_codeshare, make_record
from sqlalchemy.exc import SQLAlchemyError

import flightboard.pipeline as pipeline_mod
from flightboard.clock import FixedClock
from flightboard.db.engine import StoreUnavailableError
from flightboard.fetch import FetchResult
from flightboard.fetch.aviationstack import TimetableAdapter
from flightboard.models import Direction, FlightStatus, LegRecord, Provider
from flightboard.pipeline import CycleOptions, SkipReason, execute_cycle, in_local_day
from flightboard.storage.legs import count_legs

DAY = date(2025, 11, 12)


class FakeAdapter:
    """Adapter whose rows are pre-normalized records (None means no identity)."""

    def __init__(self, name, rows_by_day, errors=None, days=None):
        self.name = name
        self.rows_by_day = rows_by_day
        self.errors = errors or []
        self.days = days
        self.fetched: list[date] = []

    def supports(self, day, today):
        return self.days is None or day in self.days

    def fetch(self, airport, day, direction):
        self.fetched.append(day)
        rows = [{"rec": rec} for rec in self.rows_by_day.get(day, [])]
        return FetchResult(rows=rows, errors=list(self.errors), pages=1)

    def normalize(self, row, airport, direction):
        return row["rec"]


def _no_store():
    raise AssertionError("dry run must not open a session")


@pytest.fixture
def day_rows():
    return [
        make_record(),
        make_codeshare("LA7588"),
        None,
        make_record(flight_number="Y4123", callsign="VOI123", scheduled_arrival_utc=None,
                    scheduled_departure_utc=None),
        make_record(flight_number="Y4500", callsign="VOI500",
                    scheduled_arrival_utc=datetime(2025, 11, 13, 9, 0, tzinfo=timezone.utc)),
    ]


def test_cycle_counts_every_row(settings, clock, session_factory, day_rows):
    adapter = FakeAdapter("timetable", {DAY: day_rows})
    result = execute_cycle(
        settings, DAY, CycleOptions(), session_factory=session_factory,
        adapters=[adapter], clock=clock,
    )
    stats = result.stats

    assert stats.fetched == 5
    assert stats.normalized == 4
    assert stats.skipped == {
        "no_flight_identity": 1,
        "no_time_anchor": 1,
        "out_of_date_range": 1,
        "codeshare_merged_away": 1,
    }
    assert stats.candidates == 2
    assert stats.merged == 1
    assert stats.inserted == 1
    assert stats.updated == 0
    assert stats.accounting_errors() == []

    [leg] = result.legs
    assert leg.flight_number == "AM180"
    assert leg.codeshares == {"LA7588"}


def test_cycle_is_idempotent(settings, clock, session_factory, day_rows):
    adapter = FakeAdapter("timetable", {DAY: day_rows})
    kwargs = dict(session_factory=session_factory, adapters=[adapter], clock=clock)

    execute_cycle(settings, DAY, CycleOptions(), **kwargs)
    second = execute_cycle(settings, DAY, CycleOptions(), **kwargs)

    assert second.stats.inserted == 0
    assert second.stats.updated == 1
    with session_factory() as session:
        assert count_legs(session) == 1


def test_provider_order_does_not_matter(settings, clock, session_factory):
    timetable = FakeAdapter("timetable", {DAY: [make_record(), make_codeshare("WS5785")]})
    search = FakeAdapter("flight_search", {DAY: [
        make_record(source=Provider.FLIGHT_SEARCH, status=FlightStatus.LANDED,
                    aircraft_registration="XA-AMX"),
        make_codeshare("LA7588", source=Provider.FLIGHT_SEARCH),
    ]})

    a = execute_cycle(settings, DAY, CycleOptions(dry_run=True), adapters=[timetable, search], clock=clock)
    b = execute_cycle(settings, DAY, CycleOptions(dry_run=True), adapters=[search, timetable], clock=clock)

    assert a.legs[0].model_dump() == b.legs[0].model_dump()
    assert a.legs[0].status == FlightStatus.LANDED
    assert a.legs[0].codeshares == {"LA7588", "WS5785"}


def test_dry_run_does_not_touch_store(settings, clock, day_rows):
    adapter = FakeAdapter("timetable", {DAY: day_rows})
    result = execute_cycle(
        settings, DAY, CycleOptions(dry_run=True), session_factory=_no_store,
        adapters=[adapter], clock=clock,
    )
    assert result.dry_run
    assert len(result.legs) == 1
    assert result.stats.inserted == 0
    assert result.stats.accounting_errors(persisted=False) == []


def test_days_are_clamped(settings, clock):
    adapter = FakeAdapter("flight_search", {})
    result = execute_cycle(
        settings, DAY, CycleOptions(days=30, dry_run=True), adapters=[adapter], clock=clock,
    )
    assert len(result.stats.dates) == settings.max_days
    assert adapter.fetched[0] == DAY
    assert adapter.fetched[-1] == DAY + timedelta(days=settings.max_days - 1)


def test_default_start_is_local_today(settings):
    # 03:00 UTC on the 13th is still the 12th in Tijuana
    late = FixedClock(datetime(2025, 11, 13, 3, 0, tzinfo=timezone.utc))
    adapter = FakeAdapter("timetable", {})
    result = execute_cycle(settings, None, CycleOptions(dry_run=True), adapters=[adapter], clock=late)
    assert result.stats.dates == ["2025-11-12"]


def test_unsupported_days_are_skipped(settings, clock):
    adapter = FakeAdapter("timetable", {}, days={DAY})
    execute_cycle(settings, DAY, CycleOptions(days=3, dry_run=True), adapters=[adapter], clock=clock)
    assert adapter.fetched == [DAY]


def test_provider_errors_do_not_abort(settings, clock, session_factory):
    broken = FakeAdapter("flight_search", {}, errors=["flight_search:2025-11-12:timeout"])
    working = FakeAdapter("timetable", {DAY: [make_record()]})
    result = execute_cycle(
        settings, DAY, CycleOptions(), session_factory=session_factory,
        adapters=[broken, working], clock=clock,
    )
    stats = result.stats
    assert stats.inserted == 1
    assert stats.provider_errors == ["flight_search:2025-11-12:timeout"]
    assert stats.per_date["2025-11-12"].errors == 1
    assert "errors=flight_search:2025-11-12:timeout" in stats.summary_line()


def test_write_error_counted_per_leg(settings, clock, session_factory, monkeypatch):
    real_upsert = pipeline_mod.upsert_leg

    def flaky_upsert(session, leg):
        if leg.flight_number == "Y4123":
            raise SQLAlchemyError("disk full")
        return real_upsert(session, leg)

    monkeypatch.setattr(pipeline_mod, "upsert_leg", flaky_upsert)
    adapter = FakeAdapter("timetable", {DAY: [
        make_record(),
        make_record(flight_number="Y4123", callsign="VOI123"),
    ]})
    result = execute_cycle(
        settings, DAY, CycleOptions(), session_factory=session_factory,
        adapters=[adapter], clock=clock,
    )

    assert result.stats.inserted == 1
    assert result.stats.write_errors == 1
    assert result.stats.accounting_errors() == []
    with session_factory() as session:
        assert count_legs(session) == 1


def test_store_unavailable_propagates(settings, clock, monkeypatch):
    def down():
        raise StoreUnavailableError("Cannot open store: connection refused")

    monkeypatch.setattr(pipeline_mod, "open_store", down)
    adapter = FakeAdapter("timetable", {DAY: [make_record()]})
    with pytest.raises(StoreUnavailableError):
        execute_cycle(settings, DAY, CycleOptions(), adapters=[adapter], clock=clock)


def test_summary_line(settings, clock):
    adapter = FakeAdapter("timetable", {DAY: [make_record()]})
    result = execute_cycle(
        settings, DAY, CycleOptions(days=2, dry_run=True), adapters=[adapter], clock=clock,
    )
    line = result.stats.summary_line()
    assert line.startswith(
        "[ingest] airport=TIJ tz=America/Tijuana dir=arrival dates=2025-11-12..2025-11-13"
    )
    assert "fetched=1" in line
    assert "errors=none" in line


def test_departure_cycle_uses_departure_times(settings, clock):
    dep = make_record(
        flight_number="AM181", callsign="AMX181", departure_code="TIJ", arrival_code="MEX",
        scheduled_departure_utc=datetime(2025, 11, 12, 20, 0, tzinfo=timezone.utc),
        scheduled_arrival_utc=datetime(2025, 11, 13, 1, 0, tzinfo=timezone.utc),
    )
    adapter = FakeAdapter("timetable", {DAY: [dep]})
    result = execute_cycle(
        settings, DAY, CycleOptions(dry_run=True, direction=Direction.DEPARTURE),
        adapters=[adapter], clock=clock,
    )
    assert result.stats.merged == 1
    assert result.stats.direction == "departure"


def test_in_local_day_uses_any_time():
    start = datetime(2025, 11, 12, 8, 0, tzinfo=timezone.utc)
    end = start + timedelta(days=1)
    late = LegRecord(
        source=Provider.TIMETABLE,
        scheduled_arrival_utc=start - timedelta(minutes=30),
        estimated_arrival_utc=start + timedelta(minutes=10),
    )
    assert in_local_day(late, start, end, Direction.ARRIVAL)
    assert not in_local_day(late, start, end, Direction.DEPARTURE)
    assert in_local_day(make_record(), start, end, Direction.ARRIVAL)


def test_skip_reason_values():
    assert {r.value for r in SkipReason} == {
        "no_flight_identity", "no_time_anchor", "out_of_date_range", "codeshare_merged_away",
    }


@responses.activate
def test_non_object_entries_are_counted(settings, clock):
    keyed = settings.model_copy(update={"aviationstack_key": "test-key"})
    row = {
        "flight": {"iataNumber": "AM180", "icaoNumber": "AMX180"},
        "departure": {"iataCode": "MEX", "scheduledTime": "2025-11-12T06:00:00.000"},
        "arrival": {"iataCode": "TIJ", "scheduledTime": "2025-11-12T08:00:00.000"},
        "status": "scheduled",
    }
    responses.add(
        responses.GET, "https://api.aviationstack.com/v1/timetable",
        json={"data": ["garbage", None, row]},
    )
    result = execute_cycle(
        keyed, DAY, CycleOptions(dry_run=True),
        adapters=[TimetableAdapter(keyed)], clock=clock,
    )
    stats = result.stats

    assert stats.fetched == 3
    assert stats.normalized == 1
    assert stats.skipped[SkipReason.NO_FLIGHT_IDENTITY.value] == 2
    assert stats.merged == 1
    assert stats.accounting_errors(persisted=False) == []


def test_codeshare_stored_once_when_providers_disagree_on_code_style(
    settings, clock, session_factory,
):
    timetable = FakeAdapter("timetable", {DAY: [make_record(callsign=None)]})
    search = FakeAdapter("flight_search", {DAY: [
        make_codeshare("LA7588", source=Provider.FLIGHT_SEARCH, status=FlightStatus.LANDED),
    ]})
    for _ in range(2):
        result = execute_cycle(
            settings, DAY, CycleOptions(), session_factory=session_factory,
            adapters=[timetable, search], clock=clock,
        )
        assert result.stats.merged == 1

    [leg] = result.legs
    assert leg.flight_number == "AM180"
    assert leg.codeshares == {"LA7588"}
    assert leg.status == FlightStatus.LANDED
    with session_factory() as session:
        assert count_legs(session) == 1
