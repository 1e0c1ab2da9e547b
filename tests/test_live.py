"""Tests for live enrichment of persisted legs."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from conftest import STA, STD, make_leg

from flightboard.models import (
    FlightStatus,
    FlightSummary,
    LivePosition,
    StatusSource,
)
from flightboard.reconcile.live import enrich_legs, leg_codes

NOW = datetime(2025, 11, 12, 15, 30, tzinfo=timezone.utc)


def _position(**kwargs) -> LivePosition:
    values = dict(
        flight="AM180",
        callsign="AMX180",
        origin_code="MEX",
        destination_code="TIJ",
        eta_utc=STA + timedelta(minutes=25),
        registration="XA-AMX",
    )
    values.update(kwargs)
    return LivePosition(**values)


def test_landed_inferred_after_grace(airport):
    leg = make_leg(
        scheduled_arrival_utc=datetime(2025, 11, 12, 10, 0, tzinfo=timezone.utc),
        scheduled_departure_utc=datetime(2025, 11, 12, 6, 0, tzinfo=timezone.utc),
    )
    now = datetime(2025, 11, 12, 11, 45, tzinfo=timezone.utc)
    [row] = enrich_legs([leg], [], [], now, airport)

    assert row.status == FlightStatus.LANDED
    assert row.status_source == StatusSource.INFERRED


def test_no_inference_within_grace(airport):
    leg = make_leg()
    now = STA + timedelta(minutes=30)
    [row] = enrich_legs([leg], [], [], now, airport)
    assert row.status == FlightStatus.SCHEDULED
    assert row.status_source == StatusSource.PROVIDER


def test_cancelled_is_never_inferred_landed(airport):
    leg = make_leg(status=FlightStatus.CANCELLED)
    [row] = enrich_legs([leg], [], [], STA + timedelta(hours=5), airport)
    assert row.status == FlightStatus.CANCELLED


def test_position_makes_leg_active_with_live_delay(airport):
    [row] = enrich_legs([make_leg()], [_position()], [], NOW, airport)

    assert row.status == FlightStatus.ACTIVE
    assert row.status_source == StatusSource.TELEMETRY
    assert row.estimated_arrival_utc == STA + timedelta(minutes=25)
    assert row.delay_minutes == 25
    assert row.aircraft_registration == "XA-AMX"
    assert not row.is_ephemeral


def test_position_without_eta_is_taxi(airport):
    [row] = enrich_legs([make_leg()], [_position(eta_utc=None)], [], NOW, airport)
    assert row.status == FlightStatus.TAXI


def test_position_to_other_airport_is_diverted(airport):
    [row] = enrich_legs([make_leg()], [_position(destination_code="HMO")], [], NOW, airport)
    assert row.status == FlightStatus.DIVERTED
    assert row.display_destination == "HMO"


def test_icao_destination_is_not_a_diversion(airport):
    [row] = enrich_legs([make_leg()], [_position(destination_code="MMTJ")], [], NOW, airport)
    assert row.status == FlightStatus.ACTIVE


def test_position_matches_on_codeshare(airport):
    leg = make_leg(codeshares={"LA7588"})
    pos = _position(flight="LA7588", callsign=None)
    rows = enrich_legs([leg], [pos], [], NOW, airport)
    assert len(rows) == 1
    assert rows[0].status == FlightStatus.ACTIVE


def test_landed_leg_not_demoted_by_position(airport):
    leg = make_leg(status=FlightStatus.LANDED)
    [row] = enrich_legs([leg], [_position()], [], NOW, airport)
    assert row.status == FlightStatus.LANDED
    assert row.status_source == StatusSource.PROVIDER


def test_summary_confirms_landing(airport):
    summary = FlightSummary(
        flight="AM180",
        takeoff_utc=STD + timedelta(minutes=10),
        landed_utc=STA + timedelta(minutes=2),
        planned_destination="TIJ",
        actual_destination="TIJ",
    )
    [row] = enrich_legs([make_leg()], [_position()], [summary], NOW, airport)

    assert row.status == FlightStatus.LANDED
    assert row.status_source == StatusSource.TELEMETRY
    assert row.actual_arrival_utc == STA + timedelta(minutes=2)
    assert row.actual_departure_utc == STD + timedelta(minutes=10)


def test_summary_reports_diversion(airport):
    summary = FlightSummary(
        flight="AMX180",
        takeoff_utc=STD,
        landed_utc=STA,
        planned_destination="TIJ",
        actual_destination="MXL",
    )
    [row] = enrich_legs([make_leg()], [], [summary], NOW, airport)
    assert row.status == FlightStatus.DIVERTED
    assert row.display_destination == "MXL"


def test_summary_from_another_day_is_ignored(airport):
    summary = FlightSummary(
        flight="AM180",
        takeoff_utc=STD - timedelta(days=1),
        landed_utc=STA - timedelta(days=1),
    )
    [row] = enrich_legs([make_leg()], [], [summary], NOW, airport)
    assert row.status == FlightStatus.SCHEDULED


def test_closest_summary_wins(airport):
    yesterday = FlightSummary(flight="AM180", takeoff_utc=STD - timedelta(hours=11))
    today = FlightSummary(
        flight="AM180", takeoff_utc=STD + timedelta(minutes=5), landed_utc=STA,
    )
    [row] = enrich_legs([make_leg()], [], [yesterday, today], NOW, airport)
    assert row.actual_departure_utc == STD + timedelta(minutes=5)
    assert row.status == FlightStatus.LANDED


def test_unmatched_position_becomes_ephemeral(airport):
    stranger = _position(flight="Y4123", callsign="VOI123", origin_code="GDL")
    rows = enrich_legs([make_leg()], [stranger], [], NOW, airport)

    assert len(rows) == 2
    extra = rows[1]
    assert extra.is_ephemeral
    assert extra.id is None
    assert extra.flight_number == "Y4123"
    assert extra.departure_code == "GDL"
    assert extra.arrival_code == "TIJ"
    assert extra.status == FlightStatus.ACTIVE


def test_input_legs_are_not_mutated(airport):
    leg = make_leg()
    enrich_legs([leg], [_position()], [], NOW, airport)
    assert leg.status == FlightStatus.SCHEDULED
    assert leg.estimated_arrival_utc is None


def test_leg_codes_order():
    leg = make_leg(codeshares={"WS5785", "LA7588"})
    assert leg_codes(leg) == ["AMX180", "AM180", "LA7588", "WS5785"]


def test_position_attaches_to_one_leg_of_a_daily_flight(airport):
    earlier = [make_leg(scheduled_arrival_utc=STA - timedelta(days=d),
                        scheduled_departure_utc=STD - timedelta(days=d)) for d in (2, 1)]
    today = make_leg()
    rows = enrich_legs([*earlier, today], [_position()], [], NOW, airport)

    assert len(rows) == 3
    two_days_ago, yesterday, current = rows
    assert current.status == FlightStatus.ACTIVE
    assert current.delay_minutes == 25
    for row in (two_days_ago, yesterday):
        assert row.status == FlightStatus.LANDED
        assert row.status_source == StatusSource.INFERRED
        assert row.delay_minutes is None


def test_position_far_from_every_leg_is_ephemeral(airport):
    yesterday = make_leg(scheduled_arrival_utc=STA - timedelta(days=1),
                         scheduled_departure_utc=STD - timedelta(days=1))
    rows = enrich_legs([yesterday], [_position()], [], NOW, airport)

    assert len(rows) == 2
    assert rows[0].status == FlightStatus.LANDED
    assert rows[0].status_source == StatusSource.INFERRED
    assert rows[1].is_ephemeral


def test_each_leg_takes_at_most_one_position(airport):
    near = _position()
    duplicate = _position(eta_utc=STA + timedelta(hours=3))
    rows = enrich_legs([make_leg()], [duplicate, near], [], NOW, airport)

    assert rows[0].estimated_arrival_utc == STA + timedelta(minutes=25)
    assert len(rows) == 2
    assert rows[1].is_ephemeral
