"""Tests for the command-line interface."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

import flightboard.cli as cli_mod
from flightboard.cli import format_board, main
from flightboard.db.engine import SchemaError, StoreUnavailableError
from flightboard.models import Board, Direction, FlightStatus, Provider, ServedLeg
from flightboard.pipeline import CycleResult, CycleStats


@pytest.fixture(autouse=True)
def no_credentials(monkeypatch):
    for name in ("AVIATIONSTACK_KEY", "FR24_API_TOKEN", "FLIGHTBOARD_AIRPORT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(cli_mod, "load_dotenv", lambda: None)


@pytest.fixture
def cycle_calls(monkeypatch):
    """Replace execute_cycle and record its arguments."""
    calls = []

    def fake_cycle(settings, start_day, options):
        calls.append((settings, start_day, options))
        stats = CycleStats(airport=settings.airport.iata, timezone=settings.airport.timezone,
                           dates=["2025-11-12"])
        return CycleResult(stats=stats, dry_run=options.dry_run)

    monkeypatch.setattr(cli_mod, "execute_cycle", fake_cycle)
    return calls


def _exit_code(argv) -> int:
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


def test_ingest_prints_summary(cycle_calls, capsys):
    assert _exit_code(["ingest", "2025-11-12"]) == 0

    out = capsys.readouterr().out
    assert out.startswith("[ingest] airport=TIJ tz=America/Tijuana")
    settings, start_day, options = cycle_calls[0]
    assert start_day == date(2025, 11, 12)
    assert options.days == 1
    assert options.use_cache is True
    assert options.direction == Direction.ARRIVAL


def test_ingest_options(cycle_calls):
    code = _exit_code(
        ["ingest", "2025-11-12", "--days", "3", "--dry-run", "--nocache", "--direction", "departure"]
    )
    assert code == 0
    _, _, options = cycle_calls[0]
    assert options.days == 3
    assert options.dry_run is True
    assert options.use_cache is False
    assert options.direction == Direction.DEPARTURE


def test_single_day_overrides_days(cycle_calls):
    _exit_code(["ingest", "--days", "5", "--single-day"])
    _, start_day, options = cycle_calls[0]
    assert start_day is None
    assert options.days == 1


def test_airport_selection(cycle_calls):
    _exit_code(["ingest", "--airport", "MXL"])
    settings, _, _ = cycle_calls[0]
    assert settings.airport.iata == "MXL"


def test_invalid_date_exits_1(cycle_calls, capsys):
    assert _exit_code(["ingest", "2025-13-45"]) == 1
    assert "invalid date" in capsys.readouterr().err
    assert cycle_calls == []


def test_unknown_airport_exits_1(cycle_calls):
    assert _exit_code(["ingest", "--airport", "XXX"]) == 1


def test_store_unavailable_exits_2(monkeypatch):
    def down(*args, **kwargs):
        raise StoreUnavailableError("Cannot open store: connection refused")

    monkeypatch.setattr(cli_mod, "execute_cycle", down)
    assert _exit_code(["ingest", "2025-11-12"]) == 2


def test_schema_error_exits_3(monkeypatch):
    def broken(*args, **kwargs):
        raise SchemaError("Cannot prepare schema")

    monkeypatch.setattr(cli_mod, "execute_cycle", broken)
    assert _exit_code(["ingest", "2025-11-12"]) == 3


def test_board_store_unavailable_exits_2(monkeypatch):
    def down():
        raise StoreUnavailableError("Cannot open store")

    monkeypatch.setattr(cli_mod, "open_store", down)
    assert _exit_code(["board"]) == 2


def test_board_rejects_bad_hours():
    assert _exit_code(["board", "--hours", "0"]) == 1


def test_format_board(settings):
    sta = datetime(2025, 11, 12, 16, 0, tzinfo=timezone.utc)
    board = Board(
        airport="TIJ",
        direction="arrival",
        window_start=datetime(2025, 11, 12, 14, 0, tzinfo=timezone.utc),
        window_end=datetime(2025, 11, 13, 2, 0, tzinfo=timezone.utc),
        generated_at=sta,
        rows=[ServedLeg(
            leg_key="AMX180|2025-11-12T16:00:00+00:00|MEX",
            source=Provider.TIMETABLE,
            flight_number="AM180",
            departure_code="MEX",
            scheduled_arrival_utc=sta,
            delay_minutes=20,
            status=FlightStatus.ACTIVE,
            codeshares={"LA7588"},
        )],
        errors=["live:2025-11-12:timeout"],
    )
    text = format_board(board, settings)
    lines = text.splitlines()

    assert lines[0] == "TIJ arrival 06:00-18:00 (1 flights)"
    assert "08:00" in lines[2]
    assert "AM180" in lines[2]
    assert "+20" in lines[2]
    assert "active (provider)" in lines[2]
    assert lines[2].endswith("LA7588")
    assert lines[-1] == "! live:2025-11-12:timeout"
