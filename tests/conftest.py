"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from flightboard.clock import FixedClock
from flightboard.config import load_settings
from flightboard.db.engine import configure_sqlite
from flightboard.db.models import Base
from flightboard.models import FlightLeg, LegRecord, Provider
from flightboard.reconcile.identity import leg_key

# 2025-11-12 16:00 UTC is 08:00 local in Tijuana (PST)
STA = datetime(2025, 11, 12, 16, 0, tzinfo=timezone.utc)
STD = datetime(2025, 11, 12, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_engine():
    """In-memory SQLite engine for tests."""
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    """Yield a SQLAlchemy session per test, rolled back after."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def settings():
    """TIJ settings from the bundled airports.yaml, without credentials."""
    return load_settings("TIJ", env={})


@pytest.fixture
def airport(settings):
    return settings.airport


@pytest.fixture
def clock():
    """10:00 local in Tijuana on 2025-11-12."""
    return FixedClock(datetime(2025, 11, 12, 18, 0, tzinfo=timezone.utc))


def make_record(**kwargs) -> LegRecord:
    """AM180 MEX-TIJ operating record; keyword arguments override fields."""
    values = dict(
        source=Provider.TIMETABLE,
        flight_number="AM180",
        callsign="AMX180",
        airline_name="Aeromexico",
        departure_code="MEX",
        arrival_code="TIJ",
        scheduled_departure_utc=STD,
        scheduled_arrival_utc=STA,
    )
    values.update(kwargs)
    return LegRecord(**values)


def make_codeshare(code: str, **kwargs) -> LegRecord:
    """Marketing row pointing at AMX180 (AM180)."""
    values = dict(
        flight_number=code,
        callsign=None,
        airline_name="Partner",
        operating_code="AMX180",
        operating_flight_number="AM180",
        is_codeshare=True,
    )
    values.update(kwargs)
    return make_record(**values)


def make_leg(**kwargs) -> FlightLeg:
    rec = make_record(**kwargs)
    return FlightLeg(leg_key=leg_key(rec), **rec.model_dump())
