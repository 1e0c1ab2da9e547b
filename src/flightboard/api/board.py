"""API endpoints for the arrivals/departures board."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from flightboard.board import build_board
from flightboard.clock import Clock
from flightboard.config import Settings
from flightboard.db.deps import get_db
from flightboard.models import Board, Direction, FlightStatus, ServedLeg
from flightboard.storage.legs import load_leg
from flightboard.times import ensure_utc

logger = logging.getLogger(__name__)

router = APIRouter(tags=["board"])


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def _parse_statuses(raw: str | None) -> set[FlightStatus] | None:
    if not raw:
        return None
    statuses = set()
    for part in raw.split(","):
        part = part.strip().lower()
        if not part:
            continue
        try:
            statuses.add(FlightStatus(part))
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown status '{part}'")
    return statuses or None


@router.get("/board", response_model=Board)
def get_board(
    request: Request,
    direction: Direction = Direction.ARRIVAL,
    start: datetime | None = None,
    hours: int = Query(12, ge=1, le=168),
    status: str | None = None,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
):
    """Persisted legs for the window, overlaid with live telemetry.

    ``start`` defaults to now minus the landed grace period, so flights that
    just landed stay visible. Naive ``start`` values are read as UTC.
    """
    statuses = _parse_statuses(status)
    now = clock.now()
    window_start = ensure_utc(start) if start else now - timedelta(minutes=settings.landed_grace_minutes)
    window_end = window_start + timedelta(hours=hours)

    try:
        return build_board(
            db, settings, direction, window_start, window_end,
            live_adapter=request.app.state.live_adapter,
            summary_adapter=request.app.state.summary_adapter,
            clock=clock,
            statuses=statuses,
        )
    except SQLAlchemyError:
        logger.error("Board query failed", exc_info=True)
        raise HTTPException(status_code=503, detail="Flight store unavailable")


@router.get("/legs/{leg_id}", response_model=ServedLeg)
def get_leg(leg_id: int, db: Session = Depends(get_db)):
    """Persisted leg detail, without live overlay."""
    try:
        leg = load_leg(db, leg_id)
    except SQLAlchemyError:
        logger.error("Leg lookup failed", exc_info=True)
        raise HTTPException(status_code=503, detail="Flight store unavailable")
    if leg is None:
        raise HTTPException(status_code=404, detail=f"Leg {leg_id} not found")
    return leg
