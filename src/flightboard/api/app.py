"""FastAPI app factory."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flightboard.api.board import router as board_router
from flightboard.clock import Clock, SystemClock
from flightboard.config import Settings, load_settings
from flightboard.db.engine import get_engine, init_db
from flightboard.fetch.flightradar import FlightSummaryAdapter, LiveAdapter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    env = os.environ.get("ENVIRONMENT", "development")
    engine = get_engine()

    if env == "development":
        init_db(engine)
        logger.info("Dev mode: tables created via init_db")

    yield


def create_app(
    settings: Settings | None = None,
    live_adapter: LiveAdapter | None = None,
    summary_adapter: FlightSummaryAdapter | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    load_dotenv()
    settings = settings or load_settings()

    app = FastAPI(
        title="Flightboard API",
        description=f"Arrivals and departures board for {settings.airport.iata}",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.clock = clock or SystemClock()
    app.state.live_adapter = live_adapter or LiveAdapter(settings)
    app.state.summary_adapter = summary_adapter or FlightSummaryAdapter(settings)

    if os.environ.get("ENVIRONMENT", "development") == "development":
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET"],
            allow_headers=["*"],
        )

    @app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

    app.include_router(board_router, prefix="/api")

    @app.get("/health")
    def health():
        return {"status": "ok", "airport": settings.airport.iata}

    return app


app = create_app()
