"""Database package: SQLAlchemy models, engine, and FastAPI dependencies."""

from flightboard.db.engine import (
    SchemaError,
    SessionLocal,
    StoreUnavailableError,
    get_engine,
    init_db,
    open_store,
)
from flightboard.db.models import Base, FlightLegRow

__all__ = [
    "Base",
    "FlightLegRow",
    "SchemaError",
    "SessionLocal",
    "StoreUnavailableError",
    "get_engine",
    "init_db",
    "open_store",
]
