"""Database engine configuration and initialization."""

from __future__ import annotations

import logging
import os

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from flightboard.db.models import Base, FlightLegRow

logger = logging.getLogger(__name__)

_engine: Engine | None = None
SessionLocal: sessionmaker[Session] = sessionmaker()


class StoreUnavailableError(RuntimeError):
    """The persistence store cannot be reached."""


class SchemaError(RuntimeError):
    """The flight_legs table cannot be created or verified."""


def configure_sqlite(engine: Engine) -> None:
    """WAL, foreign keys, and driver-level transactions that honour SAVEPOINT."""

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, _connection_record):
        # let SQLAlchemy emit BEGIN itself so nested savepoints behave
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def get_engine(db_url: str | None = None) -> Engine:
    """Return a singleton SQLAlchemy engine.

    Defaults:
      - ENVIRONMENT=development → sqlite:///data/flightboard.db
      - ENVIRONMENT=production  → DATABASE_URL env var (MySQL)
    """
    global _engine
    if _engine is not None:
        return _engine

    if db_url is None:
        env = os.environ.get("ENVIRONMENT", "development")
        if env == "production":
            db_url = os.environ.get("DATABASE_URL")
            if not db_url:
                raise ValueError(
                    "DATABASE_URL environment variable must be set in production"
                )
        else:
            data_dir = os.environ.get("DATA_DIR", "data")
            os.makedirs(data_dir, exist_ok=True)
            db_url = f"sqlite:///{data_dir}/flightboard.db"

    connect_args = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = 30

    _engine = create_engine(db_url, connect_args=connect_args, pool_pre_ping=True)
    SessionLocal.configure(bind=_engine)

    if db_url.startswith("sqlite"):
        configure_sqlite(_engine)

    logger.info("Database engine created: %s", db_url.split("@")[-1])
    return _engine


def reset_engine() -> None:
    """Reset the singleton engine (for testing)."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None
    SessionLocal.configure(bind=None)


def init_db(engine: Engine | None = None) -> None:
    """Create all tables. Use in dev mode; prod uses Alembic."""
    engine = engine or get_engine()
    Base.metadata.create_all(engine)
    logger.info("Database tables created")


def open_store(db_url: str | None = None) -> sessionmaker[Session]:
    """Connect, make sure the schema exists, and return the session factory.

    Raises:
        StoreUnavailableError: the engine cannot be built or connected.
        SchemaError: flight_legs cannot be created or is missing afterwards.
    """
    try:
        engine = get_engine(db_url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, ValueError, OSError) as exc:
        reset_engine()
        raise StoreUnavailableError(f"Cannot open store: {exc}") from exc

    try:
        init_db(engine)
        if not inspect(engine).has_table(FlightLegRow.__tablename__):
            raise SchemaError(f"Table {FlightLegRow.__tablename__} missing after init")
    except SQLAlchemyError as exc:
        raise SchemaError(f"Cannot prepare schema: {exc}") from exc

    return SessionLocal
