"""CLI entry point: ingestion cycles and a terminal view of the board."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timedelta

from dotenv import load_dotenv

from flightboard.board import build_board
from flightboard.clock import SystemClock
from flightboard.config import Settings, load_settings
from flightboard.db.engine import SchemaError, StoreUnavailableError, open_store
from flightboard.fetch.flightradar import FlightSummaryAdapter, LiveAdapter
from flightboard.models import Board, Direction
from flightboard.pipeline import CycleOptions, execute_cycle
from flightboard.times import parse_day, to_utc

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_BAD_ARGS = 1
EXIT_STORE_UNAVAILABLE = 2
EXIT_SCHEMA = 3


def _load(airport: str | None) -> Settings | None:
    try:
        return load_settings(airport)
    except KeyError as exc:
        print(f"Error: {exc.args[0]}", file=sys.stderr)
        return None


def run_ingest(args: argparse.Namespace) -> int:
    """Run one ingestion cycle and print its summary line."""
    day = None
    if args.date:
        try:
            day = parse_day(args.date)
        except ValueError:
            print(f"Error: invalid date '{args.date}' (expected YYYY-MM-DD)", file=sys.stderr)
            return EXIT_BAD_ARGS

    settings = _load(args.airport)
    if settings is None:
        return EXIT_BAD_ARGS

    days = 1 if args.single_day else args.days
    if days > settings.max_days:
        logger.warning("--days %d exceeds maximum, using %d", days, settings.max_days)
    options = CycleOptions(
        days=days,
        dry_run=args.dry_run,
        use_cache=not args.nocache,
        direction=Direction(args.direction),
    )

    try:
        result = execute_cycle(settings, day, options)
    except StoreUnavailableError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_STORE_UNAVAILABLE
    except SchemaError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_SCHEMA

    print(result.stats.summary_line())
    return EXIT_OK


def format_board(board: Board, settings: Settings) -> str:
    """Plain-text board, times in airport local time."""
    zone = settings.airport.zone

    def hhmm(dt: datetime | None) -> str:
        return dt.astimezone(zone).strftime("%H:%M") if dt else "--:--"

    arrivals = board.direction != Direction.DEPARTURE.value
    lines = [
        f"{board.airport} {board.direction} "
        f"{hhmm(board.window_start)}-{hhmm(board.window_end)} ({len(board.rows)} flights)",
        f"{'SCHED':<6}{'FLIGHT':<9}{'FROM' if arrivals else 'TO':<6}"
        f"{'EST':<6}{'DELAY':>6}  {'STATUS':<22}CODESHARES",
    ]
    for row in board.rows:
        sched = row.scheduled_arrival_utc if arrivals else row.scheduled_departure_utc
        est = row.estimated_arrival_utc if arrivals else row.estimated_departure_utc
        other = row.departure_code if arrivals else row.display_destination
        delay = f"{row.delay_minutes:+d}" if row.delay_minutes is not None else ""
        status = f"{row.status.value} ({row.status_source.value})"
        if row.is_ephemeral:
            status += " *"
        lines.append(
            f"{hhmm(sched):<6}{row.display_code or '?':<9}{other or '':<6}"
            f"{hhmm(est):<6}{delay:>6}  {status:<22}{' '.join(sorted(row.codeshares))}"
        )
    for err in board.errors:
        lines.append(f"! {err}")
    return "\n".join(lines)


def run_board(args: argparse.Namespace) -> int:
    """Print the served board for a window."""
    settings = _load(args.airport)
    if settings is None:
        return EXIT_BAD_ARGS

    now = SystemClock().now()
    if args.start:
        start = to_utc(args.start, settings.airport.zone)
        if start is None:
            print(f"Error: invalid start '{args.start}'", file=sys.stderr)
            return EXIT_BAD_ARGS
    else:
        start = now - timedelta(minutes=settings.landed_grace_minutes)

    try:
        session_factory = open_store()
    except StoreUnavailableError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_STORE_UNAVAILABLE
    except SchemaError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_SCHEMA

    with session_factory() as session:
        board = build_board(
            session, settings, Direction(args.direction),
            start, start + timedelta(hours=args.hours),
            live_adapter=LiveAdapter(settings),
            summary_adapter=FlightSummaryAdapter(settings),
        )
    print(format_board(board, settings))
    return EXIT_OK


def _add_airport_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--airport", default=None,
        help="Airport key from airports.yaml (default: env FLIGHTBOARD_AIRPORT or TIJ)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flightboard",
        description="Flight schedule reconciliation and live board for one airport",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # ingest subcommand
    ingest_parser = subparsers.add_parser(
        "ingest", help="Fetch, reconcile, and store the schedule"
    )
    _add_airport_arg(ingest_parser)
    ingest_parser.add_argument(
        "date", nargs="?", default=None,
        help="First local date (YYYY-MM-DD, default: today at the airport)",
    )
    ingest_parser.add_argument(
        "--days", type=int, default=1, help="Number of days to fetch (default: 1)"
    )
    ingest_parser.add_argument(
        "--single-day", action="store_true", help="Force a single day"
    )
    ingest_parser.add_argument(
        "--dry-run", action="store_true", help="Fetch and merge only, no writes"
    )
    ingest_parser.add_argument(
        "--nocache", action="store_true", help="Ask providers to bypass their caches"
    )
    ingest_parser.add_argument(
        "--direction", choices=["arrival", "departure"], default="arrival",
        help="Which side of the schedule to ingest (default: arrival)",
    )

    # board subcommand
    board_parser = subparsers.add_parser("board", help="Print the live-enriched board")
    _add_airport_arg(board_parser)
    board_parser.add_argument(
        "--direction", choices=["arrival", "departure", "both"], default="arrival",
    )
    board_parser.add_argument(
        "--hours", type=int, default=12, help="Window length in hours (default: 12)"
    )
    board_parser.add_argument(
        "--start", default=None, help="Window start (ISO; naive means airport local time)"
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    load_dotenv()

    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    if args.command == "ingest":
        sys.exit(run_ingest(args))
    elif args.command == "board":
        if not 1 <= args.hours <= 168:
            print("Error: --hours must be between 1 and 168", file=sys.stderr)
            sys.exit(EXIT_BAD_ARGS)
        sys.exit(run_board(args))
