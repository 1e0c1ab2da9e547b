"""Provider timestamp normalization to UTC.

Provider feeds mix three shapes of timestamp:

- absolute instants with an explicit zone (``...Z`` / ``...-08:00``)
- naive local wall-clock times, only meaningful with the right airport zone
- odd formats (lower-case ``t`` separator, milliseconds, epoch seconds)

``to_utc`` handles all three and returns None rather than guessing.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pandas as pd

logger = logging.getLogger(__name__)

_LOWER_T = re.compile(r"(\d)t(\d)")


def resolve_timezone(name: str | ZoneInfo | None) -> ZoneInfo | None:
    """Return a ZoneInfo for an IANA name, or None if unknown/empty."""
    if name is None or isinstance(name, ZoneInfo):
        return name
    name = str(name).strip()
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return None


def _as_utc(dt: datetime, assumed: ZoneInfo | None) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=assumed or timezone.utc)
    return dt.astimezone(timezone.utc)


def _loose_parse(text: str) -> datetime | None:
    parsed = pd.to_datetime(text, errors="coerce")
    if parsed is None or pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def to_utc(raw: object, assumed_tz: str | ZoneInfo | None) -> datetime | None:
    """Convert a provider timestamp to an aware UTC datetime.

    An explicit ``Z``/offset always wins over ``assumed_tz``. Naive values are
    read as wall-clock time in ``assumed_tz`` (UTC if that is None too).
    Unparseable input returns None; callers treat that as unknown, never now.
    """
    if raw is None or isinstance(raw, bool):
        return None
    assumed = resolve_timezone(assumed_tz)

    if isinstance(raw, datetime):
        return _as_utc(raw, assumed)
    if isinstance(raw, (int, float)):
        # epoch seconds
        try:
            return datetime.fromtimestamp(raw, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    text = str(raw).strip()
    if not text:
        return None
    text = _LOWER_T.sub(r"\1T\2", text)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        dt = _loose_parse(text)
        if dt is None:
            logger.debug("Unparseable timestamp: %r", raw)
            return None

    return _as_utc(dt, assumed)


def local_day_bounds(day: date, tz: str | ZoneInfo) -> tuple[datetime, datetime]:
    """UTC [start, end) instants of a local calendar day."""
    zone = resolve_timezone(tz) or timezone.utc
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def local_date(instant: datetime, tz: str | ZoneInfo) -> date:
    """Calendar date of an instant in the given zone."""
    zone = resolve_timezone(tz) or timezone.utc
    return _as_utc(instant, None).astimezone(zone).date()


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if dt is None:
        return None
    return _as_utc(dt, None)


def minutes_between(later: datetime | None, earlier: datetime | None) -> int | None:
    """Signed whole minutes ``later - earlier``; None if either is unknown."""
    if later is None or earlier is None:
        return None
    return int(round((later - earlier).total_seconds() / 60.0))


def parse_day(value: str) -> date:
    """Strict ``YYYY-MM-DD`` parsing for date arguments."""
    return datetime.strptime(value, "%Y-%m-%d").date()
