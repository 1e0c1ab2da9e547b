"""Natural-key resolution for flight legs."""

from __future__ import annotations

from datetime import datetime

from flightboard.models import LegRecord

HASH_PREFIX = "hash:"


def identity_code(rec: LegRecord) -> str | None:
    """Flight-code component of the natural key.

    A codeshare row is keyed under the operating flight it points at, so it
    lands in the same group as the operating record. Otherwise callsign wins
    over flight number.
    """
    if rec.is_codeshare and (rec.operating_code or rec.operating_flight_number):
        return rec.operating_code or rec.operating_flight_number
    return rec.callsign or rec.flight_number or rec.operating_code


def match_codes(rec: LegRecord) -> set[str]:
    """Every code under which another provider may report this physical leg.

    Providers disagree on code style: one gives only the IATA number, another
    keys the operating flight by ICAO callsign. Two records with the same time
    anchor and departure that share any of these codes are the same leg.
    """
    return rec.own_codes | rec.operating_codes


def time_anchor(rec: LegRecord) -> datetime | None:
    """First of STA, ETA, STD."""
    return rec.scheduled_arrival_utc or rec.estimated_arrival_utc or rec.scheduled_departure_utc


def natural_key(rec: LegRecord) -> tuple[str, datetime | None, str]:
    """(ident, anchor, dep_code) as stored under the unique constraint.

    With neither a flight code nor a time anchor the raw row's content hash
    stands in, so unrelated rows never collapse onto an empty key.
    """
    code = identity_code(rec)
    anchor = time_anchor(rec)
    if not code and anchor is None:
        return HASH_PREFIX + rec.raw_hash, None, ""
    return code or "", anchor, rec.departure_code or ""


def match_scope(rec: LegRecord) -> tuple[datetime | None, str] | None:
    """Time anchor and departure shared by records of one leg; None for hash keys."""
    ident, anchor, dep = natural_key(rec)
    if ident.startswith(HASH_PREFIX):
        return None
    return anchor, dep


def format_key(ident: str, anchor: datetime | None, dep_code: str) -> str:
    if ident.startswith(HASH_PREFIX):
        return ident
    stamp = anchor.isoformat() if anchor is not None else ""
    return f"{ident}|{stamp}|{dep_code}"


def leg_key(rec: LegRecord) -> str:
    return format_key(*natural_key(rec))
