"""Precedence merge of records that describe the same physical leg."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flightboard.models import FlightLeg, LegRecord, status_priority
from flightboard.reconcile.identity import leg_key, match_codes, match_scope

logger = logging.getLogger(__name__)

# Codes and carrier name belong to the record that carries them; a marketing
# row never lends its own to the operating record.
CODE_FIELDS = ("flight_number", "callsign", "operating_code", "operating_flight_number")
OPERATOR_FIELDS = CODE_FIELDS + ("airline_name",)

# What a marketing row may still fill on a leg that has no operating record.
POINTER_FIELDS = ("operating_code", "operating_flight_number")

# Scalar fields a lower-ranked candidate may fill when the base lacks them.
BACKFILL_FIELDS = OPERATOR_FIELDS + (
    "aircraft_registration",
    "aircraft_type",
    "departure_code",
    "arrival_code",
    "actual_arrival_code",
    "scheduled_departure_utc",
    "estimated_departure_utc",
    "actual_departure_utc",
    "scheduled_arrival_utc",
    "estimated_arrival_utc",
    "actual_arrival_utc",
    "delay_minutes",
)


def adjusted_score(rec: LegRecord) -> int:
    """Status priority, +1 with a registration, -1 for a codeshare row."""
    score = status_priority(rec.status)
    if rec.aircraft_registration:
        score += 1
    if rec.is_codeshare:
        score -= 1
    return score


def filled_fields(rec: LegRecord) -> int:
    return sum(1 for name in BACKFILL_FIELDS if getattr(rec, name) is not None)


def rank(records: list[LegRecord]) -> list[LegRecord]:
    """Highest adjusted score first; ties go to more filled fields, then input order."""
    order = sorted(
        range(len(records)),
        key=lambda i: (-adjusted_score(records[i]), -filled_fields(records[i]), i),
    )
    return [records[i] for i in order]


def _may_lend(name: str, cand: LegRecord, leg_is_codeshare: bool) -> bool:
    if not cand.is_codeshare or name not in OPERATOR_FIELDS:
        return True
    return leg_is_codeshare and name in POINTER_FIELDS


def merge_group(records: list[LegRecord]) -> FlightLeg:
    """Collapse one identity group into a canonical FlightLeg.

    Status and schedule fields come from the best-ranked candidate. The leg's
    own codes and airline always come from the best-ranked operating record
    when the group has one, even if a marketing row outranks it.
    """
    if not records:
        raise ValueError("merge_group needs at least one record")
    ranked = rank(records)
    base = ranked[0]
    data = base.model_dump()

    operator = next((r for r in ranked if not r.is_codeshare), None)
    if base.is_codeshare and operator is not None:
        for name in OPERATOR_FIELDS:
            data[name] = getattr(operator, name)
        data["is_codeshare"] = False

    for name in BACKFILL_FIELDS:
        if data[name] is not None:
            continue
        for cand in ranked:
            if not _may_lend(name, cand, data["is_codeshare"]):
                continue
            value = getattr(cand, name)
            if value is not None:
                data[name] = value
                break

    codeshares: set[str] = set()
    pointers: set[str] = set()
    for cand in ranked:
        codeshares |= cand.codeshares
        pointers |= cand.operating_codes
        if cand.display_code:
            codeshares.add(cand.display_code)
    own = {data[name] for name in CODE_FIELDS if data[name]}
    data["codeshares"] = codeshares - own - pointers

    return FlightLeg(leg_key=leg_key(LegRecord(**data)), **data)


def group_records(records: list[LegRecord]) -> list[list[LegRecord]]:
    """Partition records into one group per physical leg, in first-seen order.

    Records with the same time anchor and departure join when they share any
    code, directly or through a chain (an IATA-only operating record, a
    codeshare naming both operating codes, an ICAO-keyed record).
    """
    parent = list(range(len(records)))

    def find(i: int) -> int:
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return i

    seen: dict[tuple, int] = {}
    for i, rec in enumerate(records):
        scope = match_scope(rec)
        codes = sorted(match_codes(rec)) if scope is not None else []
        slots = [(scope, code) for code in codes] or [("key", leg_key(rec))]
        for slot in slots:
            if slot not in seen:
                seen[slot] = i
                continue
            a, b = find(seen[slot]), find(i)
            if a != b:
                parent[max(a, b)] = min(a, b)

    groups: dict[int, list[LegRecord]] = {}
    for i, rec in enumerate(records):
        groups.setdefault(find(i), []).append(rec)
    return list(groups.values())


@dataclass
class MergeResult:
    legs: list[FlightLeg] = field(default_factory=list)
    absorbed: int = 0  # candidates folded into another record


def merge_records(records: list[LegRecord]) -> MergeResult:
    """Group records by physical leg and merge each group."""
    result = MergeResult()
    for group in group_records(records):
        leg = merge_group(group)
        result.legs.append(leg)
        result.absorbed += len(group) - 1
        if len(group) > 1:
            logger.debug("Merged %d records into %s", len(group), leg.leg_key)
    return result
