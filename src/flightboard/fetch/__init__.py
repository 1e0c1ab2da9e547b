"""Provider adapters: fetch raw rows and map them onto LegRecord.

Usage:
    from flightboard.fetch import build_adapters

    for adapter in build_adapters(settings):
        if adapter.supports(day, today):
            result = adapter.fetch(settings.airport, day, Direction.ARRIVAL)
            records = [adapter.normalize(r, settings.airport, Direction.ARRIVAL) for r in result.rows]
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from flightboard.fetch.http import FetchResult, HttpClient, fetch_pages  # noqa: F401

if TYPE_CHECKING:
    from flightboard.config import AirportConfig
    from flightboard.models import Direction, LegRecord


@runtime_checkable
class SourceAdapter(Protocol):
    """Protocol for schedule provider adapters."""

    name: str

    def supports(self, day: date, today: date) -> bool: ...

    def fetch(self, airport: AirportConfig, day: date, direction: Direction) -> FetchResult: ...

    def normalize(
        self, row: Any, airport: AirportConfig, direction: Direction
    ) -> LegRecord | None: ...


def dig(row: Any, path: tuple[str, ...]) -> Any:
    """Follow an explicit key path through nested dicts; None if any hop is missing."""
    if not path:
        return None
    node = row
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def content_hash(row: dict) -> str:
    """Stable hash of a raw provider row."""
    blob = json.dumps(row, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(blob.encode("utf-8")).hexdigest()[:32]


from flightboard.fetch.registry import build_adapters, get_adapter  # noqa: E402, F401
