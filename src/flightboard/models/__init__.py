"""Pydantic v2 models for flightboard.

Re-exports from submodules so ``from flightboard.models import X`` keeps working.
"""

from flightboard.models.legs import (  # noqa: F401
    STATUS_PRIORITY,
    TERMINAL_STATUSES,
    Direction,
    FlightLeg,
    FlightStatus,
    LegRecord,
    Provider,
    StatusSource,
    clean_code,
    normalize_status,
    status_priority,
)
from flightboard.models.live import (  # noqa: F401
    Board,
    FlightSummary,
    LivePosition,
    ServedLeg,
)
