"""Domain events emitted by the state machine after a transition commits."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID


class EventKind(str, enum.Enum):
    TRIP_REQUESTED = "trip_requested"
    TRIP_ACCEPTED = "trip_accepted"
    DRIVER_ARRIVED = "driver_arrived"
    TRIP_STARTED = "trip_started"
    TRIP_COMPLETED = "trip_completed"
    TRIP_CANCELLED = "trip_cancelled"
    ROUTE_CHANGE_REQUESTED = "route_change_requested"
    ROUTE_CHANGE_RESPONDED = "route_change_responded"
    ROUTE_CHANGE_REJECTED = "route_change_rejected"
    PANIC_RAISED = "panic_raised"
    PANIC_RESOLVED = "panic_resolved"


@dataclass(frozen=True)
class DomainEvent:
    """
    One accepted transition.

    ``sequence`` is the trip's ``version`` after the transition; events of
    the same trip are totally ordered by it.
    """

    kind: EventKind
    trip_id: UUID
    sequence: int
    passenger_id: UUID
    driver_id: Optional[UUID] = None
    actor_id: Optional[UUID] = None
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
