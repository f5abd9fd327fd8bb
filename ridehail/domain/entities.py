"""
Domain value objects and transition rules.

Patterns used
-------------
- **State Pattern** on trips: ``check_trip_transition`` enforces the
  lifecycle REQUESTED -> ACCEPTED -> IN_PROGRESS -> COMPLETED, with
  CANCELLED reachable from every non-terminal status.
- ``resolve_canceller`` encapsulates who may cancel a trip and in which
  capacity.

These helpers are pure: they judge a freshly read snapshot.  The write
itself is always a conditional update, so a snapshot that goes stale
between the check and the write surfaces as ``Conflict``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from ridehail.domain.enums import (
    TERMINAL_TRIP_STATUSES,
    TRIP_TRANSITIONS,
    CancelledBy,
    TripStatus,
    UserRole,
)
from ridehail.domain.errors import InvalidTransition, Unauthorized


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    address: str
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Actor:
    user_id: UUID
    role: UserRole


# ── Rules ─────────────────────────────────────────────────────────────


def check_trip_transition(current: TripStatus, target: TripStatus) -> None:
    """Raise ``InvalidTransition`` unless *current* -> *target* is legal."""
    current = TripStatus(current)
    if current in TERMINAL_TRIP_STATUSES:
        raise InvalidTransition(f"Trip is already {current.value}")
    if target not in TRIP_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Cannot transition trip from {current.value} to {target.value}"
        )


def require_assigned_driver(driver_id: Optional[UUID], actor_id: UUID) -> None:
    if driver_id is None or driver_id != actor_id:
        raise Unauthorized("Only the assigned driver can do this")


def resolve_canceller(
    actor: Actor, passenger_id: UUID, driver_id: Optional[UUID]
) -> CancelledBy:
    """Return the capacity in which *actor* cancels, or raise ``Unauthorized``."""
    if actor.user_id == passenger_id:
        return CancelledBy.PASSENGER
    if driver_id is not None and actor.user_id == driver_id:
        return CancelledBy.DRIVER
    if actor.role == UserRole.ADMIN:
        return CancelledBy.ADMIN
    raise Unauthorized("Not authorized to cancel this trip")
