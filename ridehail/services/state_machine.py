"""
State Machine Engine
====================

Validates and applies every trip, route-change and panic-alert transition.

Each command is one ledger transaction:

1. read the entity and classify structural violations
   (``NotFound`` -> ``InvalidTransition`` for terminal -> ``Unauthorized``
   -> ``InvalidTransition`` for the wrong live state);
2. write through ``Ledger.conditional_update`` keyed on the status (and
   driver) that was just checked.  Zero matched rows means another command
   got there first and the caller gets ``Conflict``; nothing is retried.

Only after the transaction commits are the resulting domain events handed,
in order, to the ``NotificationDispatcher``.  A failed dispatch never
unwinds a committed transition; the caller sees it in ``dispatch_reports``.

``trips.version`` is bumped by every trip-scoped event and becomes the
event's ``sequence``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar
from uuid import UUID

from ridehail.domain.delivery import DispatchReport
from ridehail.domain.entities import (
    Actor,
    Location,
    check_trip_transition,
    require_assigned_driver,
    resolve_canceller,
)
from ridehail.domain.enums import (
    TERMINAL_TRIP_STATUSES,
    AlertType,
    ApprovalStatus,
    TripStatus,
    UserRole,
)
from ridehail.domain.errors import Conflict, InvalidTransition, NotFound, Unauthorized
from ridehail.domain.events import DomainEvent, EventKind
from ridehail.infrastructure.ledger import Ledger, LedgerStore
from ridehail.infrastructure.models import (
    NotificationModel,
    PanicAlertModel,
    RouteChangeModel,
    TripModel,
    UserModel,
)
from ridehail.services.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CENTS = Decimal("0.01")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(_CENTS)


@dataclass
class CommandResult:
    """The committed entity plus one dispatch report per emitted event."""

    entity: Any
    dispatch_reports: list[DispatchReport] = field(default_factory=list)


# ── Emergency contact ─────────────────────────────────────────────────


class EmergencyContactNotifier(Protocol):
    async def notify(
        self,
        contact_name: Optional[str],
        contact_phone: str,
        user_name: str,
        alert: PanicAlertModel,
    ) -> None: ...


class LoggingEmergencyContactNotifier:
    """Default notifier: records the outbound message in the log."""

    async def notify(self, contact_name, contact_phone, user_name, alert) -> None:
        logger.warning(
            "EMERGENCY CONTACT %s (%s): %s raised a panic alert on trip %s at (%s, %s)",
            contact_name or "unnamed",
            contact_phone,
            user_name,
            alert.trip_id,
            alert.latitude,
            alert.longitude,
        )


# ── Engine ────────────────────────────────────────────────────────────


class StateMachineEngine:
    def __init__(
        self,
        store: LedgerStore,
        dispatcher: NotificationDispatcher,
        emergency_notifier: Optional[EmergencyContactNotifier] = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.emergency_notifier = emergency_notifier or LoggingEmergencyContactNotifier()

    # ── Trips ─────────────────────────────────────────────────────────

    async def request_trip(
        self,
        passenger_id: UUID,
        origin: Location,
        destination: Location,
        estimated_price: Any,
    ) -> CommandResult:
        price = _money(estimated_price)

        async def work(ledger: Ledger):
            passenger = await _load_user(ledger, passenger_id)
            if passenger.role != UserRole.PASSENGER:
                raise Unauthorized("Only passengers can request trips")
            trip = await ledger.insert(
                TripModel(
                    passenger_id=passenger_id,
                    status=TripStatus.REQUESTED,
                    origin_address=origin.address,
                    origin_lat=origin.latitude,
                    origin_lng=origin.longitude,
                    destination_address=destination.address,
                    destination_lat=destination.latitude,
                    destination_lng=destination.longitude,
                    estimated_price=price,
                    requested_at=_utcnow(),
                    route_change_count=0,
                    panic_alert_count=0,
                    version=1,
                )
            )
            event = _trip_event(
                EventKind.TRIP_REQUESTED,
                trip,
                passenger_id,
                origin=origin.address,
                destination=destination.address,
                origin_lat=origin.latitude,
                origin_lng=origin.longitude,
                estimated_price=str(price),
            )
            return trip, [event]

        trip, events = await self._apply("request_trip", work)
        logger.info("Trip %s requested by passenger=%s", trip.id, passenger_id)
        return await self._dispatch(trip, events)

    async def accept_trip(
        self,
        driver_id: UUID,
        trip_id: UUID,
        estimated_arrival: Optional[int] = None,
    ) -> CommandResult:
        async def work(ledger: Ledger):
            trip = await _load_trip(ledger, trip_id)
            current = TripStatus(trip.status)
            if current in TERMINAL_TRIP_STATUSES:
                raise InvalidTransition(f"Trip is already {current.value}")
            driver = await _load_user(ledger, driver_id)
            if driver.role != UserRole.DRIVER:
                raise Unauthorized("Only drivers can accept trips")
            if current is not TripStatus.REQUESTED:
                raise Conflict("Trip was already accepted by another driver")

            updated = await ledger.conditional_update(
                TripModel,
                trip_id,
                {"status": TripStatus.REQUESTED},
                {
                    "status": TripStatus.ACCEPTED,
                    "driver_id": driver_id,
                    "accepted_at": _utcnow(),
                    "version": TripModel.version + 1,
                },
            )
            if updated is None:
                raise Conflict("Trip was already accepted by another driver")
            payload = {"driver_name": driver.name}
            if estimated_arrival is not None:
                payload["estimated_arrival"] = estimated_arrival
            return updated, [_trip_event(EventKind.TRIP_ACCEPTED, updated, driver_id, **payload)]

        trip, events = await self._apply("accept_trip", work)
        logger.info("Trip %s accepted by driver=%s", trip.id, driver_id)
        return await self._dispatch(trip, events)

    async def notify_driver_arrived(self, driver_id: UUID, trip_id: UUID) -> CommandResult:
        async def work(ledger: Ledger):
            trip = await _load_trip(ledger, trip_id)
            _check_driver_command(trip, driver_id, TripStatus.ACCEPTED, "arrive")
            updated = await ledger.conditional_update(
                TripModel,
                trip_id,
                {"status": TripStatus.ACCEPTED, "driver_id": driver_id},
                {"arrived_at": _utcnow(), "version": TripModel.version + 1},
            )
            if updated is None:
                raise Conflict("Trip changed while marking arrival")
            driver = await _load_user(ledger, driver_id)
            event = _trip_event(
                EventKind.DRIVER_ARRIVED, updated, driver_id, driver_name=driver.name
            )
            return updated, [event]

        trip, events = await self._apply("notify_driver_arrived", work)
        logger.info("Driver %s arrived for trip %s", driver_id, trip.id)
        return await self._dispatch(trip, events)

    async def start_trip(self, driver_id: UUID, trip_id: UUID) -> CommandResult:
        async def work(ledger: Ledger):
            trip = await _load_trip(ledger, trip_id)
            _check_driver_command(trip, driver_id, TripStatus.ACCEPTED, "start")
            check_trip_transition(trip.status, TripStatus.IN_PROGRESS)
            updated = await ledger.conditional_update(
                TripModel,
                trip_id,
                {"status": TripStatus.ACCEPTED, "driver_id": driver_id},
                {
                    "status": TripStatus.IN_PROGRESS,
                    "started_at": _utcnow(),
                    "version": TripModel.version + 1,
                },
            )
            if updated is None:
                raise Conflict("Trip changed while starting")
            return updated, [_trip_event(EventKind.TRIP_STARTED, updated, driver_id)]

        trip, events = await self._apply("start_trip", work)
        logger.info("Trip %s started", trip.id)
        return await self._dispatch(trip, events)

    async def complete_trip(
        self, driver_id: UUID, trip_id: UUID, actual_price: Any = None
    ) -> CommandResult:
        async def work(ledger: Ledger):
            trip = await _load_trip(ledger, trip_id)
            _check_driver_command(trip, driver_id, TripStatus.IN_PROGRESS, "complete")
            check_trip_transition(trip.status, TripStatus.COMPLETED)
            fare = _money(actual_price if actual_price is not None else trip.estimated_price)
            updated = await ledger.conditional_update(
                TripModel,
                trip_id,
                {"status": TripStatus.IN_PROGRESS, "driver_id": driver_id},
                {
                    "status": TripStatus.COMPLETED,
                    "actual_price": fare,
                    "completed_at": _utcnow(),
                    "version": TripModel.version + 1,
                },
            )
            if updated is None:
                raise Conflict("Trip changed while completing")
            event = _trip_event(EventKind.TRIP_COMPLETED, updated, driver_id, fare=str(fare))
            return updated, [event]

        trip, events = await self._apply("complete_trip", work)
        logger.info("Trip %s completed (fare=%s)", trip.id, trip.actual_price)
        return await self._dispatch(trip, events)

    async def cancel_trip(
        self,
        actor_id: UUID,
        actor_role: UserRole,
        trip_id: UUID,
        reason: Optional[str] = None,
    ) -> CommandResult:
        actor = Actor(actor_id, UserRole(actor_role))

        async def work(ledger: Ledger):
            trip = await _load_trip(ledger, trip_id)
            current = TripStatus(trip.status)
            if current in TERMINAL_TRIP_STATUSES:
                raise InvalidTransition(f"Trip is already {current.value}")
            cancelled_by = resolve_canceller(actor, trip.passenger_id, trip.driver_id)
            check_trip_transition(current, TripStatus.CANCELLED)
            updated = await ledger.conditional_update(
                TripModel,
                trip_id,
                {"status": current},
                {
                    "status": TripStatus.CANCELLED,
                    "cancelled_at": _utcnow(),
                    "cancelled_by": cancelled_by,
                    "cancel_reason": reason,
                    "version": TripModel.version + 1,
                },
            )
            if updated is None:
                raise Conflict("Trip changed while cancelling")
            event = _trip_event(
                EventKind.TRIP_CANCELLED,
                updated,
                actor_id,
                cancelled_by=cancelled_by.value,
                reason=reason,
            )
            return updated, [event]

        trip, events = await self._apply("cancel_trip", work)
        logger.info("Trip %s cancelled by %s", trip.id, trip.cancelled_by.value)
        return await self._dispatch(trip, events)

    # ── Route changes ─────────────────────────────────────────────────

    async def request_route_change(
        self,
        driver_id: UUID,
        trip_id: UUID,
        original_route: dict,
        new_route: dict,
        reason: str,
    ) -> CommandResult:
        async def work(ledger: Ledger):
            trip = await _load_trip(ledger, trip_id)
            _check_driver_command(trip, driver_id, TripStatus.IN_PROGRESS, "change the route of")
            updated = await ledger.conditional_update(
                TripModel,
                trip_id,
                {"status": TripStatus.IN_PROGRESS, "driver_id": driver_id},
                {
                    "route_change_count": TripModel.route_change_count + 1,
                    "version": TripModel.version + 1,
                },
            )
            if updated is None:
                raise Conflict("Trip changed while requesting a route change")
            change = await ledger.insert(
                RouteChangeModel(
                    trip_id=trip_id,
                    driver_id=driver_id,
                    original_route=original_route,
                    new_route=new_route,
                    reason=reason,
                    approval_status=ApprovalStatus.PENDING,
                    admin_notified=False,
                    created_at=_utcnow(),
                )
            )
            event = _trip_event(
                EventKind.ROUTE_CHANGE_REQUESTED,
                updated,
                driver_id,
                route_change_id=str(change.id),
                reason=reason,
                new_route=new_route,
            )
            return change, [event]

        change, events = await self._apply("request_route_change", work)
        logger.info("Route change %s requested on trip %s", change.id, trip_id)
        return await self._dispatch(change, events)

    async def respond_to_route_change(
        self, passenger_id: UUID, route_change_id: UUID, approved: bool
    ) -> CommandResult:
        decision = ApprovalStatus.APPROVED if approved else ApprovalStatus.REJECTED

        async def work(ledger: Ledger):
            change = await ledger.get(RouteChangeModel, route_change_id)
            if change is None:
                raise NotFound("Route change request not found")
            trip = await _load_trip(ledger, change.trip_id)
            if trip.passenger_id != passenger_id:
                raise Unauthorized("Only the trip's passenger can answer a route change")
            if change.approval_status != ApprovalStatus.PENDING:
                raise Conflict(f"Route change already {change.approval_status.value}")

            answered = await ledger.conditional_update(
                RouteChangeModel,
                route_change_id,
                {"approval_status": ApprovalStatus.PENDING},
                {
                    "approval_status": decision,
                    "response_timestamp": _utcnow(),
                    "admin_notified": not approved,
                },
            )
            if answered is None:
                raise Conflict("Route change was answered concurrently")

            bump = 1 if approved else 2
            trip = await ledger.conditional_update(
                TripModel, trip.id, {}, {"version": TripModel.version + bump}
            )
            common = {"route_change_id": str(answered.id)}
            events = [
                _trip_event(
                    EventKind.ROUTE_CHANGE_RESPONDED,
                    trip,
                    passenger_id,
                    sequence=trip.version - bump + 1,
                    driver_id=answered.driver_id,
                    approved=approved,
                    **common,
                )
            ]
            if not approved:
                events.append(
                    _trip_event(
                        EventKind.ROUTE_CHANGE_REJECTED,
                        trip,
                        passenger_id,
                        driver_id=answered.driver_id,
                        reason=answered.reason,
                        **common,
                    )
                )
            return answered, events

        change, events = await self._apply("respond_to_route_change", work)
        logger.info("Route change %s %s", change.id, change.approval_status.value)
        return await self._dispatch(change, events)

    # ── Panic alerts ──────────────────────────────────────────────────

    async def raise_panic_alert(
        self,
        user_id: UUID,
        trip_id: UUID,
        alert_type: AlertType,
        coordinates: Optional[tuple[float, float]] = None,
    ) -> CommandResult:
        alert_type = AlertType(alert_type)
        lat, lng = coordinates if coordinates is not None else (None, None)

        async def work(ledger: Ledger):
            trip = await _load_trip(ledger, trip_id)
            if user_id not in (trip.passenger_id, trip.driver_id):
                raise Unauthorized("Only the trip's passenger or driver can raise a panic alert")
            user = await _load_user(ledger, user_id)
            contact_phone = (
                user.emergency_contact_phone
                if alert_type is AlertType.APP_BUTTON
                else None
            )

            updated = await ledger.conditional_update(
                TripModel,
                trip_id,
                {},
                {
                    "panic_alert_count": TripModel.panic_alert_count + 1,
                    "version": TripModel.version + 1,
                },
            )
            alert = await ledger.insert(
                PanicAlertModel(
                    trip_id=trip_id,
                    user_id=user_id,
                    alert_type=alert_type,
                    latitude=lat,
                    longitude=lng,
                    is_resolved=False,
                    emergency_contact_notified=bool(contact_phone),
                    created_at=_utcnow(),
                )
            )
            event = _trip_event(
                EventKind.PANIC_RAISED,
                updated,
                user_id,
                panic_id=str(alert.id),
                alert_type=alert_type.value,
                user_id=str(user_id),
                user_name=user.name,
                latitude=lat,
                longitude=lng,
            )
            contact = (user.emergency_contact_name, contact_phone, user.name)
            return (alert, contact), [event]

        (alert, contact), events = await self._apply("raise_panic_alert", work)
        logger.warning(
            "PANIC alert %s on trip %s by user=%s (%s)",
            alert.id,
            trip_id,
            user_id,
            alert_type.value,
        )
        contact_name, contact_phone, user_name = contact
        if contact_phone:
            await self._notify_emergency_contact(contact_name, contact_phone, user_name, alert)
        return await self._dispatch(alert, events)

    async def resolve_panic_alert(
        self, admin_id: UUID, panic_id: UUID, notes: Optional[str] = None
    ) -> CommandResult:
        async def work(ledger: Ledger):
            admin = await ledger.get(UserModel, admin_id)
            if admin is None or admin.role != UserRole.ADMIN:
                raise Unauthorized("Only admins can resolve panic alerts")
            alert = await ledger.get(PanicAlertModel, panic_id)
            if alert is None:
                raise NotFound("Panic alert not found")
            if alert.is_resolved:
                raise Conflict("Panic alert is already resolved")
            resolved = await ledger.conditional_update(
                PanicAlertModel,
                panic_id,
                {"is_resolved": False},
                {
                    "is_resolved": True,
                    "resolved_by": admin_id,
                    "resolved_at": _utcnow(),
                    "admin_notes": notes,
                },
            )
            if resolved is None:
                raise Conflict("Panic alert is already resolved")
            trip = await _load_trip(ledger, resolved.trip_id)
            event = _trip_event(
                EventKind.PANIC_RESOLVED, trip, admin_id, panic_id=str(panic_id)
            )
            return resolved, [event]

        alert, events = await self._apply("resolve_panic_alert", work)
        logger.info("Panic alert %s resolved by admin=%s", alert.id, admin_id)
        return await self._dispatch(alert, events)

    # ── Notifications ─────────────────────────────────────────────────

    async def mark_notification_read(
        self, user_id: UUID, notification_id: UUID
    ) -> CommandResult:
        """Idempotent: marking an already-read record succeeds unchanged."""

        async def work(ledger: Ledger):
            record = await ledger.conditional_update(
                NotificationModel,
                notification_id,
                {"user_id": user_id},
                {"is_read": True},
            )
            if record is None:
                raise NotFound("Notification not found")
            return record

        return CommandResult(await self._apply("mark_notification_read", work))

    # ── Internals ─────────────────────────────────────────────────────

    async def _apply(self, command: str, work: Callable[[Ledger], Awaitable[T]]) -> T:
        try:
            return await self.store.run(work)
        except Unauthorized as exc:
            logger.warning("Rejected %s: %s", command, exc.message)
            raise

    async def _dispatch(self, entity: Any, events: list[DomainEvent]) -> CommandResult:
        reports = await self.dispatcher.dispatch_all(events)
        return CommandResult(entity, reports)

    async def _notify_emergency_contact(self, contact_name, contact_phone, user_name, alert):
        try:
            await self.emergency_notifier.notify(contact_name, contact_phone, user_name, alert)
        except Exception:
            logger.exception("Emergency contact notification failed for alert %s", alert.id)


# ── Helpers ───────────────────────────────────────────────────────────


async def _load_trip(ledger: Ledger, trip_id: UUID) -> TripModel:
    trip = await ledger.get(TripModel, trip_id)
    if trip is None:
        raise NotFound("Trip not found")
    return trip


async def _load_user(ledger: Ledger, user_id: UUID) -> UserModel:
    user = await ledger.get(UserModel, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def _check_driver_command(
    trip: TripModel, driver_id: UUID, required: TripStatus, verb: str
) -> None:
    current = TripStatus(trip.status)
    if current in TERMINAL_TRIP_STATUSES:
        raise InvalidTransition(f"Trip is already {current.value}")
    if trip.driver_id is not None:
        require_assigned_driver(trip.driver_id, driver_id)
    if current is not required:
        raise InvalidTransition(f"Cannot {verb} a trip that is {current.value}")
    require_assigned_driver(trip.driver_id, driver_id)


def _trip_event(
    kind: EventKind,
    trip: TripModel,
    actor_id: UUID,
    *,
    sequence: Optional[int] = None,
    driver_id: Optional[UUID] = None,
    **payload: Any,
) -> DomainEvent:
    return DomainEvent(
        kind=kind,
        trip_id=trip.id,
        sequence=trip.version if sequence is None else sequence,
        passenger_id=trip.passenger_id,
        driver_id=driver_id or trip.driver_id,
        actor_id=actor_id,
        payload=payload,
    )
