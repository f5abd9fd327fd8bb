"""Notification content per event kind and audience."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ridehail.domain.enums import AlertType, CancelledBy, NotificationType
from ridehail.domain.events import DomainEvent, EventKind
from ridehail.services.recipients import Audience


@dataclass(frozen=True)
class RenderedNotification:
    notification_type: NotificationType
    title: str
    body: str
    data: dict[str, Any]


_CANCELLER_TEXT = {
    CancelledBy.PASSENGER: "the passenger",
    CancelledBy.DRIVER: "the driver",
    CancelledBy.ADMIN: "support",
}


def render(event: DomainEvent, audience: Audience) -> RenderedNotification:
    p = event.payload
    kind = event.kind

    if kind is EventKind.TRIP_REQUESTED:
        ntype = NotificationType.TRIP_REQUEST
        title = "New trip available"
        body = f"From {p['origin']} to {p['destination']} - ${p['estimated_price']}"
    elif kind is EventKind.TRIP_ACCEPTED:
        ntype = NotificationType.TRIP_ACCEPTED
        title = "Driver accepted"
        eta = p.get("estimated_arrival")
        eta_text = f" - arriving in {eta} min" if eta else ""
        body = f"{p['driver_name']} accepted your trip{eta_text}"
    elif kind is EventKind.DRIVER_ARRIVED:
        ntype = NotificationType.DRIVER_ARRIVED
        title = "Driver arrived"
        body = f"{p['driver_name']} is waiting for you"
    elif kind is EventKind.TRIP_STARTED:
        ntype = NotificationType.TRIP_STARTED
        title = "Trip started"
        body = "Your trip has started. Have a good ride!"
    elif kind is EventKind.TRIP_COMPLETED:
        ntype = NotificationType.TRIP_COMPLETED
        title = "Trip completed"
        if audience is Audience.DRIVER:
            body = f"Trip earnings: ${p['fare']}"
        else:
            body = f"Trip finished - total: ${p['fare']}"
    elif kind is EventKind.TRIP_CANCELLED:
        ntype = NotificationType.TRIP_CANCELLED
        title = "Trip cancelled"
        reason = p.get("reason")
        by = _CANCELLER_TEXT[CancelledBy(p["cancelled_by"])]
        body = f"Trip cancelled by {by}" + (f" - {reason}" if reason else "")
    elif kind is EventKind.ROUTE_CHANGE_REQUESTED:
        ntype = NotificationType.ROUTE_CHANGE_REQUEST
        title = "Route change"
        body = f"Your driver asks to change the route: {p['reason']}"
    elif kind is EventKind.ROUTE_CHANGE_RESPONDED:
        ntype = NotificationType.ROUTE_CHANGE_RESPONSE
        approved = p["approved"]
        title = "Route change approved" if approved else "Route change rejected"
        body = (
            "The passenger approved the new route"
            if approved
            else "The passenger rejected the new route; keep the original one"
        )
    elif kind is EventKind.ROUTE_CHANGE_REJECTED:
        ntype = NotificationType.ROUTE_CHANGE_REJECTED
        title = "Route change rejected"
        body = f"A passenger rejected a route change: {p['reason']}"
    elif kind is EventKind.PANIC_RAISED:
        ntype = NotificationType.PANIC_ALERT
        title = "PANIC ALERT"
        how = (
            "with the volume buttons"
            if AlertType(p["alert_type"]) is AlertType.VOLUME_BUTTON
            else "from the app"
        )
        body = f"{p['user_name']} triggered a panic alert {how}"
    else:
        raise ValueError(f"No notification template for {kind.value}")

    data = {"type": ntype.value, "event": kind.value, "trip_id": str(event.trip_id)}
    data.update(p)
    return RenderedNotification(ntype, title, body, data)
