"""
Recipient resolution
====================

Fixed table from event kind to audience:

=========================  ==========================================
event                      recipients
=========================  ==========================================
trip requested             every available driver
trip accepted / arrived /  the passenger
trip started
trip completed             passenger and driver
trip cancelled             the counterparty of the canceller
                           (admin cancel: passenger and driver)
route change requested     the passenger
route change responded     the requesting driver
route change rejected      every active admin
panic raised               every active admin
panic resolved             nobody
=========================  ==========================================

Role-wide audiences are read from the ledger on every call, never from a
process-level cache, so several API processes resolve identically.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select

from ridehail.domain.enums import CancelledBy, DriverStatus, UserRole, UserStatus
from ridehail.domain.events import DomainEvent, EventKind
from ridehail.infrastructure.ledger import Ledger, LedgerStore
from ridehail.infrastructure.models import DriverModel, UserModel


class Audience(str, enum.Enum):
    PASSENGER = "passenger"
    DRIVER = "driver"
    ADMIN = "admin"


@dataclass(frozen=True)
class Recipient:
    user_id: UUID
    audience: Audience


class RecipientResolver:
    def __init__(self, store: LedgerStore):
        self.store = store

    async def resolve(self, event: DomainEvent) -> list[Recipient]:
        kind = event.kind
        if kind is EventKind.TRIP_REQUESTED:
            ids = await self.available_driver_ids(event)
            return _dedupe(Recipient(i, Audience.DRIVER) for i in ids)
        if kind in (
            EventKind.TRIP_ACCEPTED,
            EventKind.DRIVER_ARRIVED,
            EventKind.TRIP_STARTED,
            EventKind.ROUTE_CHANGE_REQUESTED,
        ):
            return [Recipient(event.passenger_id, Audience.PASSENGER)]
        if kind is EventKind.TRIP_COMPLETED:
            return _dedupe(
                [
                    Recipient(event.passenger_id, Audience.PASSENGER),
                    Recipient(event.driver_id, Audience.DRIVER),
                ]
            )
        if kind is EventKind.TRIP_CANCELLED:
            return self._cancel_counterparties(event)
        if kind is EventKind.ROUTE_CHANGE_RESPONDED:
            return _dedupe([Recipient(event.driver_id, Audience.DRIVER)])
        if kind in (EventKind.ROUTE_CHANGE_REJECTED, EventKind.PANIC_RAISED):
            ids = await self.admin_ids()
            return _dedupe(Recipient(i, Audience.ADMIN) for i in ids)
        return []

    def _cancel_counterparties(self, event: DomainEvent) -> list[Recipient]:
        cancelled_by = CancelledBy(event.payload["cancelled_by"])
        passenger = Recipient(event.passenger_id, Audience.PASSENGER)
        driver = Recipient(event.driver_id, Audience.DRIVER)
        if cancelled_by is CancelledBy.PASSENGER:
            return _dedupe([driver])
        if cancelled_by is CancelledBy.DRIVER:
            return [passenger]
        return _dedupe([passenger, driver])

    async def available_driver_ids(self, event: DomainEvent) -> list[UUID]:
        """
        Drivers to offer a new trip to.

        Extension point: the whole available pool is returned today; a
        proximity filter on ``event.payload['origin']`` would go here.
        """

        async def work(ledger: Ledger) -> list[UUID]:
            result = await ledger.session.execute(
                select(DriverModel.user_id)
                .join(UserModel, UserModel.id == DriverModel.user_id)
                .where(
                    DriverModel.status == DriverStatus.AVAILABLE,
                    UserModel.status == UserStatus.ACTIVE,
                )
                .order_by(DriverModel.user_id)
            )
            return list(result.scalars().all())

        return await self.store.run(work)

    async def admin_ids(self) -> list[UUID]:
        async def work(ledger: Ledger) -> list[UUID]:
            result = await ledger.session.execute(
                select(UserModel.id)
                .where(
                    UserModel.role == UserRole.ADMIN,
                    UserModel.status == UserStatus.ACTIVE,
                )
                .order_by(UserModel.id)
            )
            return list(result.scalars().all())

        return await self.store.run(work)


def _dedupe(recipients) -> list[Recipient]:
    seen: set[UUID] = set()
    out: list[Recipient] = []
    for r in recipients:
        if r.user_id is None or r.user_id in seen:
            continue
        seen.add(r.user_id)
        out.append(r)
    return out
