"""
Read-only views
===============

Trip lookups for participants and the admin console views (open panic
alerts, rejected route changes).  Nothing here mutates the ledger.
"""

from __future__ import annotations

from uuid import UUID

from ridehail.domain.entities import Actor
from ridehail.domain.enums import ApprovalStatus, UserRole
from ridehail.domain.errors import NotFound, Unauthorized
from ridehail.infrastructure.ledger import Ledger, LedgerStore
from ridehail.infrastructure.models import PanicAlertModel, RouteChangeModel, TripModel


class TripQueries:
    def __init__(self, store: LedgerStore):
        self.store = store

    async def get_trip(self, actor: Actor, trip_id: UUID) -> TripModel:
        async def work(ledger: Ledger) -> TripModel:
            trip = await ledger.get(TripModel, trip_id)
            if trip is None:
                raise NotFound("Trip not found")
            return trip

        trip = await self.store.run(work)
        if actor.role != UserRole.ADMIN and actor.user_id not in (
            trip.passenger_id,
            trip.driver_id,
        ):
            raise Unauthorized("Not a participant of this trip")
        return trip

    async def list_trips_for(self, actor: Actor, limit: int = 50) -> list[TripModel]:
        """Driver -> trips driven; anyone else -> trips requested.  Newest first."""
        if actor.role == UserRole.DRIVER:
            criterion = TripModel.driver_id == actor.user_id
        else:
            criterion = TripModel.passenger_id == actor.user_id

        async def work(ledger: Ledger) -> list[TripModel]:
            return await ledger.query(
                TripModel,
                criterion,
                order_by=(TripModel.requested_at.desc(),),
                limit=limit,
            )

        return await self.store.run(work)


class AdminQueries:
    def __init__(self, store: LedgerStore):
        self.store = store

    async def active_panic_alerts(self) -> list[PanicAlertModel]:
        async def work(ledger: Ledger) -> list[PanicAlertModel]:
            return await ledger.query(
                PanicAlertModel,
                PanicAlertModel.is_resolved.is_(False),
                order_by=(PanicAlertModel.created_at.desc(),),
            )

        return await self.store.run(work)

    async def rejected_route_changes(self) -> list[RouteChangeModel]:
        async def work(ledger: Ledger) -> list[RouteChangeModel]:
            return await ledger.query(
                RouteChangeModel,
                RouteChangeModel.approval_status == ApprovalStatus.REJECTED,
                order_by=(RouteChangeModel.response_timestamp.desc(),),
            )

        return await self.store.run(work)
