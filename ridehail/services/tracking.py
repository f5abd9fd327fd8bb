"""
Driver tracking
===============

Availability and live position.  Location updates are socket-only: they
go to connected admins (``driver_location``) and, when the driver names a
trip, to that trip's passenger (``location_update``).  They are never
recorded as notifications.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from ridehail.domain.enums import DriverStatus, UserRole
from ridehail.domain.errors import NotFound, Unauthorized
from ridehail.infrastructure.ledger import Ledger, LedgerStore
from ridehail.infrastructure.models import DriverModel, TripModel
from ridehail.services.presence import PresenceDirectory

logger = logging.getLogger(__name__)


class DriverTracker:
    def __init__(self, store: LedgerStore, presence: PresenceDirectory):
        self.store = store
        self.presence = presence

    async def set_driver_status(self, driver_id: UUID, status: DriverStatus) -> DriverModel:
        status = DriverStatus(status)

        async def work(ledger: Ledger) -> DriverModel:
            driver = await ledger.conditional_update(
                DriverModel, driver_id, {}, {"status": status}
            )
            if driver is None:
                raise NotFound("Driver not found")
            return driver

        driver = await self.store.run(work)
        logger.info("Driver %s is now %s", driver_id, status.value)
        return driver

    async def update_driver_location(
        self,
        driver_id: UUID,
        latitude: float,
        longitude: float,
        trip_id: Optional[UUID] = None,
    ) -> DriverModel:
        now = datetime.now(timezone.utc)

        async def work(ledger: Ledger):
            driver = await ledger.conditional_update(
                DriverModel,
                driver_id,
                {},
                {
                    "current_lat": latitude,
                    "current_lng": longitude,
                    "location_updated_at": now,
                },
            )
            if driver is None:
                raise NotFound("Driver not found")
            passenger_id = None
            if trip_id is not None:
                trip = await ledger.get(TripModel, trip_id)
                if trip is None:
                    raise NotFound("Trip not found")
                if trip.driver_id != driver_id:
                    raise Unauthorized("Only the assigned driver can share trip location")
                passenger_id = trip.passenger_id
            return driver, passenger_id

        driver, passenger_id = await self.store.run(work)

        position = {
            "driver_id": str(driver_id),
            "latitude": latitude,
            "longitude": longitude,
            "timestamp": now.isoformat(),
        }
        self.presence.broadcast_all(
            {"event": "driver_location", **position}, role=UserRole.ADMIN
        )
        if passenger_id is not None:
            self.presence.send_to_user(
                passenger_id,
                {"event": "location_update", "trip_id": str(trip_id), **position},
            )
        return driver
