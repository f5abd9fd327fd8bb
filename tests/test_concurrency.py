"""
Concurrency safety tests.

Demonstrates:
1. Two drivers accepting the same trip at once: exactly one wins, the
   other gets ``Conflict``; the winner is the one recorded on the trip.
2. Two answers to one route change: first wins, second gets ``Conflict``.
3. Two admins resolving one panic alert: resolved exactly once.
4. Distributed lock prevents simultaneous acquire.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from ridehail.domain.enums import AlertType, ApprovalStatus, NotificationType, TripStatus
from ridehail.domain.errors import Conflict
from ridehail.infrastructure.locks import DistributedLock, LockNotAcquired
from ridehail.infrastructure.models import (
    NotificationModel,
    PanicAlertModel,
    RouteChangeModel,
    TripModel,
)
from tests.conftest import AIRPORT, ANDHERI, count_rows, fetch_one, trip_in_progress


def _split(outcomes):
    wins = [o for o in outcomes if not isinstance(o, BaseException)]
    losses = [o for o in outcomes if isinstance(o, BaseException)]
    return wins, losses


class TestAcceptRace:
    @pytest.mark.asyncio
    async def test_exactly_one_driver_wins(self, services, world, session_factory):
        requested = await services.engine.request_trip(world.passenger.id, AIRPORT, ANDHERI, 120)
        trip_id = requested.entity.id

        outcomes = await asyncio.gather(
            services.engine.accept_trip(world.driver.id, trip_id),
            services.engine.accept_trip(world.driver_b.id, trip_id),
            return_exceptions=True,
        )
        wins, losses = _split(outcomes)

        assert len(wins) == 1
        assert len(losses) == 1
        assert isinstance(losses[0], Conflict)

        stored = await fetch_one(session_factory, TripModel, trip_id)
        assert stored.status == TripStatus.ACCEPTED
        assert stored.driver_id == wins[0].entity.driver_id
        assert stored.version == 2

        assert await count_rows(
            session_factory,
            NotificationModel,
            NotificationModel.notification_type == NotificationType.TRIP_ACCEPTED,
        ) == 1


class TestRouteChangeRace:
    @pytest.mark.asyncio
    async def test_first_response_wins(self, services, world, session_factory):
        trip = await trip_in_progress(services, world)
        change = (
            await services.engine.request_route_change(
                world.driver.id, trip.id, {"w": 1}, {"w": 2}, "Detour"
            )
        ).entity

        outcomes = await asyncio.gather(
            services.engine.respond_to_route_change(world.passenger.id, change.id, True),
            services.engine.respond_to_route_change(world.passenger.id, change.id, False),
            return_exceptions=True,
        )
        wins, losses = _split(outcomes)

        assert len(wins) == 1
        assert len(losses) == 1
        assert isinstance(losses[0], Conflict)

        stored = await fetch_one(session_factory, RouteChangeModel, change.id)
        assert stored.approval_status == wins[0].entity.approval_status
        assert stored.approval_status != ApprovalStatus.PENDING
        assert await count_rows(
            session_factory,
            NotificationModel,
            NotificationModel.notification_type == NotificationType.ROUTE_CHANGE_RESPONSE,
        ) == 1


class TestPanicResolutionRace:
    @pytest.mark.asyncio
    async def test_resolved_exactly_once(self, services, world, session_factory):
        trip = await trip_in_progress(services, world)
        alert = (
            await services.engine.raise_panic_alert(
                world.passenger.id, trip.id, AlertType.VOLUME_BUTTON
            )
        ).entity

        outcomes = await asyncio.gather(
            services.engine.resolve_panic_alert(world.admin.id, alert.id, "first"),
            services.engine.resolve_panic_alert(world.admin_b.id, alert.id, "second"),
            return_exceptions=True,
        )
        wins, losses = _split(outcomes)

        assert len(wins) == 1
        assert isinstance(losses[0], Conflict)
        stored = await fetch_one(session_factory, PanicAlertModel, alert.id)
        assert stored.resolved_by == wins[0].entity.resolved_by
        assert stored.admin_notes == wins[0].entity.admin_notes


class TestConcurrentPanicCounter:
    @pytest.mark.asyncio
    async def test_counter_increments_once_per_alert(self, services, world, session_factory):
        trip = await trip_in_progress(services, world)
        await asyncio.gather(
            *(
                services.engine.raise_panic_alert(
                    world.passenger.id, trip.id, AlertType.VOLUME_BUTTON
                )
                for _ in range(3)
            )
        )
        stored = await fetch_one(session_factory, TripModel, trip.id)
        assert stored.panic_alert_count == 3
        assert await count_rows(session_factory, PanicAlertModel) == 3


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "push_retry", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with(
            "ridehail:lock:push_retry", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "push_retry", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_calls_eval(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "push_retry", ttl_seconds=10)
        await lock.acquire()
        await lock.release()

        mock_redis.eval.assert_awaited_once()
        assert lock.held is False

    @pytest.mark.asyncio
    async def test_release_without_acquire_is_a_noop(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)
        mock_redis.eval = AsyncMock(return_value=0)

        lock = DistributedLock(mock_redis, "push_retry", ttl_seconds=10)
        await lock.acquire()
        await lock.release()

        mock_redis.eval.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "push_retry", ttl_seconds=10)
        with pytest.raises(LockNotAcquired, match="held elsewhere"):
            async with lock:
                pass
