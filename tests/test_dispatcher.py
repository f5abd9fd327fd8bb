"""
Notification Dispatcher tests.

Each recipient gets a durable record before any channel is tried, the two
channels fail independently, and nothing a channel does can raise into
the caller.
"""

import asyncio
from datetime import datetime, timezone
from uuid import UUID, uuid4

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ridehail.domain.delivery import DeliveryStatus
from ridehail.domain.enums import DevicePlatform, NotificationType, TripStatus, UserRole
from ridehail.domain.errors import StorageUnavailable
from ridehail.domain.events import DomainEvent, EventKind
from ridehail.infrastructure.models import DeviceTokenModel, NotificationModel, TripModel
from ridehail.infrastructure.push_gateway import PushOutcome, PushStatus
from ridehail.services.dispatcher import NotificationDispatcher
from ridehail.services.presence import Connection
from tests.conftest import AIRPORT, ANDHERI, count_rows, fetch_all, fetch_one


def _panic_event(world, trip_id, sequence=7):
    return DomainEvent(
        kind=EventKind.PANIC_RAISED,
        trip_id=trip_id,
        sequence=sequence,
        passenger_id=world.passenger.id,
        driver_id=world.driver.id,
        actor_id=world.passenger.id,
        payload={
            "panic_id": str(uuid4()),
            "alert_type": "volume_button",
            "user_name": "Aarav Sharma",
        },
    )


def _accepted_event(world, trip_id, sequence=2):
    return DomainEvent(
        kind=EventKind.TRIP_ACCEPTED,
        trip_id=trip_id,
        sequence=sequence,
        passenger_id=world.passenger.id,
        driver_id=world.driver.id,
        actor_id=world.driver.id,
        payload={"driver_name": "Vikram Singh"},
    )


@pytest_asyncio.fixture
async def trip_id(session_factory, world):
    """A trip inserted directly, so no dispatch happens while seeding."""
    async with session_factory() as session:
        trip = TripModel(
            passenger_id=world.passenger.id,
            driver_id=world.driver.id,
            status=TripStatus.ACCEPTED,
            origin_address=AIRPORT.address,
            origin_lat=AIRPORT.latitude,
            origin_lng=AIRPORT.longitude,
            destination_address=ANDHERI.address,
            destination_lat=ANDHERI.latitude,
            destination_lng=ANDHERI.longitude,
            estimated_price=50,
            requested_at=datetime.now(timezone.utc),
            version=2,
        )
        session.add(trip)
        await session.commit()
        return trip.id


class TestRecordBeforePush:
    @pytest.mark.asyncio
    async def test_record_exists_when_gateway_is_called(
        self, services, world, trip_id, session_factory, gateway
    ):
        seen = []

        async def check_record(tokens, data):
            async with session_factory() as session:
                record = await session.get(NotificationModel, UUID(data["notification_id"]))
            seen.append(record)

        gateway.before_send = check_record
        await services.dispatcher.dispatch(_accepted_event(world, trip_id))

        (record,) = seen
        assert record is not None
        assert record.user_id == world.passenger.id
        assert record.is_push_sent is False

    @pytest.mark.asyncio
    async def test_failed_insert_means_no_delivery(self, services, world, trip_id, gateway, monkeypatch):
        async def unavailable(*args, **kwargs):
            raise StorageUnavailable("down")

        monkeypatch.setattr(services.dispatcher, "_persist", unavailable)
        report = await services.dispatcher.dispatch(_panic_event(world, trip_id))

        assert gateway.calls == []
        assert report.success_count == 0
        assert report.failure_count == 2
        assert all(r.record_id is None for r in report.results)
        assert all(r.push.reason == "record_not_persisted" for r in report.results)

    @pytest.mark.asyncio
    async def test_rejected_insert_means_no_delivery(
        self, services, world, trip_id, gateway, monkeypatch
    ):
        async def rejected(*args, **kwargs):
            raise IntegrityError("INSERT INTO notifications", {}, Exception("duplicate key"))

        monkeypatch.setattr(services.dispatcher, "_persist", rejected)
        report = await services.dispatcher.dispatch(_panic_event(world, trip_id))

        assert gateway.calls == []
        assert report.failure_count == 2
        assert all(r.push.reason == "record_not_persisted" for r in report.results)


class TestChannels:
    @pytest.mark.asyncio
    async def test_socket_and_push_both_delivered(self, services, world, trip_id, session_factory):
        sent = []

        async def send(message):
            sent.append(message)

        connection = Connection(send, world.passenger.id, UserRole.PASSENGER)
        services.presence.register(world.passenger.id, connection)

        report = await services.dispatcher.dispatch(_accepted_event(world, trip_id))
        (result,) = report.results

        assert result.socket.status is DeliveryStatus.DELIVERED
        assert result.push.status is DeliveryStatus.DELIVERED
        assert connection.pending == 1
        message = connection._buffer.get_nowait()
        assert message["event"] == "notification"
        assert message["record_id"] == str(result.record_id)
        assert message["type"] == NotificationType.TRIP_ACCEPTED.value
        assert message["sequence"] == 2
        assert message["data"]["trip_id"] == str(trip_id)

    @pytest.mark.asyncio
    async def test_absent_socket_is_skipped_silently(self, services, world, trip_id):
        report = await services.dispatcher.dispatch(_accepted_event(world, trip_id))
        (result,) = report.results

        assert result.socket.status is DeliveryStatus.SKIPPED
        assert result.socket.reason == "not_connected"
        assert result.delivered is True
        assert report.degraded_count == 0

    @pytest.mark.asyncio
    async def test_gateway_error_leaves_record_unsent(
        self, services, world, trip_id, session_factory, gateway
    ):
        gateway.error = httpx.ConnectError("fcm unreachable")

        report = await services.dispatcher.dispatch(_accepted_event(world, trip_id))
        (result,) = report.results

        assert result.push.status is DeliveryStatus.FAILED
        assert result.degraded is True
        assert report.degraded_count == 1
        record = await fetch_one(session_factory, NotificationModel, result.record_id)
        assert record.is_push_sent is False
        assert record.push_attempts == 1

    @pytest.mark.asyncio
    async def test_one_failing_recipient_does_not_affect_others(
        self, services, world, trip_id, gateway
    ):
        gateway.outcomes[f"tok-{world.admin.email}"] = PushOutcome(PushStatus.FAILED, "QUOTA_EXCEEDED")

        report = await services.dispatcher.dispatch(_panic_event(world, trip_id))
        by_user = {r.user_id: r for r in report.results}

        assert by_user[world.admin.id].push.status is DeliveryStatus.FAILED
        assert by_user[world.admin.id].push.reason == "QUOTA_EXCEEDED"
        assert by_user[world.admin_b.id].push.status is DeliveryStatus.DELIVERED
        assert report.success_count == 1
        assert report.failure_count == 1

    @pytest.mark.asyncio
    async def test_crashing_delivery_is_reported_not_raised(
        self, services, world, trip_id, monkeypatch
    ):
        async def broken(event, recipient):
            raise RuntimeError("renderer blew up")

        monkeypatch.setattr(services.dispatcher, "_deliver", broken)
        report = await services.dispatcher.dispatch(_panic_event(world, trip_id))

        assert report.success_count == 0
        assert report.failure_count == 2
        assert all(r.push.reason == "dispatch_error" for r in report.results)

    @pytest.mark.asyncio
    async def test_invalid_token_is_retired(self, services, world, trip_id, session_factory, gateway):
        token = f"tok-{world.admin.email}"
        gateway.outcomes[token] = PushOutcome(PushStatus.INVALID_TOKEN, "UNREGISTERED")

        await services.dispatcher.dispatch(_panic_event(world, trip_id))

        (row,) = await fetch_all(
            session_factory, DeviceTokenModel, DeviceTokenModel.token == token
        )
        assert row.is_active is False
        assert await services.tokens.active_tokens_for(world.admin.id) == []

    @pytest.mark.asyncio
    async def test_push_succeeds_if_any_token_succeeds(
        self, services, world, trip_id, session_factory, gateway
    ):
        await services.tokens.register(world.admin.id, "tok-admin-tablet", DevicePlatform.IOS, "tablet-1")
        gateway.outcomes[f"tok-{world.admin.email}"] = PushOutcome(PushStatus.FAILED, "UNAVAILABLE")

        report = await services.dispatcher.dispatch(_panic_event(world, trip_id))
        by_user = {r.user_id: r for r in report.results}
        assert by_user[world.admin.id].push.status is DeliveryStatus.DELIVERED

        record = await fetch_one(session_factory, NotificationModel, by_user[world.admin.id].record_id)
        assert record.is_push_sent is True

    @pytest.mark.asyncio
    async def test_user_without_tokens_is_skipped(self, services, world, trip_id, session_factory):
        await services.tokens.deactivate(f"tok-{world.admin.email}")

        report = await services.dispatcher.dispatch(_panic_event(world, trip_id))
        by_user = {r.user_id: r for r in report.results}

        assert by_user[world.admin.id].push.status is DeliveryStatus.SKIPPED
        assert by_user[world.admin.id].push.reason == "no_active_tokens"


class TestRecipients:
    @pytest.mark.asyncio
    async def test_suspended_admin_is_not_notified(self, services, world, trip_id, session_factory):
        await services.dispatcher.dispatch(_panic_event(world, trip_id))
        assert await count_rows(
            session_factory,
            NotificationModel,
            NotificationModel.user_id == world.suspended_admin.id,
        ) == 0

    @pytest.mark.asyncio
    async def test_resolution_failure_dispatches_nothing(
        self, services, world, trip_id, session_factory, monkeypatch
    ):
        async def unavailable(event):
            raise StorageUnavailable("down")

        monkeypatch.setattr(services.dispatcher.resolver, "resolve", unavailable)
        report = await services.dispatcher.dispatch(_panic_event(world, trip_id))

        assert report.results == []
        assert await count_rows(session_factory, NotificationModel) == 0

    @pytest.mark.asyncio
    async def test_records_carry_event_sequence(self, services, world, trip_id, session_factory):
        event = _panic_event(world, trip_id, sequence=11)
        await services.dispatcher.dispatch(event)

        async with session_factory() as session:
            result = await session.execute(select(NotificationModel.sequence))
            sequences = set(result.scalars().all())
        assert sequences == {11}


class TestTripOrder:
    def _dispatcher(self, services, order_wait):
        return NotificationDispatcher(
            services.store,
            services.presence,
            services.dispatcher.push_gateway,
            services.tokens,
            order_wait=order_wait,
        )

    @pytest.mark.asyncio
    async def test_next_sequence_waits_for_previous(self, services, world, trip_id):
        dispatcher = self._dispatcher(services, order_wait=5)
        await dispatcher.dispatch(_accepted_event(world, trip_id, sequence=2))
        finished = []
        held = asyncio.Event()
        resolve = dispatcher.resolver.resolve

        async def slow_resolve(event):
            if event.sequence == 3:
                held.set()
                await asyncio.sleep(0.1)
            return await resolve(event)

        dispatcher.resolver.resolve = slow_resolve

        async def run(sequence):
            await dispatcher.dispatch(_accepted_event(world, trip_id, sequence=sequence))
            finished.append(sequence)

        third = asyncio.create_task(run(3))
        await held.wait()
        await run(4)
        await third

        assert finished == [3, 4]

    @pytest.mark.asyncio
    async def test_missing_predecessor_only_delays(self, services, world, trip_id):
        dispatcher = self._dispatcher(services, order_wait=0.05)
        await dispatcher.dispatch(_accepted_event(world, trip_id, sequence=2))

        report = await dispatcher.dispatch(_accepted_event(world, trip_id, sequence=5))

        assert report.success_count == 1

    @pytest.mark.asyncio
    async def test_tracked_trips_are_bounded(self, services, world, trip_id):
        dispatcher = NotificationDispatcher(
            services.store,
            services.presence,
            services.dispatcher.push_gateway,
            services.tokens,
            tracked_trips=1,
        )
        await dispatcher.dispatch(_accepted_event(world, trip_id, sequence=2))
        other = uuid4()
        await dispatcher.dispatch(
            DomainEvent(
                kind=EventKind.PANIC_RESOLVED,
                trip_id=other,
                sequence=1,
                passenger_id=world.passenger.id,
                driver_id=None,
                actor_id=world.admin.id,
                payload={"panic_id": str(uuid4())},
            )
        )

        assert list(dispatcher._dispatched.items()) == [(other, 1)]
