"""
Notification Dispatcher
=======================

Turns a committed domain event into notifications.

Per recipient
-------------
1. Render title/body/data for the recipient's audience.
2. Insert a ``NotificationRecord`` (``is_push_sent = false``) and commit.
   No record, no delivery: if the insert fails the recipient is counted as
   failed and neither channel is tried.
3. Concurrently:
   a. socket -- offer the record to the user's live connections;
   b. push   -- send to the user's active device tokens, retire tokens the
      gateway calls invalid, and flip ``is_push_sent`` on >= 1 success.
4. Both channels report a tagged ``DeliveryOutcome``; neither can fail the
   other, and nothing here raises into the command that emitted the event.

Fan-out across recipients runs concurrently under a semaphore so a large
audience (all admins, all available drivers) cannot flood the gateway.

Per-trip ordering
-----------------
Commands on one trip may commit back to back and dispatch concurrently.
The dispatcher remembers the last sequence it finished for each recent
trip; an event with sequence N waits until N-1 is done before resolving
recipients, so a trip's records are created in transition order.  The
wait is bounded by ``DISPATCH_ORDER_WAIT_SECONDS``: a predecessor
dispatched by another process is never seen here, and consumers still
have ``sequence`` to order by.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Iterable, Optional
from uuid import UUID

from ridehail.config import settings
from ridehail.domain.delivery import DeliveryOutcome, DispatchReport, RecipientResult
from ridehail.domain.errors import DispatchDegraded, StorageUnavailable
from ridehail.domain.events import DomainEvent
from ridehail.infrastructure.device_tokens import DeviceTokenRegistry
from ridehail.infrastructure.ledger import Ledger, LedgerStore
from ridehail.infrastructure.models import NotificationModel
from ridehail.infrastructure.push_gateway import PushGateway, PushStatus
from ridehail.services.presence import PresenceDirectory
from ridehail.services.recipients import Recipient, RecipientResolver
from ridehail.services.templates import RenderedNotification, render

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    def __init__(
        self,
        store: LedgerStore,
        presence: PresenceDirectory,
        push_gateway: PushGateway,
        tokens: DeviceTokenRegistry,
        resolver: Optional[RecipientResolver] = None,
        concurrency: int = settings.dispatch_concurrency,
        push_timeout: float = settings.push_timeout_seconds,
        order_wait: float = settings.dispatch_order_wait_seconds,
        tracked_trips: int = settings.dispatch_order_tracked_trips,
    ):
        self.store = store
        self.presence = presence
        self.push_gateway = push_gateway
        self.tokens = tokens
        self.resolver = resolver or RecipientResolver(store)
        self.push_timeout = push_timeout
        self.order_wait = order_wait
        self.tracked_trips = max(1, tracked_trips)
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._dispatched: OrderedDict[UUID, int] = OrderedDict()
        self._order = asyncio.Condition()

    # ── Public API ────────────────────────────────────────────────────

    async def dispatch_all(self, events: Iterable[DomainEvent]) -> list[DispatchReport]:
        """Dispatch *events* strictly in order."""
        return [await self.dispatch(event) for event in events]

    async def dispatch(self, event: DomainEvent) -> DispatchReport:
        async with self._in_trip_order(event):
            return await self._dispatch(event)

    async def _dispatch(self, event: DomainEvent) -> DispatchReport:
        report = DispatchReport(event.kind.value)
        try:
            recipients = await self.resolver.resolve(event)
        except StorageUnavailable:
            logger.error(
                "Recipient resolution failed for %s trip=%s; nothing dispatched",
                event.kind.value,
                event.trip_id,
            )
            return report
        except Exception:
            logger.exception(
                "Recipient resolution error for %s trip=%s; nothing dispatched",
                event.kind.value,
                event.trip_id,
            )
            return report
        if not recipients:
            return report

        outcomes = await asyncio.gather(
            *(self._deliver_bounded(event, r) for r in recipients),
            return_exceptions=True,
        )
        for recipient, outcome in zip(recipients, outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    "Delivery to user=%s for %s trip=%s crashed: %r",
                    recipient.user_id,
                    event.kind.value,
                    event.trip_id,
                    outcome,
                )
                crashed = DeliveryOutcome.failed("dispatch_error")
                outcome = RecipientResult(recipient.user_id, None, crashed, crashed)
            elif isinstance(outcome, BaseException):
                raise outcome
            report.results.append(outcome)

        for result in report.results:
            if result.degraded:
                logger.warning(
                    "%s: %s trip=%s user=%s record=%s socket=%s push=%s",
                    DispatchDegraded.code,
                    event.kind.value,
                    event.trip_id,
                    result.user_id,
                    result.record_id,
                    result.socket.reason,
                    result.push.reason,
                )
        logger.info(
            "Dispatched %s trip=%s seq=%d: %d ok, %d failed",
            event.kind.value,
            event.trip_id,
            event.sequence,
            report.success_count,
            report.failure_count,
        )
        return report

    async def deliver_push(self, record: NotificationModel) -> DeliveryOutcome:
        """Push one persisted record to its owner's devices and stamp the result."""
        try:
            tokens = await self.tokens.active_tokens_for(record.user_id)
        except StorageUnavailable:
            return DeliveryOutcome.failed("token_lookup_unavailable")

        if not tokens:
            outcome = DeliveryOutcome.skipped("no_active_tokens")
        else:
            outcome = await self._send_push(record, tokens)

        try:
            await self._stamp_push_attempt(record, delivered=outcome.ok)
        except StorageUnavailable:
            logger.warning("Could not stamp push result for record=%s", record.id)
        return outcome

    # ── Internals ─────────────────────────────────────────────────────

    @asynccontextmanager
    async def _in_trip_order(self, event: DomainEvent) -> AsyncIterator[None]:
        """Hold *event* until its trip's previous sequence has been dispatched."""
        trip_id, previous = event.trip_id, event.sequence - 1

        def predecessor_done() -> bool:
            return self._dispatched.get(trip_id, previous) >= previous

        if not predecessor_done():
            async with self._order:
                try:
                    await asyncio.wait_for(
                        self._order.wait_for(predecessor_done), self.order_wait
                    )
                except asyncio.TimeoutError:
                    logger.warning(
                        "Dispatching %s trip=%s seq=%d before seq=%d was seen",
                        event.kind.value,
                        trip_id,
                        event.sequence,
                        previous,
                    )
        try:
            yield
        finally:
            async with self._order:
                done = max(self._dispatched.pop(trip_id, 0), event.sequence)
                self._dispatched[trip_id] = done
                while len(self._dispatched) > self.tracked_trips:
                    self._dispatched.popitem(last=False)
                self._order.notify_all()

    async def _deliver_bounded(
        self, event: DomainEvent, recipient: Recipient
    ) -> RecipientResult:
        async with self._semaphore:
            return await self._deliver(event, recipient)

    async def _deliver(self, event: DomainEvent, recipient: Recipient) -> RecipientResult:
        note = render(event, recipient.audience)
        try:
            record = await self._persist(event, recipient, note)
        except StorageUnavailable:
            logger.error(
                "Notification record not persisted for user=%s (%s); not delivering",
                recipient.user_id,
                event.kind.value,
            )
            no_record = DeliveryOutcome.failed("record_not_persisted")
            return RecipientResult(recipient.user_id, None, no_record, no_record)
        except Exception:
            logger.exception(
                "Notification record rejected for user=%s (%s); not delivering",
                recipient.user_id,
                event.kind.value,
            )
            no_record = DeliveryOutcome.failed("record_not_persisted")
            return RecipientResult(recipient.user_id, None, no_record, no_record)

        socket_outcome, push_outcome = await asyncio.gather(
            self._deliver_socket(record), self.deliver_push(record)
        )
        return RecipientResult(recipient.user_id, record.id, socket_outcome, push_outcome)

    async def _persist(
        self, event: DomainEvent, recipient: Recipient, note: RenderedNotification
    ) -> NotificationModel:
        async def work(ledger: Ledger) -> NotificationModel:
            return await ledger.insert(
                NotificationModel(
                    user_id=recipient.user_id,
                    title=note.title,
                    body=note.body,
                    notification_type=note.notification_type,
                    related_trip_id=event.trip_id,
                    sequence=event.sequence,
                    data=note.data,
                    is_read=False,
                    is_push_sent=False,
                    push_attempts=0,
                    created_at=datetime.now(timezone.utc),
                )
            )

        return await self.store.run(work)

    async def _deliver_socket(self, record: NotificationModel) -> DeliveryOutcome:
        return self.presence.send_to_user(
            record.user_id,
            {
                "event": "notification",
                "record_id": str(record.id),
                "title": record.title,
                "body": record.body,
                "type": record.notification_type.value,
                "data": record.data,
                "sequence": record.sequence,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    async def _send_push(self, record: NotificationModel, tokens: list[str]) -> DeliveryOutcome:
        data = dict(record.data)
        data["notification_id"] = str(record.id)
        data["type"] = record.notification_type.value
        try:
            outcomes = await asyncio.wait_for(
                self.push_gateway.send_to_tokens(tokens, record.title, record.body, data),
                self.push_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Push gateway timed out for record=%s", record.id)
            return DeliveryOutcome.failed("gateway_timeout")
        except Exception:
            logger.exception("Push gateway error for record=%s", record.id)
            return DeliveryOutcome.failed("gateway_error")

        for token, outcome in outcomes.items():
            if outcome.status is PushStatus.INVALID_TOKEN:
                await self._retire(token)

        delivered = sum(1 for o in outcomes.values() if o.ok)
        if delivered:
            return DeliveryOutcome.delivered()
        reasons = sorted({o.reason or o.status.value for o in outcomes.values()})
        return DeliveryOutcome.failed(",".join(reasons) or "no_outcome")

    async def _retire(self, token: str) -> None:
        try:
            await self.tokens.deactivate(token)
        except StorageUnavailable:
            logger.warning("Could not retire invalid token %s…", token[:12])

    async def _stamp_push_attempt(self, record: NotificationModel, delivered: bool) -> None:
        values = {"push_attempts": NotificationModel.push_attempts + 1}
        expected = {}
        if delivered:
            values["is_push_sent"] = True
            values["push_sent_at"] = datetime.now(timezone.utc)
            expected["is_push_sent"] = False

        async def work(ledger: Ledger) -> Optional[NotificationModel]:
            return await ledger.conditional_update(
                NotificationModel, record.id, expected, values
            )

        await self.store.run(work)
