"""
Push Redelivery Sweeper
=======================

Runs every ``PUSH_RETRY_INTERVAL_SECONDS`` (default 30 s).

Picks up notification records whose push never succeeded
(``is_push_sent = false``), that are older than the grace period so the
live dispatch has had its chance, and that have fewer than
``PUSH_MAX_ATTEMPTS`` attempts.  Each one is pushed again through the
dispatcher, which stamps ``push_attempts`` and, on success,
``is_push_sent``.  Records are never re-created and the socket channel is
not retried.

Concurrency safety
------------------
* **Redis distributed lock** ensures only one process sweeps per interval.
* Marking a record sent is conditional on ``is_push_sent = false``, so a
  sweep racing the live dispatch cannot flip it twice.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import redis.asyncio as aioredis

from ridehail.config import settings
from ridehail.infrastructure.ledger import Ledger, LedgerStore
from ridehail.infrastructure.locks import DistributedLock
from ridehail.infrastructure.models import NotificationModel
from ridehail.infrastructure.redis_client import get_redis
from ridehail.services.dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_push_retry_loop(dispatcher: NotificationDispatcher, store: LedgerStore) -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(dispatcher, store))
    logger.info(
        "Push sweeper started (interval=%ds)", settings.push_retry_interval_seconds
    )


async def stop_push_retry_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Push sweeper stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop(dispatcher: NotificationDispatcher, store: LedgerStore) -> None:
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_push_retry_cycle(dispatcher, store)
        except Exception:
            logger.exception("Unhandled error in push sweep")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.push_retry_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass


async def pending_pushes(store: LedgerStore, now: Optional[datetime] = None) -> list[NotificationModel]:
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(
        seconds=settings.push_retry_grace_seconds
    )

    async def work(ledger: Ledger) -> list[NotificationModel]:
        return await ledger.query(
            NotificationModel,
            NotificationModel.is_push_sent.is_(False),
            NotificationModel.created_at < cutoff,
            NotificationModel.push_attempts < settings.push_max_attempts,
            order_by=(NotificationModel.created_at,),
            limit=settings.push_retry_batch_size,
        )

    return await store.run(work)


async def run_push_retry_cycle(
    dispatcher: NotificationDispatcher,
    store: LedgerStore,
    redis: Optional[aioredis.Redis] = None,
) -> int:
    """Execute one sweep.  Returns the number of records pushed successfully."""
    redis = redis or await get_redis()
    lock = DistributedLock(
        redis, "push_retry", ttl_seconds=max(settings.push_retry_interval_seconds, 30)
    )

    if not await lock.acquire():
        logger.debug("Lock held by another worker - skipping sweep")
        return 0

    delivered = 0
    try:
        pending = await pending_pushes(store)
        for record in pending:
            outcome = await dispatcher.deliver_push(record)
            if outcome.ok:
                delivered += 1
        if pending:
            logger.info(
                "Push sweep: %d/%d pending records delivered", delivered, len(pending)
            )
    except Exception:
        logger.exception("Error in push sweep")
    finally:
        await lock.release()

    return delivered
